"""Framework adapters: translate framework requests and responses to and from the engine's model."""
