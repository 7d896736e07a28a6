"""Discord OAuth preset."""

from typing import Any

from authflow.auth.providers.oauth import Endpoint, OAuthDefaults, OAuthEndpoints, OAuthProvider

DiscordDefaults = OAuthDefaults(
    id="discord",
    endpoints=OAuthEndpoints(
        authorization=Endpoint(url="https://discord.com/api/oauth2/authorize"),
        token=Endpoint(url="https://discord.com/api/oauth2/token"),
        userinfo=Endpoint(url="https://discord.com/api/users/@me"),
        revocation=Endpoint(url="https://discord.com/api/oauth2/token/revoke"),
    ),
    scope="identify email",
)


def Discord(client_id: str, client_secret: str, **kwargs: Any) -> OAuthProvider:
    return OAuthProvider(client_id, client_secret, defaults=DiscordDefaults, **kwargs)
