"""
Authentication providers.

- ``OAuthProvider`` / ``OIDCProvider``: third-party authorization servers
- ``CredentialsProvider`` / ``EmailProvider``: first-party login
- Presets: ``GitHub``, ``Google``, ``Discord``, ``Facebook``, ``Twitch``
"""

from authflow.auth.providers.base import PageEndpoint, Pages, Provider
from authflow.auth.providers.credentials import Credentials, CredentialsProvider, Email, EmailProvider
from authflow.auth.providers.discord import Discord, DiscordDefaults
from authflow.auth.providers.facebook import Facebook, FacebookDefaults
from authflow.auth.providers.github import GitHub, GitHubDefaults
from authflow.auth.providers.google import Google, GoogleDefaults
from authflow.auth.providers.oauth import Endpoint, OAuthDefaults, OAuthEndpoints, OAuthProvider
from authflow.auth.providers.oidc import OIDCDefaults, OIDCProvider
from authflow.auth.providers.twitch import Twitch, TwitchDefaults

__all__ = [
    "PageEndpoint",
    "Pages",
    "Provider",
    "Credentials",
    "CredentialsProvider",
    "Email",
    "EmailProvider",
    "Endpoint",
    "OAuthDefaults",
    "OAuthEndpoints",
    "OAuthProvider",
    "OIDCDefaults",
    "OIDCProvider",
    "Discord",
    "DiscordDefaults",
    "Facebook",
    "FacebookDefaults",
    "GitHub",
    "GitHubDefaults",
    "Google",
    "GoogleDefaults",
    "Twitch",
    "TwitchDefaults",
]
