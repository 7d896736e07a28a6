"""Twitch preset (OAuth flavour, profile from the OIDC userinfo endpoint)."""

from typing import Any

from authflow.auth.providers.oauth import Endpoint, OAuthDefaults, OAuthEndpoints, OAuthProvider

TwitchDefaults = OAuthDefaults(
    id="twitch",
    endpoints=OAuthEndpoints(
        authorization=Endpoint(
            url="https://id.twitch.tv/oauth2/authorize",
            params={"claims": '{"id_token":{"email":null,"picture":null,"preferred_username":null}}'},
        ),
        token=Endpoint(url="https://id.twitch.tv/oauth2/token"),
        userinfo=Endpoint(url="https://id.twitch.tv/oauth2/userinfo"),
        revocation=Endpoint(url="https://id.twitch.tv/oauth2/revoke"),
    ),
    scope="openid user:read:email",
)


def Twitch(client_id: str, client_secret: str, **kwargs: Any) -> OAuthProvider:
    return OAuthProvider(client_id, client_secret, defaults=TwitchDefaults, **kwargs)
