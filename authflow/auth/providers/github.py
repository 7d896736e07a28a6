"""
GitHub OAuth preset.

GitHub does not put a private email address on ``/user``; when the profile
has no email the primary (or first) address from ``/user/emails`` is used.
"""

import logging
from typing import Any, Dict

import httpx

from authflow.auth.providers.oauth import CLIENT_SECRET_POST, Endpoint, OAuthDefaults, OAuthEndpoints, OAuthProvider

logger = logging.getLogger(__name__)

EMAILS_URL = "https://api.github.com/user/emails"
GRANT_URL = "https://api.github.com/applications/{client_id}/grant"


def _api_headers(access_token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github+json",
        "User-Agent": "authflow",
    }


async def fetch_github_profile(provider: OAuthProvider, tokens: Dict[str, Any]) -> Dict[str, Any]:
    headers = _api_headers(tokens["access_token"])
    profile = provider.read_json(
        await provider.send("GET", provider.endpoints.userinfo.url, headers=headers),
        "Profile fetch",
    )

    if not profile.get("email"):
        response = await provider.send("GET", EMAILS_URL, headers=headers)
        if response.is_success:
            try:
                emails = response.json()
            except ValueError:
                emails = None
            if isinstance(emails, list) and emails:
                primary = next((e for e in emails if e.get("primary")), emails[0])
                profile["email"] = primary.get("email")
        else:
            logger.debug(f"GitHub email lookup returned {response.status_code}")

    return profile


async def revoke_github_grant(provider: OAuthProvider, token: str) -> bool:
    """
    Delete the app authorization for ``token``. GitHub answers 204 on
    success and 404 / 422 when the grant is already gone.
    """
    response = await provider.send(
        "DELETE",
        provider.endpoints.revocation.url.format(client_id=provider.client_id),
        json={"access_token": token},
        auth=httpx.BasicAuth(provider.client_id, provider.client_secret or ""),
        headers={"Accept": "application/vnd.github+json", "User-Agent": "authflow"},
    )
    return response.status_code == 204


GitHubDefaults = OAuthDefaults(
    id="github",
    endpoints=OAuthEndpoints(
        authorization=Endpoint(url="https://github.com/login/oauth/authorize"),
        token=Endpoint(url="https://github.com/login/oauth/access_token"),
        userinfo=Endpoint(url="https://api.github.com/user", request=fetch_github_profile),
        revocation=Endpoint(url=GRANT_URL, request=revoke_github_grant),
    ),
    scope="read:user user:email",
    token_auth_method=CLIENT_SECRET_POST,
)


def GitHub(client_id: str, client_secret: str, **kwargs: Any) -> OAuthProvider:
    return OAuthProvider(client_id, client_secret, defaults=GitHubDefaults, **kwargs)
