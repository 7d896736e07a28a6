"""Facebook OAuth preset."""

from typing import Any

from authflow.auth import checks
from authflow.auth.providers.oauth import Endpoint, OAuthDefaults, OAuthEndpoints, OAuthProvider

FacebookDefaults = OAuthDefaults(
    id="facebook",
    endpoints=OAuthEndpoints(
        authorization=Endpoint(url="https://www.facebook.com/v15.0/dialog/oauth"),
        token=Endpoint(url="https://graph.facebook.com/oauth/access_token"),
        userinfo=Endpoint(
            url="https://graph.facebook.com/me",
            params={"fields": "id,name,email,picture"},
        ),
    ),
    checks=[checks.STATE],
    scope="email",
)


def Facebook(client_id: str, client_secret: str, **kwargs: Any) -> OAuthProvider:
    return OAuthProvider(client_id, client_secret, defaults=FacebookDefaults, **kwargs)
