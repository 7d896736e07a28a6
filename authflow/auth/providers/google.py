"""Google OpenID Connect preset."""

from typing import Any

from authflow.auth.providers.oauth import Endpoint
from authflow.auth.providers.oidc import OIDCDefaults, OIDCProvider

GoogleDefaults = OIDCDefaults(
    id="google",
    issuer="https://accounts.google.com",
    endpoints={
        # Pinned over whatever discovery reports
        "revocation": Endpoint(url="https://oauth2.googleapis.com/revoke"),
    },
)


def Google(client_id: str, client_secret: str, **kwargs: Any) -> OIDCProvider:
    return OIDCProvider(client_id, client_secret, defaults=GoogleDefaults, **kwargs)
