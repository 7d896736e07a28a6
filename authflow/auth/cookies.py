"""
Cookie naming and default attributes for every cookie the engine sets.
"""

from typing import Optional

from pydantic import BaseModel

from authflow.config import get_settings
from authflow.models import Cookie, CookieOptions

DEFAULT_COOKIE_NAME = "authflow"

SECURE_PREFIX = "__Secure-"

HOST_PREFIX = "__Host-"

FIFTEEN_MINUTES = 15 * 60


class CookieOption(BaseModel):
    """Name plus default attributes of one engine cookie."""
    name: str
    options: CookieOptions

    def set(self, value: str, max_age: Optional[int] = None) -> Cookie:
        options = self.options
        if max_age is not None:
            options = options.model_copy(update={"max_age": max_age})
        return Cookie(name=self.name, value=value, options=options)

    def clear(self) -> Cookie:
        return Cookie.clear(self.name, self.options)


class CookiesOptions(BaseModel):
    access_token: CookieOption
    refresh_token: CookieOption
    callback_url: CookieOption
    csrf_token: CookieOption
    pkce_code_verifier: CookieOption
    state: CookieOption
    nonce: CookieOption


def create_cookies_options(
    use_secure_cookies: Optional[bool] = None,
    cookie_name: Optional[str] = None,
    secure_prefix: str = SECURE_PREFIX,
) -> CookiesOptions:
    """
    Build the named cookie set.

    Secure cookies get the ``__Secure-`` prefix; the CSRF cookie gets the
    stricter ``__Host-`` prefix instead.
    """
    settings = get_settings()
    if use_secure_cookies is None:
        use_secure_cookies = settings.AUTH_USE_SECURE_COOKIES
    if cookie_name is None:
        cookie_name = settings.AUTH_COOKIE_NAME

    prefix = secure_prefix if use_secure_cookies else ""

    def option(suffix: str, max_age: Optional[int] = None, name_prefix: str = prefix) -> CookieOption:
        return CookieOption(
            name=f"{name_prefix}{cookie_name}.{suffix}",
            options=CookieOptions(
                path="/",
                http_only=True,
                same_site="lax",
                secure=use_secure_cookies,
                max_age=max_age,
            ),
        )

    return CookiesOptions(
        access_token=option("access-token"),
        refresh_token=option("refresh-token"),
        callback_url=option("callback-url"),
        csrf_token=option("csrf-token", name_prefix=HOST_PREFIX if use_secure_cookies else prefix),
        pkce_code_verifier=option("pkce.code_verifier", FIFTEEN_MINUTES),
        state=option("state", FIFTEEN_MINUTES),
        nonce=option("nonce", FIFTEEN_MINUTES),
    )
