"""
Data Models Module

This module defines the framework-agnostic request/response model the engine
works on. Framework adapters translate their own request objects into an
``InternalRequest`` and render the ``InternalResponse`` that comes back.

Models are organized by functional area:
- Cookie models (a cookie to set or clear, plus its attributes)
- Internal request (immutable view of the inbound request, lazy body)
- Internal response (user, status, redirect, cookies, error, body)
"""

import json
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Generic, List, Mapping, Optional, TypeVar
from urllib.parse import parse_qsl

import httpx
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from starlette.requests import cookie_parser

from authflow.exceptions import ValidationError


UserT = TypeVar("UserT")

BodyReader = Callable[[], Awaitable[bytes]]


# ============================================================================
# Cookie Models
# ============================================================================

class CookieOptions(BaseModel):
    """Attributes rendered next to a cookie's name and value."""
    path: str = Field(default="/", description="Cookie path")
    max_age: Optional[int] = Field(None, description="Lifetime in seconds; <= 0 clears the cookie")
    http_only: bool = Field(default=True, description="Hide the cookie from client-side scripts")
    secure: bool = Field(default=False, description="Only send the cookie over HTTPS")
    same_site: str = Field(default="lax", description="SameSite policy (lax, strict, none)")
    expires: Optional[datetime] = Field(None, description="Absolute expiry timestamp")


class Cookie(BaseModel):
    """A cookie the framework adapter should set or clear."""
    name: str = Field(..., description="Cookie name")
    value: str = Field(default="", description="Cookie value (a signed token for engine cookies)")
    options: CookieOptions = Field(default_factory=CookieOptions, description="Cookie attributes")

    @classmethod
    def clear(cls, name: str, options: Optional[CookieOptions] = None) -> "Cookie":
        """Build a cookie that removes ``name`` from the client."""
        base = options or CookieOptions()
        return cls(
            name=name,
            value="",
            options=base.model_copy(update={"max_age": 0, "expires": None}),
        )

    @property
    def max_age(self) -> Optional[int]:
        return self.options.max_age

    @property
    def is_cleared(self) -> bool:
        return self.value == "" and self.options.max_age is not None and self.options.max_age <= 0


# ============================================================================
# Internal Request
# ============================================================================

class InternalRequest(BaseModel):
    """
    Immutable view of an inbound request.

    ``extras`` is the extension point for framework adapters: they can attach
    named, framework-specific values (the framework request object, the
    resolved client address, ...) without the engine knowing about them.
    The body is only read when a provider asks for it, and at most once.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: str = Field(..., description="Upper-case HTTP method")
    url: httpx.URL = Field(..., description="Parsed request URL")
    headers: Dict[str, str] = Field(default_factory=dict, description="Lower-cased request headers")
    cookies: Dict[str, str] = Field(default_factory=dict, description="Cookies parsed from the Cookie header")
    extras: Dict[str, Any] = Field(default_factory=dict, description="Adapter-specific named fields")
    body_reader: Optional[BodyReader] = Field(None, exclude=True, repr=False)

    _cache: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @field_validator("url", mode="before")
    @classmethod
    def parse_url(cls, v: Any) -> httpx.URL:
        return v if isinstance(v, httpx.URL) else httpx.URL(str(v))

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return str(v).upper()

    @classmethod
    def build(
        cls,
        method: str,
        url: Any,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        body_reader: Optional[BodyReader] = None,
        extras: Optional[Dict[str, Any]] = None,
    ) -> "InternalRequest":
        """
        Build a request from plain values.

        Cookies are parsed from the ``Cookie`` header. ``body`` is a
        convenience for already-buffered bodies; adapters that stream should
        pass ``body_reader`` instead.
        """
        normalized = {k.lower(): v for k, v in (headers or {}).items()}

        if body_reader is None and body is not None:
            async def body_reader() -> bytes:
                return body

        return cls(
            method=method,
            url=url,
            headers=normalized,
            cookies=cookie_parser(normalized.get("cookie", "")),
            extras=extras or {},
            body_reader=body_reader,
        )

    @property
    def path(self) -> str:
        return self.url.path

    @property
    def origin(self) -> str:
        return f"{self.url.scheme}://{self.url.netloc.decode('ascii')}"

    @property
    def query(self) -> httpx.QueryParams:
        return self.url.params

    async def body(self) -> bytes:
        if "body" not in self._cache:
            self._cache["body"] = await self.body_reader() if self.body_reader else b""
        return self._cache["body"]

    async def form(self) -> Dict[str, str]:
        """Decode an ``application/x-www-form-urlencoded`` body."""
        raw = await self.body()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError("Malformed form body") from e
        return dict(parse_qsl(text, keep_blank_values=True))

    async def json(self) -> Any:
        raw = await self.body()
        return json.loads(raw) if raw else None


# ============================================================================
# Internal Response
# ============================================================================

class InternalResponse(BaseModel, Generic[UserT]):
    """
    Result of handling a request.

    ``user`` is opaque to the engine. Partial responses are combined with
    ``merge``: the last non-empty scalar field wins and cookies accumulate in
    order.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: Optional[UserT] = Field(None, description="User created during login or refresh")
    status: Optional[int] = Field(None, description="HTTP status")
    redirect: Optional[str] = Field(None, description="Redirect target")
    cookies: List[Cookie] = Field(default_factory=list, description="Cookies to set, in order")
    error: Optional[Exception] = Field(None, description="Error that ended the request")
    body: Any = Field(None, description="Response body for routes that render content")

    def merge(self, other: Optional["InternalResponse"]) -> "InternalResponse":
        if other is None:
            return self
        for field in ("user", "status", "redirect", "error", "body"):
            value = getattr(other, field)
            if value is not None:
                setattr(self, field, value)
        self.cookies.extend(other.cookies)
        return self

    @property
    def is_empty(self) -> bool:
        return not (
            self.user is not None
            or self.status
            or self.redirect
            or self.cookies
            or self.error is not None
            or self.body is not None
        )
