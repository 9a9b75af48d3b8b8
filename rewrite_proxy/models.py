import os
import re
from dataclasses import dataclass
from typing import Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from starlette.requests import Request

from rewrite_proxy.errors import ConfigurationError
from rewrite_proxy.rewrite.token_rewriter import RewriteSpec
from rewrite_proxy.vars import CLIENT_IP_HEADER, REGION_HEADER, ROUTE_ENV_VARS

DEFAULT_PORTS = {"http": 80, "https": 443}


class RouteConfig(BaseModel):
    """
    Immutable configuration for one proxy route.

    Regex settings are compiled once during validation and owned by the
    model, so admission checks and rewrites never recompile them.
    """

    model_config = ConfigDict(frozen=True)

    origin_host: str
    origin_port: int
    proxy_host: Optional[str] = None
    proxy_port: int = Field(default=80, ge=1, le=65535)
    proxy_protocol: Literal["http", "https"] = "https"
    pathname_filter: Optional[re.Pattern] = None
    user_agent_allow: Optional[re.Pattern] = None
    user_agent_deny: Optional[re.Pattern] = None
    ip_allow: Optional[re.Pattern] = None
    ip_deny: Optional[re.Pattern] = None
    region_allow: Optional[re.Pattern] = None
    region_deny: Optional[re.Pattern] = None
    fallback_redirect_url: Optional[str] = None
    debug_mode: bool = False

    @field_validator(*ROUTE_ENV_VARS, mode="before")
    @classmethod
    def _empty_means_unset(cls, value, info):
        if isinstance(value, str) and not value.strip():
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("proxy_protocol", mode="before")
    @classmethod
    def _normalize_protocol(cls, value):
        if isinstance(value, str):
            return value.strip().lower().rstrip(":")
        return value

    @field_validator("pathname_filter")
    @classmethod
    def _usable_as_rewrite_scope(cls, value):
        # The filter also scopes body rewriting, so it must compile after a token
        if value is not None:
            try:
                RewriteSpec("", "", value.pattern)
            except re.error as e:
                raise ValueError(f"not usable as a rewrite scope: {e}") from e
        return value

    @property
    def origin_token(self) -> str:
        return f"{self.origin_host}:{self.origin_port}"

    @property
    def proxy_token(self) -> str:
        return f"{self.proxy_host}:{self.proxy_port}"

    @property
    def path_scope(self) -> Optional[str]:
        """Source of the path filter, reused to scope body rewriting."""
        return self.pathname_filter.pattern if self.pathname_filter else None

    @classmethod
    def from_env(
        cls,
        origin_host: str,
        origin_port: int,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "RouteConfig":
        """Build the route configuration from environment variables."""
        if environ is None:
            environ = os.environ
        values = {
            field: environ[name]
            for field, name in ROUTE_ENV_VARS.items()
            if name in environ
        }
        try:
            return cls(origin_host=origin_host, origin_port=origin_port, **values)
        except ValidationError as e:
            fields = ", ".join(
                ROUTE_ENV_VARS.get(str(err["loc"][0]), str(err["loc"][0]))
                for err in e.errors()
                if err["loc"]
            )
            raise ConfigurationError(f"Invalid route configuration: {fields}") from e


@dataclass(frozen=True)
class RequestContext:
    """Facts about one inbound request, captured once at request entry."""

    method: str
    url: str
    path: str
    query: str
    origin_host: str
    origin_port: int
    client_ip: str = ""
    user_agent: str = ""
    region: str = ""
    headers: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        headers = request.headers
        client_ip = headers.get(CLIENT_IP_HEADER)
        if not client_ip and request.client:
            client_ip = request.client.host
        scheme = request.url.scheme
        return cls(
            method=request.method,
            url=str(request.url),
            path=request.url.path,
            query=request.url.query,
            origin_host=request.url.hostname or "",
            origin_port=request.url.port or DEFAULT_PORTS.get(scheme, 80),
            client_ip=client_ip or "",
            user_agent=headers.get("user-agent", ""),
            region=headers.get(REGION_HEADER, ""),
            headers=tuple(headers.items()),
        )


@dataclass(frozen=True)
class ProxyVerdict:
    """Outcome of admission control."""

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "ProxyVerdict":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "ProxyVerdict":
        return cls(allowed=False, reason=reason)
