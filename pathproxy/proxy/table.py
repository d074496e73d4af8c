"""
Route Table - Exact Path to Backend Mapping
===========================================

Holds the mandatory default target and the exact-path routes registered on
top of it. Matching is an exact key lookup: there is no prefix, wildcard or
longest-match logic, so every concrete path that should go somewhere other
than the default host has to be registered on its own.

Concurrency:
------------
Registration never mutates the published mapping. It copies the current
snapshot, applies the change and publishes the copy, all under a writer
lock. ``match`` reads whichever snapshot is current without locking.
"""

import logging
import re
import threading
from types import MappingProxyType
from typing import Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    EmptyPath,
    InvalidDefaultHost,
    InvalidDefaultHostScheme,
    InvalidEndpointScheme,
    InvalidEndpointURL,
)

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

# scheme ":" "//" authority
_AUTHORITY_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9+.\-]*:)?//(?P<authority>[^/?#]*)")
_HOST_CHARS_RE = re.compile(r"^[A-Za-z0-9\-._~!$&'()*+,;=\[\]:%\"<>\u0080-\U0010ffff]*$")
_ESCAPE_RE = re.compile(r"%(.{0,2})", re.DOTALL)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


# ============================================================================
# Models
# ============================================================================

class BaseURL(BaseModel):
    """
    Scheme and host (with optional port) identifying a backend.

    An empty scheme marks a scheme-relative target (``//host/``): the
    inbound request's scheme is kept when forwarding to it.
    """

    model_config = ConfigDict(frozen=True)

    scheme: str = Field(default="", description="http, https or empty")
    host: str = Field(..., min_length=1, description="Host name or IP address")
    port: Optional[int] = Field(default=None, ge=0, le=65535)

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is None:
            return host
        return f"{host}:{self.port}"

    def __str__(self) -> str:
        if not self.scheme:
            return f"//{self.netloc}"
        return f"{self.scheme}://{self.netloc}"


class Route(BaseModel):
    """A single exact-path route"""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1)
    target: BaseURL


# ============================================================================
# URL Parsing
# ============================================================================

def _check_host(host: str) -> None:
    """
    Reject host text that would not survive a strict URL parser.

    Percent escapes are only allowed when they encode a non-ASCII byte or a
    literal ``%`` (IPv6 zone identifiers).
    """
    if not _HOST_CHARS_RE.match(host):
        raise ValueError(f"invalid character in host name {host!r}")

    for match in _ESCAPE_RE.finditer(host):
        digits = match.group(1)
        if len(digits) != 2 or not set(digits) <= _HEX_DIGITS:
            raise ValueError(f"invalid URL escape {match.group(0)!r}")
        if int(digits, 16) < 0x80 and digits != "25":
            raise ValueError(f"invalid URL escape {match.group(0)!r} in host {host!r}")


def _split_host(authority: str) -> str:
    hostport = authority.rpartition("@")[2]
    if hostport.startswith("["):
        return hostport[:hostport.find("]") + 1] if "]" in hostport else hostport
    return hostport.partition(":")[0]


def parse_url(raw: str) -> httpx.URL:
    """
    Parse a URL string, applying strict host validation.

    Args:
        raw: URL string, absolute (``http://host:port/``) or
             scheme-relative (``//host/``)

    Returns:
        Parsed httpx.URL

    Raises:
        ValueError: If the string is not a parseable URL. A URL without an
                    authority component parses with an empty host; callers
                    decide whether that is acceptable.
    """
    authority = _AUTHORITY_RE.match(raw)
    if authority:
        _check_host(_split_host(authority.group("authority")))

    try:
        return httpx.URL(raw)
    except httpx.InvalidURL as e:
        raise ValueError(str(e)) from e


def to_base_url(url: httpx.URL) -> BaseURL:
    """Keep only scheme, host and port of a parsed URL"""
    return BaseURL(scheme=url.scheme, host=url.host, port=url.port)


# ============================================================================
# Route Table
# ============================================================================

class RouteTable:
    """
    Exact-path route table with a mandatory default target.

    Attributes:
        default_target: BaseURL used when no route matches
        routes: Read-only snapshot of the registered routes
    """

    def __init__(self, default_host: str):
        """
        Build an empty route table around a validated default host.

        Args:
            default_host: Absolute URL of the default backend

        Raises:
            InvalidDefaultHost: If the URL cannot be parsed or has no host
            InvalidDefaultHostScheme: If the scheme is not http or https
        """
        try:
            url = parse_url(default_host)
        except ValueError as e:
            raise InvalidDefaultHost(str(e)) from e

        if url.scheme not in ALLOWED_SCHEMES:
            raise InvalidDefaultHostScheme(url.scheme or "missing scheme")

        if not url.host:
            raise InvalidDefaultHost(f"missing host in {default_host!r}")

        self.default_target: BaseURL = to_base_url(url)
        self._routes: Mapping[str, Route] = MappingProxyType({})
        self._write_lock = threading.Lock()

    @property
    def routes(self) -> Mapping[str, Route]:
        return self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, path: object) -> bool:
        return path in self._routes

    def register(self, path: str, endpoint: str) -> Route:
        """
        Insert or replace the route for ``path``.

        Args:
            path: Exact request path to match (non-empty)
            endpoint: URL of the backend for this path

        Returns:
            The registered Route

        Raises:
            EmptyPath: If path is empty
            InvalidEndpointURL: If endpoint cannot be parsed or has no host
            InvalidEndpointScheme: If endpoint scheme is not http, https or empty
        """
        if not path:
            raise EmptyPath()

        try:
            url = parse_url(endpoint)
        except ValueError as e:
            raise InvalidEndpointURL(str(e)) from e

        if url.scheme and url.scheme not in ALLOWED_SCHEMES:
            raise InvalidEndpointScheme(url.scheme)

        if not url.host:
            raise InvalidEndpointURL(f"missing host in {endpoint!r}")

        route = Route(path=path, target=to_base_url(url))

        with self._write_lock:
            routes: Dict[str, Route] = dict(self._routes)
            replaced = routes.get(path)
            routes[path] = route
            self._routes = MappingProxyType(routes)

        if replaced is not None:
            logger.info(
                "Replaced route",
                extra={"path": path, "previous": str(replaced.target), "target": str(route.target)}
            )
        else:
            logger.debug("Registered route", extra={"path": path, "target": str(route.target)})

        return route

    def match(self, request_path: str) -> BaseURL:
        """Return the target registered for exactly ``request_path``, else the default target"""
        route = self._routes.get(request_path)
        if route is None:
            return self.default_target
        return route.target
