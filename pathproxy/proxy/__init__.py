"""
Proxy Package
=============

Path-based reverse proxy: an exact-path route table with a mandatory default
host, and a handler that forwards requests to the matched backend.

Main Components:
----------------
- table.py: BaseURL/Route models and the RouteTable
- handler.py: ProxyRouter (registration, matching, forwarding, ASGI app)
- routes.py: FastAPI catch-all route delegating to the ProxyRouter
- errors.py: configuration error hierarchy

Usage:
------
    from pathproxy.proxy import ProxyRouter

    router = ProxyRouter("http://default-backend")
    router.handle_endpoint("/foo", "http://foo-backend")
"""

from .errors import (
    EmptyPath,
    InvalidDefaultHost,
    InvalidDefaultHostScheme,
    InvalidEndpointScheme,
    InvalidEndpointURL,
    ProxyConfigurationError,
    ProxyError,
)
from .handler import ProxyRouter
from .routes import proxy_router
from .table import BaseURL, Route, RouteTable

__all__ = [
    "BaseURL",
    "EmptyPath",
    "InvalidDefaultHost",
    "InvalidDefaultHostScheme",
    "InvalidEndpointScheme",
    "InvalidEndpointURL",
    "ProxyConfigurationError",
    "ProxyError",
    "ProxyRouter",
    "Route",
    "RouteTable",
    "proxy_router",
]
