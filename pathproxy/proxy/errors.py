"""
Proxy Errors
============

Configuration errors are raised synchronously while the route table is being
built. They are never retried and never replaced by a fallback configuration.

Forwarding errors are not raised to callers of ``serve``; they are turned into
a single gateway failure response (see ``handler.py``).
"""

from typing import Optional


class ProxyError(Exception):
    """Base exception for all proxy errors"""
    pass


class ProxyConfigurationError(ProxyError, ValueError):
    """Base exception for route table construction/registration errors"""

    message = "proxy configuration error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        if detail:
            super().__init__(f"{self.message}: {detail}")
        else:
            super().__init__(self.message)


class InvalidDefaultHost(ProxyConfigurationError):
    """Default host string could not be parsed as a URL with a host"""

    message = "proxy: invalid default host"


class InvalidDefaultHostScheme(InvalidDefaultHost):
    """Default host scheme is not http or https"""

    message = "proxy: invalid default host scheme"


class EmptyPath(ProxyConfigurationError):
    """Route registered with an empty path"""

    message = "path is empty"


class InvalidEndpointURL(ProxyConfigurationError):
    """Route endpoint could not be parsed as a URL with a host"""

    message = "invalid endpoint url"


class InvalidEndpointScheme(InvalidEndpointURL):
    """Route endpoint uses a scheme other than http, https or none"""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"unsupported scheme {scheme!r}")
