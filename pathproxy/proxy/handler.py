"""
Forwarding Handler - Path-based Reverse Proxy
==============================================

This module implements the request forwarding side of the proxy: an inbound
request is matched against the route table, rewritten to the matched backend
and relayed back to the caller.

Forwarding Rules:
-----------------
1. Target = exact route for the request path, else the default host
2. Only scheme, host and port change; raw path and query are kept as
   received (query bytes outside printable ASCII are percent-encoded)
3. Method, headers and body stream are forwarded verbatim (Host is derived
   from the target)
4. Status code, raw headers and raw body are relayed back unchanged
5. Transport failures are not retried and become a single 502/504 response

Usage:
------
    router = ProxyRouter("http://default-backend:8000")
    router.handle_endpoint("/foo", "http://foo-backend:9000")

    # Inside any Starlette/FastAPI endpoint
    response = await router.serve(request)

    # Or as a plain ASGI application; the lifespan shutdown closes the
    # client the router created
    uvicorn.run(router)
"""

import logging
import string
from typing import TYPE_CHECKING, AsyncIterator, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx
from fastapi import Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from ..models import ErrorResponse
from .table import BaseURL, Route, RouteTable

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

# Derived from the target URL by the transport
EXCLUDED_REQUEST_HEADERS = frozenset({b"host"})

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

# Printable ASCII kept as received in the query; "#" would start a fragment
QUERY_SAFE_CHARS = string.punctuation.replace("#", "")


class ProxyRouter:
    """
    Reverse-proxy handler routing requests by exact path.

    Attributes:
        table: Route table consulted for every request
        client: Transport used for outbound requests
    """

    def __init__(self, default_host: str, client: Optional[httpx.AsyncClient] = None):
        """
        Create a router forwarding to ``default_host`` when no route matches.

        Args:
            default_host: Absolute http(s) URL of the default backend
            client: Optional transport. When omitted, the router creates and
                    owns one on first use.

        Raises:
            InvalidDefaultHost: If default_host cannot be parsed
            InvalidDefaultHostScheme: If default_host is not http or https
        """
        self.table = RouteTable(default_host)
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: "Settings", client: Optional[httpx.AsyncClient] = None) -> "ProxyRouter":
        """
        Build a router from application settings.

        Args:
            settings: Settings with PROXY_DEFAULT_HOST and PROXY_ROUTES
            client: Optional transport shared with the application

        Returns:
            Router with every configured route registered
        """
        router = cls(settings.PROXY_DEFAULT_HOST, client=client)
        router.handle_endpoints(settings.PROXY_ROUTES)

        logger.info(
            "Proxy routes loaded",
            extra={
                "default_target": str(router.default_target),
                "route_count": len(router.table),
            }
        )
        return router

    # ========================================================================
    # Route Table
    # ========================================================================

    @property
    def default_target(self) -> BaseURL:
        return self.table.default_target

    @property
    def routes(self) -> Mapping[str, Route]:
        return self.table.routes

    def handle_endpoint(self, path: str, endpoint: str) -> None:
        """
        Forward requests for exactly ``path`` to ``endpoint``.

        Raises:
            EmptyPath: If path is empty
            InvalidEndpointURL: If endpoint is not a valid URL
        """
        self.table.register(path, endpoint)

    def handle_endpoints(self, endpoints: Mapping[str, str]) -> None:
        """Register several routes; stops at the first invalid one"""
        for path, endpoint in endpoints.items():
            self.handle_endpoint(path, endpoint)

    def match(self, request_path: str) -> BaseURL:
        return self.table.match(request_path)

    # ========================================================================
    # Transport
    # ========================================================================

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=False)
        return self._client

    async def aclose(self) -> None:
        """Close the transport if this router created it"""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ========================================================================
    # Forwarding
    # ========================================================================

    def build_outbound_request(self, request: Request, target: BaseURL) -> httpx.Request:
        """
        Rewrite an inbound request onto ``target``.

        Args:
            request: Inbound request
            target: Backend chosen by ``match``

        Returns:
            httpx.Request ready to be sent, without client default headers
        """
        scheme = target.scheme or request.url.scheme
        url = f"{scheme}://{target.netloc}{_request_target(request.scope)}"

        headers: List[Tuple[bytes, bytes]] = [
            (name, value)
            for name, value in request.headers.raw
            if name.lower() not in EXCLUDED_REQUEST_HEADERS
        ]

        has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
        content = request.stream() if has_body else None

        return httpx.Request(request.method, url, headers=headers, content=content)

    async def serve(self, request: Request) -> Response:
        """
        Forward ``request`` to its backend and relay the response.

        Args:
            request: Inbound request

        Returns:
            Streaming response carrying the backend status, headers and body,
            or a JSON gateway error if the backend could not be reached
        """
        target = self.match(request.url.path)
        outbound = self.build_outbound_request(request, target)

        log_context = {
            "method": request.method,
            "request_path": request.url.path,
            "target": str(target),
        }
        logger.info("Forwarding request", extra=log_context)

        try:
            upstream = await self.client.send(outbound, stream=True, follow_redirects=False)

        except httpx.TimeoutException as e:
            logger.error(f"Backend request timeout: {e!r}", extra=log_context)
            return gateway_error(
                status.HTTP_504_GATEWAY_TIMEOUT,
                "gateway_timeout",
                "Backend service timeout",
                str(e),
            )

        except httpx.RequestError as e:
            logger.error(f"Backend request failed: {e!r}", extra=log_context)
            return gateway_error(
                status.HTTP_502_BAD_GATEWAY,
                "bad_gateway",
                "Cannot reach backend service",
                str(e),
            )

        logger.debug(
            "Relaying backend response",
            extra={**log_context, "status_code": upstream.status_code}
        )

        # Closes the upstream even if the body iterator never starts
        response = StreamingResponse(
            relay_body(upstream, log_context),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = [(name.lower(), value) for name, value in upstream.headers.raw]
        return response

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return

        if scope["type"] != "http":
            raise RuntimeError(f"ProxyRouter only handles http scopes, got {scope['type']!r}")

        response = await self.serve(Request(scope, receive))
        await response(scope, receive, send)

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        """Lifespan protocol when the router is served on its own"""
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.aclose()
                logger.info("Closed upstream client")
                await send({"type": "lifespan.shutdown.complete"})
                return


def _request_target(scope: Scope) -> str:
    """
    Path and query as received on the wire, falling back to the decoded path.

    Query bytes outside printable ASCII are percent-encoded one byte at a
    time, so the backend decodes them to the original bytes.
    """
    raw_path = scope.get("raw_path")
    if raw_path and raw_path.isascii():
        target = raw_path.decode("ascii")
    else:
        target = scope["path"]

    query = scope.get("query_string", b"")
    if query:
        target = f"{target}?{quote(query, safe=QUERY_SAFE_CHARS)}"
    return target


# ============================================================================
# Response Relay
# ============================================================================

async def relay_body(upstream: httpx.Response, log_context: Dict[str, str]) -> AsyncIterator[bytes]:
    """
    Yield the backend body exactly as received (no content decoding).

    The upstream response is always closed, including when the caller
    disconnects or the backend stream fails after headers were sent.
    """
    try:
        if upstream.is_stream_consumed:
            # Loaded eagerly by the transport
            yield upstream.content
            return

        async for chunk in upstream.aiter_raw():
            yield chunk
    except (httpx.HTTPError, httpx.StreamError) as e:
        # Status line is already sent; the server has to abort the connection
        logger.error(f"Backend response stream failed: {e!r}", extra=log_context)
        raise
    finally:
        await upstream.aclose()


def gateway_error(status_code: int, error: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump())
