"""
Proxy Routes - Catch-all Request Forwarding
============================================

Mounts the ProxyRouter as a catch-all route. Routes declared on the
application before this router (such as the health check) take precedence;
every other path is forwarded, whatever its method (PROPFIND, MKCOL and
other extension methods included).

Usage:
------
    from pathproxy.proxy.routes import proxy_router
    app.state.proxy = ProxyRouter("http://backend:8000")
    app.include_router(proxy_router)
"""

from fastapi import APIRouter, HTTPException, Request, status
from starlette.types import Receive, Scope, Send

from .handler import ProxyRouter

proxy_router = APIRouter()


def get_proxy(request: Request) -> ProxyRouter:
    """
    Get the ProxyRouter from app state.

    Raises:
        HTTPException: 503 if the application has not finished starting
    """
    proxy = getattr(request.app.state, "proxy", None)
    if proxy is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Proxy router not initialized"
        )
    return proxy


class ForwardEndpoint:
    """
    ASGI endpoint delegating to the application's ProxyRouter.

    Registered as a plain ASGI app rather than a FastAPI endpoint function,
    so the route carries no method list and accepts any method.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        proxy = get_proxy(Request(scope, receive))
        await proxy(scope, receive, send)


proxy_router.add_route(
    "/{full_path:path}",
    ForwardEndpoint(),
    include_in_schema=False,
    name="forward",
)
