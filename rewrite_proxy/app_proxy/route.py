from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request

from rewrite_proxy.app_proxy.orchestrator import handle_request

router = APIRouter()


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport for backend requests; None uses the network."""
    return None


# Register catch-all route for proxying
@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_all(
    request: Request,
    path: str,
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """Catch-all route that proxies all requests to the configured backend."""
    return await handle_request(request, transport=transport)
