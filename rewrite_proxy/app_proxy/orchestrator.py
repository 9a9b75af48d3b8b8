import logging
from typing import AsyncIterator, Mapping, Optional

import httpx
from fastapi import Request
from fastapi.responses import (
    PlainTextResponse,
    RedirectResponse,
    Response,
    StreamingResponse,
)
from opentelemetry import trace
from prometheus_client import Counter
from starlette.background import BackgroundTask

from rewrite_proxy.admission import evaluate
from rewrite_proxy.app_proxy.decoy import decoy_response
from rewrite_proxy.errors import ConfigurationError, ProxyError, TransportError
from rewrite_proxy.models import ProxyVerdict, RequestContext, RouteConfig
from rewrite_proxy.rewrite import is_textual, rewrite_body, to_inbound, to_outbound
from rewrite_proxy.rewrite.headers import HEADER_ENCODING
from rewrite_proxy.utils import describe_request
from rewrite_proxy.utils.exception_logging import log_exception_with_details
from rewrite_proxy.utils.traced_requests import traced_request
from rewrite_proxy.vars import PROXY_TIMEOUT

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

ADMISSION_DENIALS = Counter(
    "proxy_admission_denied_total",
    "Requests denied by admission control",
    ["reason"],
)

# Hop-by-hop headers that should NOT be forwarded (RFC 7230)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# The transport derives Host from the backend URL
OUTBOUND_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {"host"}

# A rewritten body is re-encoded without compression and has a new length
REWRITTEN_BODY_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {
    "content-length",
    "content-encoding",
}


def get_target_url(request: Request, config: RouteConfig) -> str:
    """Point the inbound URL at the backend, keeping path and query."""
    return str(
        request.url.replace(
            scheme=config.proxy_protocol,
            hostname=config.proxy_host,
            port=config.proxy_port,
        )
    )


def prepare_headers(context: RequestContext, config: RouteConfig) -> httpx.Headers:
    """Headers for the backend request, with origin tokens swapped for the backend's."""
    forwarded = [
        (name, value)
        for name, value in context.headers
        if name.lower() not in OUTBOUND_EXCLUDED_HEADERS
    ]
    return to_outbound(forwarded, config.origin_token, config.proxy_token)


def prepare_response_headers(
    upstream: httpx.Response, config: RouteConfig, body_rewritten: bool
) -> httpx.Headers:
    excluded = (
        REWRITTEN_BODY_EXCLUDED_HEADERS if body_rewritten else HOP_BY_HOP_HEADERS
    )
    kept = [
        (name, value)
        for name, value in upstream.headers.multi_items()
        if name.lower() not in excluded
    ]
    return to_inbound(kept, config.proxy_token, config.origin_token, config.debug_mode)


def deny_response(config: Optional[RouteConfig]) -> Response:
    """Redirect to the fallback URL when one is configured, otherwise serve the decoy page."""
    if config is not None and config.fallback_redirect_url:
        return RedirectResponse(config.fallback_redirect_url, status_code=302)
    return decoy_response()


def _request_content(request: Request) -> Optional[AsyncIterator[bytes]]:
    if "content-length" in request.headers or "transfer-encoding" in request.headers:
        return request.stream()
    return None


def _with_headers(response: Response, headers: httpx.Headers) -> Response:
    # Appended one by one so repeated headers such as Set-Cookie survive
    for name, value in headers.multi_items():
        response.headers.append(name, value)
    return response


async def _close(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    await upstream.aclose()
    await client.aclose()


async def forward_to_backend(
    request: Request,
    context: RequestContext,
    config: RouteConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Response:
    """
    Send the rewritten request to the backend and rewrite its response.

    Exactly one outbound request is issued; failures are raised as
    TransportError or BodyDecodeError and never retried. Textual bodies are
    buffered and rewritten, anything else is streamed through untouched.
    """
    span = trace.get_current_span()
    target_url = get_target_url(request, config)
    span.set_attribute("proxy.target_url", target_url)
    logger.debug(f"[Proxy] {context.method} {context.url} -> {target_url}")

    client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(PROXY_TIMEOUT),
        follow_redirects=False,
    )
    try:
        outbound = client.build_request(
            method=context.method,
            url=target_url,
            headers=prepare_headers(context, config),
            content=_request_content(request),
        )
        upstream = await client.send(outbound, stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        raise TransportError(f"{context.method} {target_url} failed: {e}") from e
    except Exception:
        await client.aclose()
        raise

    upstream.headers.encoding = HEADER_ENCODING
    span.set_attribute("proxy.status_code", upstream.status_code)
    textual = is_textual(upstream.headers.get("content-type"))
    span.set_attribute("proxy.body_rewritten", textual)

    streaming = False
    try:
        headers = prepare_response_headers(upstream, config, body_rewritten=textual)
        body = await rewrite_body(
            upstream, config.proxy_token, config.origin_token, config.path_scope
        )
        streaming = not textual
    except httpx.HTTPError as e:
        raise TransportError(f"Reading body from {target_url} failed: {e}") from e
    finally:
        # A streamed body is closed by the response once it has been sent
        if not streaming:
            await _close(upstream, client)

    if textual:
        response = Response(content=body, status_code=upstream.status_code)
    else:
        response = StreamingResponse(
            body,
            status_code=upstream.status_code,
            background=BackgroundTask(_close, upstream, client),
        )
    return _with_headers(response, headers)


async def handle_request(
    request: Request,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Response:
    """
    Run one inbound request through admission, dispatch and rewriting.

    Denied requests get a redirect or the decoy page; backend failures get a
    bare 500. Neither exposes the reason to the client.
    """
    context = RequestContext.from_request(request)
    with traced_request(
        tracer,
        operation="proxy_request",
        context=context,
        start_message=f"[Proxy] Handling {context.method} {context.url}",
    ) as span:
        config = None
        try:
            config = RouteConfig.from_env(
                context.origin_host, context.origin_port, environ
            )
        except ConfigurationError as e:
            log_exception_with_details(
                logger, f"[Proxy] {describe_request(context)}", e, logging.WARNING
            )
            verdict = ProxyVerdict.deny("invalid_configuration")
        else:
            verdict = evaluate(context, config)

        span.set_attribute("proxy.verdict", "allow" if verdict.allowed else "deny")
        if not verdict.allowed:
            span.set_attribute("proxy.deny_reason", verdict.reason)
            ADMISSION_DENIALS.labels(reason=verdict.reason).inc()
            logger.warning(
                f"[Admission] Denied ({verdict.reason}), {describe_request(context)}"
            )
            return deny_response(config)

        try:
            return await forward_to_backend(request, context, config, transport)
        except ProxyError as e:
            span.set_attribute("proxy.error", type(e).__name__)
            log_exception_with_details(
                logger, f"[Proxy] Fetch error, {describe_request(context)}", e
            )
            return PlainTextResponse("Internal Server Error", status_code=500)
