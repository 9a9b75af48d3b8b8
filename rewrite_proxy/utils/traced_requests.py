import logging
from contextlib import contextmanager
from typing import Dict, Optional

from opentelemetry.trace import Tracer

from rewrite_proxy.models import RequestContext

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    context: RequestContext,
    start_message: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set common request attributes, and log a start message."""
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("http.request.method", context.method)
        span.set_attribute("url.full", context.url)
        if context.client_ip:
            span.set_attribute("client.address", context.client_ip)
        if context.region:
            span.set_attribute("client.region", context.region)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.debug(start_message)
        yield span
