from rewrite_proxy.models import RequestContext


def describe_request(context: RequestContext) -> str:
    """Request metadata appended to server-side log lines."""
    return (
        f"clientIp: {context.client_ip or '<unknown>'}, "
        f"user-agent: {context.user_agent or '<none>'}, "
        f"url: {context.url}"
    )
