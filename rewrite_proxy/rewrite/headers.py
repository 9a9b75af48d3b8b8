from typing import Iterable, List, Mapping, Tuple, Union

import httpx

from rewrite_proxy.rewrite.token_rewriter import rewrite_spec

HeaderSource = Union[httpx.Headers, Mapping[str, str], Iterable[Tuple[str, str]]]

CONTENT_SECURITY_POLICY = "content-security-policy"
HEADER_ENCODING = "latin-1"


def header_items(headers: HeaderSource) -> List[Tuple[str, str]]:
    """Flatten a header collection into pairs, keeping repeated headers."""
    if isinstance(headers, httpx.Headers):
        return headers.multi_items()
    if hasattr(headers, "items"):
        return list(headers.items())
    return list(headers)


def _rewrite_values(headers: HeaderSource, source: str, target: str) -> httpx.Headers:
    # Values may carry obs-text bytes; latin-1 maps every byte one to one
    spec = rewrite_spec(source, target)
    return httpx.Headers(
        [(name, spec.apply(value)) for name, value in header_items(headers)],
        encoding=HEADER_ENCODING,
    )


def to_outbound(
    headers: HeaderSource, origin_token: str, proxy_token: str
) -> httpx.Headers:
    """Translate public origin tokens in request headers to the backend token."""
    return _rewrite_values(headers, origin_token, proxy_token)


def to_inbound(
    headers: HeaderSource, proxy_token: str, origin_token: str, debug_mode: bool = False
) -> httpx.Headers:
    """
    Translate backend tokens in response headers to the public origin token.

    In debug mode the content security policy is dropped so rewritten pages
    can be inspected freely in a browser.
    """
    rewritten = _rewrite_values(headers, proxy_token, origin_token)
    if debug_mode and CONTENT_SECURITY_POLICY in rewritten:
        del rewritten[CONTENT_SECURITY_POLICY]
    return rewritten
