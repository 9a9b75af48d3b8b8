from typing import AsyncIterator, Optional, Union

import httpx

from rewrite_proxy.errors import BodyDecodeError
from rewrite_proxy.rewrite.token_rewriter import rewrite

DEFAULT_CHARSET = "utf-8"


def is_textual(content_type: Optional[str]) -> bool:
    """True for any ``text/*`` media type."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type.startswith("text/")


async def rewrite_body(
    response: httpx.Response,
    proxy_token: str,
    origin_token: str,
    path_scope: Optional[str] = None,
) -> Union[bytes, AsyncIterator[bytes]]:
    """
    Rewrite backend tokens in a textual response body.

    Textual bodies are read in full, decoded with their declared charset,
    rewritten and re-encoded with the same charset. Any other body is handed
    back as the raw upstream byte stream without being read.
    """
    if not is_textual(response.headers.get("content-type")):
        return response.aiter_raw()

    content = await response.aread()
    charset = response.charset_encoding or DEFAULT_CHARSET
    try:
        text = content.decode(charset)
        return rewrite(text, proxy_token, origin_token, path_scope).encode(charset)
    except (UnicodeError, LookupError) as e:
        raise BodyDecodeError(
            f"Cannot decode {len(content)} byte body as {charset}: {e}"
        ) from e
