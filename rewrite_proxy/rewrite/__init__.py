from .token_rewriter import RewriteSpec, rewrite, rewrite_spec
from .headers import to_inbound, to_outbound
from .body import is_textual, rewrite_body

__all__ = [
    "RewriteSpec",
    "rewrite",
    "rewrite_spec",
    "to_inbound",
    "to_outbound",
    "is_textual",
    "rewrite_body",
]
