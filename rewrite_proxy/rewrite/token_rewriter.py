"""
Host token substitution shared by header and body rewriting.

A token is a ``host:port`` string. Matches are boundary aware: a token is not
rewritten when it is part of a longer dotted host (``sub.backend.example:443``)
or when word characters continue directly after the port
(``backend.example:4430``).

A path scope is a regular expression that must match directly after the
token for it to be rewritten. Leading global flags such as ``(?i)`` apply to
the scope only, and a leading ``^`` (after any such flags) is dropped since
the scope never starts the input. A ``^`` nested inside a group, as in
``(?:^/v1)``, is kept and then only matches at the very start of the text.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

_BEFORE_TOKEN = r"(?<![\w.])"
_AFTER_TOKEN = r"(?!\w)"
_LEADING_FLAGS = re.compile(r"\(\?([aiLmsux]+)\)")


def _scope_expression(path_scope: str) -> str:
    flags = ""
    match = _LEADING_FLAGS.match(path_scope)
    while match:
        flags += match.group(1)
        path_scope = path_scope[match.end():]
        match = _LEADING_FLAGS.match(path_scope)
    if path_scope.startswith("^"):
        path_scope = path_scope[1:]
    if flags:
        return f"(?{flags}:{path_scope})"
    return f"(?:{path_scope})"


@dataclass(frozen=True)
class RewriteSpec:
    """
    A compiled ``source -> target`` token substitution.

    Raises ``re.error`` when the path scope is not a valid expression.
    """

    source: str
    target: str
    path_scope: Optional[str] = None
    pattern: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        expression = f"{_BEFORE_TOKEN}{re.escape(self.source)}{_AFTER_TOKEN}"
        if self.path_scope:
            # Lookahead keeps the scope's own groups out of the replacement
            expression += f"(?={_scope_expression(self.path_scope)})"
        object.__setattr__(self, "pattern", re.compile(expression))

    def apply(self, text: str) -> str:
        if not self.source or self.source not in text:
            return text
        return self.pattern.sub(lambda _m: self.target, text)


@lru_cache(maxsize=256)
def rewrite_spec(
    source: str, target: str, path_scope: Optional[str] = None
) -> RewriteSpec:
    """Return the cached spec for a token pair and optional path scope."""
    return RewriteSpec(source, target, path_scope)


def rewrite(
    text: str, source: str, target: str, path_scope: Optional[str] = None
) -> str:
    """Replace every boundary-safe occurrence of ``source`` in ``text`` with ``target``."""
    return rewrite_spec(source, target, path_scope).apply(text)
