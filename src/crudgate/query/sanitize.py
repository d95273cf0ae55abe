"""
Identifier sanitizing.

Drivers cannot bind column or table names, so every identifier that ends up
in SQL text goes through one of these helpers first. An empty result means
the identifier is unusable and the caller must abort.
"""

import re
from typing import Iterable, List

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_]")


def sanitize_identifier(name: str) -> str:
    """Return ``name`` if it is a plain SQL identifier, else ``""``"""
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        return ""
    return name


def strip_identifier(name: str) -> str:
    """Drop every character outside ``[A-Za-z0-9_]``.

    Used for identifiers coming from stored policies. The stripped result is
    checked again with :func:`sanitize_identifier`, so ``"123abc"`` still
    comes back empty.
    """
    if not isinstance(name, str):
        return ""
    return sanitize_identifier(_DISALLOWED_RE.sub("", name))


def is_safe_identifier(name: str) -> bool:
    return sanitize_identifier(name) != ""


def quote_identifier_list(columns: Iterable[str]) -> List[str]:
    """Sanitize a select list, keeping ``*`` and dropping unsafe names"""
    result = []
    for col in columns:
        if col == "*":
            result.append(col)
        elif is_safe_identifier(col):
            result.append(col)
    return result
