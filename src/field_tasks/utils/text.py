"""Text normalization for dedupe keys and search."""

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Return the dedupe key form of *value*.

    Trims, lower-cases, strips diacritics (NFD + drop combining marks)
    and collapses internal whitespace runs to a single space, so
    ``"  Tornillos  Ñandú "`` and ``"tornillos nandu"`` share a key.
    """
    text = value.strip().lower()
    text = unicodedata.normalize("NFD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", text)


def contains_text(haystack: str, needle: str) -> bool:
    """Case-insensitive substring match used by list searches."""
    needle = needle.strip().lower()
    if not needle:
        return True
    return needle in haystack.lower()
