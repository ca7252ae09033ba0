"""
URL slug helpers.
"""

import re
import unicodedata
from typing import Awaitable, Callable


def slugify(text: str, fallback: str = "item") -> str:
    """Lower-case ASCII slug: ``"Jazz & Blues Night!"`` -> ``"jazz-blues-night"``."""
    normalized = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or fallback


async def unique_slug(base: str, exists: Callable[[str], Awaitable[bool]]) -> str:
    """Append ``-1``, ``-2``, ... to ``base`` until ``exists`` reports it free."""
    candidate = base
    counter = 1
    while await exists(candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
