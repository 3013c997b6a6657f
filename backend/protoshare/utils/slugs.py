"""URL slug helpers for project names."""

import re
from typing import Container

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
FALLBACK_SLUG = "project"


def slugify(name: str) -> str:
    """Lower-case `name` and collapse anything outside [a-z0-9] into dashes."""
    slug = _NON_ALNUM.sub("-", (name or "").lower()).strip("-")
    return slug or FALLBACK_SLUG


def unique_slug(base: str, taken: Container[str]) -> str:
    """Return `base`, or `base-1`, `base-2`, ... whichever is first not in `taken`."""
    candidate = base
    counter = 1
    while candidate in taken:
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
