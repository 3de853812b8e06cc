import re

_WHITESPACE = re.compile(r"\s+")
_INVALID = re.compile(r"[^a-z0-9-]")
_HYPHENS = re.compile(r"-{2,}")


def dashed_name(name: str) -> str:
    """Derive the URL slug for a name: ``"Acme Tools & Co."`` -> ``"acme-tools-co"``."""
    slug = _WHITESPACE.sub("-", name.strip().lower())
    slug = _INVALID.sub("", slug)
    return _HYPHENS.sub("-", slug).strip("-")
