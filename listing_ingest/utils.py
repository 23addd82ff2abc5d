"""Utility helpers for URL resolution, identifiers and path handling."""

from __future__ import annotations

import re
import secrets
from urllib.parse import urljoin, urlparse

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
SEGMENT_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def safe_path_segment(value: str) -> str:
    """Reduce an opaque identifier to a single directory name.

    Separators, dots-only names and anything outside ``[A-Za-z0-9._-]`` are
    neutralized, so ``../etc`` becomes ``etc``. Raises ``ValueError`` when
    nothing usable is left.
    """
    segment = SEGMENT_PATTERN.sub("-", (value or "").strip()).strip(".-")
    if not segment:
        raise ValueError(f"Unusable path segment: {value!r}")
    return segment


def resolve_url(candidate: str, base_url: str) -> str:
    """Turn a relative, protocol-relative or absolute reference into an absolute URL."""
    if not candidate:
        return ""
    candidate = candidate.strip()
    if SCHEME_PATTERN.match(candidate):
        return candidate
    if candidate.startswith("//"):
        return "https:" + candidate

    try:
        parsed = urlparse(base_url or "")
        if not parsed.scheme or not parsed.netloc:
            return candidate
        return urljoin(base_url, candidate)
    except ValueError:
        return candidate


def random_id() -> str:
    """Opaque label for extracted records; not guaranteed unique."""
    return secrets.token_hex(8)
