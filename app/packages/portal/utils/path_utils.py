"""Path utilities: slugs and collision-free relative storage paths.

Rules shared by folder and document operations:
- Relative paths never start or end with '/'; segments are joined with '/';
- A slug is lower-case ASCII, runs of other characters collapse to a single '-';
- Collisions are resolved once by suffixing the owning entity id.
"""

from __future__ import annotations

import posixpath
import re
import unicodedata
from typing import Callable, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: Optional[str], separator: str = "-") -> str:
    """Lower-case ASCII slug; idempotent, may return an empty string."""
    if not value:
        return ""
    folded = unicodedata.normalize("NFKD", str(value)).encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub(separator, folded.lower()).strip(separator)


def join_path(*parts: Optional[str]) -> str:
    segments = [p.strip("/") for p in parts if p and p.strip("/")]
    return "/".join(segments)


def split_extension(filename: str) -> tuple[str, str]:
    """Split ``name.ext`` into ``(stem, ext)``; ``ext`` is lower-cased without the dot."""
    base = posixpath.basename((filename or "").replace("\\", "/"))
    stem, ext = posixpath.splitext(base)
    if not stem and ext:
        # ".env" style names have no extension
        return ext, ""
    return stem, ext.lstrip(".").lower()


def document_filename(name: str, default_stem: str = "document") -> str:
    """Stored filename of a document: ``slug(stem)`` + ``.`` + lower(ext)."""
    stem, ext = split_extension(name)
    slug = slugify(stem) or default_stem
    return f"{slug}.{ext}" if ext else slug


def with_suffix(candidate: str, disambiguator: object) -> str:
    """Insert ``-<disambiguator>`` before the file extension, if any."""
    stem, ext = posixpath.splitext(candidate)
    if stem and ext:
        return f"{stem}-{disambiguator}{ext}"
    return f"{candidate}-{disambiguator}"


def resolve_collision(
    base_path: str,
    candidate: str,
    exists: Callable[[str], bool],
    disambiguator: object,
) -> str:
    """Return ``base_path/candidate``, or its id-suffixed form when occupied.

    Only one suffixed attempt is made; if that is taken as well it is returned anyway.
    """
    path = join_path(base_path, candidate)
    if not exists(path):
        return path
    return join_path(base_path, with_suffix(candidate, disambiguator))
