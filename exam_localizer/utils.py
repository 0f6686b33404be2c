"""Utility helpers for URL canonicalization and local path handling."""

from __future__ import annotations

import os
import posixpath
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

RESIZE_SEGMENT_PATTERN = re.compile(r"(?<!/)/fly/@[^/?#]*(?=/)")
REMOTE_PATTERN = re.compile(r"^(?:[a-z][a-z0-9+.-]*:|//)", re.IGNORECASE)
IMAGES_DIRNAME = "images"
_FETCHABLE_SCHEMES = {"http", "https"}


def canonical_url(url: str) -> str:
    """Strip CDN resize segments, query string and fragment from an image URL."""
    value = url.strip()
    value = value.split("#", 1)[0].split("?", 1)[0]
    while True:
        stripped = RESIZE_SEGMENT_PATTERN.sub("", value)
        if stripped == value:
            return value
        value = stripped


def local_image_path(url: str) -> Optional[str]:
    """Map a canonical URL to ``images/<host>/<path>``; None if it cannot be stored."""
    parsed = urlparse(url)
    if parsed.scheme.lower() not in _FETCHABLE_SCHEMES or not parsed.hostname:
        return None
    path = parsed.path
    if not path or path.endswith("/"):
        return None
    segments = path.lstrip("/").split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return None
    host = parsed.hostname.replace(".", "_")
    return "/".join([IMAGES_DIRNAME, host, *segments])


def is_remote_reference(value: str) -> bool:
    """True for absolute URLs (any scheme) and protocol-relative references."""
    return bool(REMOTE_PATTERN.match(value.strip()))


def relative_prefix(from_dir: Path, root: Path) -> str:
    """Path prefix leading from ``from_dir`` back to ``root``, e.g. ``../../``."""
    rel = Path(os.path.relpath(root, from_dir)).as_posix()
    if rel == ".":
        return ""
    return rel + "/"


def resolve_local_reference(src: str, record_dir: str) -> Optional[str]:
    """Resolve a relative ``src`` against a record directory (both relative to root).

    Returns the normalized posix path relative to the root, or None when the
    reference escapes the root.
    """
    joined = posixpath.normpath(posixpath.join(record_dir, src.strip()))
    if joined == ".." or joined.startswith("../") or posixpath.isabs(joined):
        return None
    return joined


def is_contained_local_path(path: str) -> bool:
    """True for a relative ``images/...`` path that stays inside the corpus root."""
    if not path or posixpath.isabs(path) or "\\" in path:
        return False
    segments = path.split("/")
    if segments[0] != IMAGES_DIRNAME or len(segments) < 3:
        return False
    return not any(segment in ("", ".", "..") for segment in segments)
