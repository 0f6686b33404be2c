"""Image downloading and validation utilities."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import requests
from filetype import guess

from .config import LocalizeConfig
from .errors import DownloadError
from .registry import ImageRegistry

logger = logging.getLogger("exam_localizer")

CHUNK_SIZE = 64 * 1024
SIGNATURE_BYTES = 262


@dataclass
class FetchStats:
    """Running totals for a fetch pass."""

    attempted: int = 0
    downloaded: int = 0
    already_present: int = 0
    retried: int = 0
    failed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def infer_image_extension(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Guess an image file extension from the file signature or HTTP metadata."""
    detected = detect_image_format(data)
    if detected:
        return detected
    if not content_type:
        return None
    parts = content_type.split(";")[0].split("/")
    if len(parts) == 2 and parts[0].strip().lower() == "image":
        ext = parts[1].strip().lower()
        if ext == "jpeg":
            ext = "jpg"
        return ext or None
    return None


def build_session(config: LocalizeConfig) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": config.user_agent,
            "Accept": "image/avif,image/webp,image/*,*/*;q=0.8",
        }
    )
    return session


def download_image(
    session: requests.Session,
    url: str,
    destination: Path,
    config: LocalizeConfig,
) -> int:
    """Stream ``url`` to ``destination`` and return the number of bytes written.

    The body is written to a ``.part`` sibling and moved into place only once
    complete, so an existing destination file is always a finished download.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    try:
        with session.get(
            url,
            headers={"User-Agent": config.user_agent},
            timeout=config.request_timeout,
            stream=True,
        ) as resp:
            if not 200 <= resp.status_code < 300:
                raise DownloadError(f"HTTP {resp.status_code}: {resp.reason}")
            content_type = resp.headers.get("Content-Type", "")
            written = 0
            head = b""
            checked = not config.validate_images
            with partial.open("wb") as handle:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > config.max_image_bytes:
                        raise DownloadError(
                            f"Image larger than {config.max_image_bytes} bytes"
                        )
                    if not checked:
                        head += chunk
                        if len(head) >= SIGNATURE_BYTES:
                            _check_image(head, content_type)
                            checked = True
                    handle.write(chunk)
            if written == 0:
                raise DownloadError("Empty response body")
            if not checked:
                _check_image(head, content_type)
        os.replace(partial, destination)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    return written


def _check_image(head: bytes, content_type: str) -> None:
    if infer_image_extension(content_type, head) is None:
        raise DownloadError(
            f"Unsupported image type (Content-Type={content_type or 'missing'})"
        )


def fetch_pending(
    registry: ImageRegistry,
    config: LocalizeConfig,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FetchStats:
    """Download every pending registry entry, one request at a time.

    A failed download is recorded on its entry and never stops the batch. The
    registry is checkpointed every ``config.checkpoint_every`` entries and once
    more when the pass ends, even if it is interrupted.
    """
    stats = FetchStats()
    if config.retry_failed:
        stats.retried = registry.reset_failed()
        if stats.retried:
            logger.info("Retrying %d previously failed image(s)", stats.retried)
    stats.already_present = registry.preflight(config.root)
    if stats.already_present:
        logger.info("Found %d image(s) already on disk", stats.already_present)

    pending = registry.pending()
    if not pending:
        logger.info("All images already downloaded")
        registry.save(config.registry_path)
        return stats

    logger.info("Downloading %d missing image(s)", len(pending))
    own_session = session is None
    if session is None:
        session = build_session(config)
    try:
        for index, entry in enumerate(pending, start=1):
            logger.info("[%d/%d] %s", index, len(pending), entry.url)
            stats.attempted += 1
            destination = config.root / entry.local_path
            try:
                size = download_image(session, entry.url, destination, config)
            except (requests.RequestException, DownloadError, OSError) as exc:
                message = str(exc) or exc.__class__.__name__
                registry.mark_failed(entry.url, message)
                stats.failed += 1
                stats.failures.append((entry.url, message))
                logger.warning("Failed to fetch image %s: %s", entry.url, message)
            else:
                registry.mark_success(entry.url)
                stats.downloaded += 1
                logger.debug("Saved %s (%d bytes)", destination, size)

            if config.checkpoint_every and index % config.checkpoint_every == 0:
                registry.save(config.registry_path)
            if config.request_delay and index < len(pending):
                sleep(config.request_delay)
    finally:
        if own_session:
            session.close()
        registry.save(config.registry_path)

    logger.info(
        "Fetch: %d downloaded, %d already present, %d failed",
        stats.downloaded,
        stats.already_present,
        stats.failed,
    )
    return stats
