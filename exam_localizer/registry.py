"""Durable registry mapping canonical image URLs to local paths and status."""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from .errors import InvalidTransitionError, RegistryFormatError, RegistryNotFoundError
from .models import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SUCCESS,
    STATUSES,
    RegistryEntry,
    UsageSite,
)
from .utils import is_contained_local_path, local_image_path

logger = logging.getLogger("exam_localizer")


def _usage_to_dict(usage: UsageSite) -> Dict[str, Any]:
    return {
        "examType": usage.exam_type,
        "examKey": usage.exam_key,
        "subject": usage.subject,
        "chapter": usage.chapter,
        "questionIndex": usage.question_index,
        "location": usage.location,
        "position": usage.position,
    }


def _usage_from_dict(data: Dict[str, Any]) -> UsageSite:
    question_index = data["questionIndex"]
    position = data.get("position", 0)
    if isinstance(question_index, bool) or not isinstance(question_index, int):
        raise ValueError(f"questionIndex must be an integer, got {question_index!r}")
    if isinstance(position, bool) or not isinstance(position, int):
        raise ValueError(f"position must be an integer, got {position!r}")
    location = data["location"]
    exam_key = data["examKey"]
    if not isinstance(location, str) or not isinstance(exam_key, str):
        raise ValueError("examKey and location must be strings")
    return UsageSite(
        exam_type=str(data.get("examType", "")),
        exam_key=exam_key,
        subject=str(data.get("subject", "unknown")),
        chapter=str(data.get("chapter", "unknown")),
        question_index=question_index,
        location=location,
        position=position,
    )


def _entry_to_dict(entry: RegistryEntry) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "url": entry.url,
        "localPath": entry.local_path,
        "status": entry.status,
    }
    if entry.error:
        payload["error"] = entry.error
    payload["usageCount"] = entry.usage_count
    payload["usedIn"] = [_usage_to_dict(usage) for usage in entry.used_in]
    return payload


def _entry_from_dict(data: Any) -> RegistryEntry:
    if not isinstance(data, dict):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    url = data["url"]
    local_path = data["localPath"]
    status = data.get("status", STATUS_PENDING)
    if not isinstance(url, str) or not url:
        raise ValueError("url must be a non-empty string")
    if not isinstance(local_path, str) or not is_contained_local_path(local_path):
        raise ValueError(f"localPath must be a relative path under images/, got {local_path!r}")
    if status not in STATUSES:
        raise ValueError(f"unknown status {status!r}")
    error = data.get("error")
    entry = RegistryEntry(
        url=url,
        local_path=local_path,
        status=status,
        error=error if isinstance(error, str) else None,
    )
    used_in = data.get("usedIn") or []
    if not isinstance(used_in, list):
        raise TypeError("usedIn must be a list")
    for item in used_in:
        try:
            entry.used_in.append(_usage_from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Dropping unreadable usage of %s: %s", url, exc)
    return entry


class ImageRegistry:
    """In-memory registry with JSON persistence.

    Keys are canonical URLs. Local paths are fixed at first registration and an
    entry marked ``success`` only ever gains usage sites afterwards.
    """

    def __init__(self, entries: Iterable[RegistryEntry] = ()) -> None:
        self._entries: Dict[str, RegistryEntry] = {}
        self._seen_usages: Dict[str, Set[UsageSite]] = {}
        self._path_owners: Dict[str, str] = {}
        for entry in entries:
            self._adopt(entry)

    def _adopt(self, entry: RegistryEntry) -> None:
        existing = self._entries.get(entry.url)
        if existing is None:
            usages = list(dict.fromkeys(entry.used_in))
            entry.used_in = usages
            self._entries[entry.url] = entry
            self._seen_usages[entry.url] = set(usages)
            self._claim_path(entry)
            return
        logger.warning("Duplicate registry entry for %s; merging usage sites", entry.url)
        for usage in entry.used_in:
            self._add_usage(existing, usage)

    def _claim_path(self, entry: RegistryEntry) -> None:
        owner = self._path_owners.setdefault(entry.local_path, entry.url)
        if owner != entry.url:
            logger.warning(
                "%s and %s share local path %s; both download to the same file",
                owner,
                entry.url,
                entry.local_path,
            )

    def _add_usage(self, entry: RegistryEntry, usage: UsageSite) -> None:
        seen = self._seen_usages[entry.url]
        if usage not in seen:
            seen.add(usage)
            entry.used_in.append(usage)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._entries.values())

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def get(self, url: str) -> Optional[RegistryEntry]:
        return self._entries.get(url)

    def _require(self, url: str) -> RegistryEntry:
        entry = self._entries.get(url)
        if entry is None:
            raise KeyError(f"No registry entry for {url}")
        return entry

    def register(self, url: str, usage: Optional[UsageSite] = None) -> RegistryEntry:
        """Create the entry for ``url`` if needed and record ``usage`` once."""
        entry = self._entries.get(url)
        if entry is None:
            local_path = local_image_path(url)
            if local_path is None:
                raise ValueError(f"Cannot derive a local path for {url}")
            entry = RegistryEntry(url=url, local_path=local_path)
            self._entries[url] = entry
            self._seen_usages[url] = set()
            self._claim_path(entry)
        if usage is not None:
            self._add_usage(entry, usage)
        return entry

    def path_for(self, url: str) -> Optional[str]:
        entry = self._entries.get(url)
        return entry.local_path if entry else None

    def localized_path(self, url: str) -> Optional[str]:
        """Local path for ``url`` only if its download succeeded."""
        entry = self._entries.get(url)
        if entry is None or entry.status != STATUS_SUCCESS:
            return None
        return entry.local_path

    def mark_success(self, url: str) -> RegistryEntry:
        entry = self._require(url)
        entry.status = STATUS_SUCCESS
        entry.error = None
        return entry

    def mark_failed(self, url: str, error: str) -> RegistryEntry:
        entry = self._require(url)
        if entry.status == STATUS_SUCCESS:
            raise InvalidTransitionError(f"{url} is already downloaded")
        entry.status = STATUS_FAILED
        entry.error = error
        return entry

    def reset_failed(self) -> int:
        """Return failed entries to pending so the next fetch retries them."""
        count = 0
        for entry in self._entries.values():
            if entry.status == STATUS_FAILED:
                entry.status = STATUS_PENDING
                count += 1
        return count

    def pending(self) -> List[RegistryEntry]:
        return [entry for entry in self._entries.values() if entry.status == STATUS_PENDING]

    def preflight(self, root: Path) -> int:
        """Mark entries whose file already exists under ``root`` as downloaded."""
        found = 0
        for entry in self._entries.values():
            if entry.status == STATUS_SUCCESS:
                continue
            if (root / entry.local_path).is_file():
                entry.status = STATUS_SUCCESS
                entry.error = None
                found += 1
        return found

    def counts(self) -> Dict[str, int]:
        counts = {status: 0 for status in STATUSES}
        for entry in self._entries.values():
            counts[entry.status] += 1
        counts["total"] = len(self._entries)
        return counts

    def to_dict(self) -> Dict[str, Any]:
        counts = self.counts()
        timestamp = (
            dt.datetime.now(dt.timezone.utc)
            .replace(microsecond=0)
            .isoformat()
            .replace("+00:00", "Z")
        )
        return {
            "generatedAt": timestamp,
            "totalImages": counts["total"],
            "downloaded": counts[STATUS_SUCCESS],
            "failed": counts[STATUS_FAILED],
            "images": [_entry_to_dict(entry) for entry in self._entries.values()],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ImageRegistry":
        if not isinstance(data, dict) or not isinstance(data.get("images"), list):
            raise RegistryFormatError("Registry document must be an object with an 'images' list")
        entries: List[RegistryEntry] = []
        dropped = 0
        for index, item in enumerate(data["images"]):
            try:
                entries.append(_entry_from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                dropped += 1
                logger.warning("Ignoring unreadable registry entry #%d: %s", index, exc)
        if dropped:
            logger.warning("Dropped %d unreadable registry entries", dropped)
        return cls(entries)

    def save(self, path: Path) -> None:
        """Write the registry atomically so an interrupted run never truncates it."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(self.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        os.replace(tmp_path, path)
        logger.debug("Saved registry with %d entries to %s", len(self), path)

    @classmethod
    def load(cls, path: Path, required: bool = False) -> "ImageRegistry":
        if not path.exists():
            if required:
                raise RegistryNotFoundError(
                    f"Registry {path} does not exist; run the extract and fetch stages first"
                )
            logger.debug("No registry at %s; starting empty", path)
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RegistryFormatError(f"Cannot read registry {path}: {exc}") from exc
        registry = cls.from_dict(data)
        logger.debug("Loaded %d registry entries from %s", len(registry), path)
        return registry
