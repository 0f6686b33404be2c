"""Data models used throughout the localization pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

DownloadStatus = Literal["pending", "success", "failed"]

STATUS_PENDING: DownloadStatus = "pending"
STATUS_SUCCESS: DownloadStatus = "success"
STATUS_FAILED: DownloadStatus = "failed"
STATUSES = (STATUS_PENDING, STATUS_SUCCESS, STATUS_FAILED)


@dataclass(frozen=True)
class UsageSite:
    """One place in the corpus where an image is embedded."""

    exam_type: str
    exam_key: str
    subject: str
    chapter: str
    question_index: int
    location: str
    position: int = 0


@dataclass
class ImageReference:
    """A canonical remote image together with every place that embeds it."""

    url: str
    usages: List[UsageSite] = field(default_factory=list)

    @property
    def usage_count(self) -> int:
        return len(self.usages)


@dataclass
class RegistryEntry:
    """Download state tracked by the registry for one canonical URL."""

    url: str
    local_path: str
    status: DownloadStatus = STATUS_PENDING
    used_in: List[UsageSite] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def usage_count(self) -> int:
        return len(self.used_in)
