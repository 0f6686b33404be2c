"""Configuration objects and constants for the localization pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
MARKER_ATTRIBUTE = "data-orsrc"
DEFAULT_LANGUAGE = "en"


@dataclass
class LocalizeConfig:
    """Top-level settings that control every pipeline stage."""

    root: Path
    raw_dir: Optional[Path] = None
    localized_dir: Optional[Path] = None
    registry_path: Optional[Path] = None
    language: str = DEFAULT_LANGUAGE
    request_timeout: float = 30.0
    request_delay: float = 0.1
    checkpoint_every: int = 25
    retry_failed: bool = True
    validate_images: bool = True
    max_image_bytes: int = 20 * 1024 * 1024
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        if self.raw_dir is None:
            self.raw_dir = self.root / "raw"
        if self.localized_dir is None:
            self.localized_dir = self.root / "raw-local-images"
        if self.registry_path is None:
            self.registry_path = self.root / ".tmp" / "images.json"
