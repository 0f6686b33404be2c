"""High-level orchestration of the extract, fetch, localize and verify stages."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from .config import LocalizeConfig
from .extractor import ExtractionStats, extract_corpus
from .images import FetchStats, fetch_pending
from .localize import LocalizeStats, localize_corpus
from .registry import ImageRegistry
from .verify import VerificationReport, verify_corpus

logger = logging.getLogger("exam_localizer")


@dataclass
class PipelineResult:
    """Per-stage outcome of a full pipeline run."""

    extraction: ExtractionStats
    fetch: FetchStats
    localization: LocalizeStats
    verification: VerificationReport
    total_seconds: float


def build_registry(config: LocalizeConfig) -> Tuple[ImageRegistry, ExtractionStats]:
    """Load the registry (if any) and fold the current corpus into it."""
    registry = ImageRegistry.load(config.registry_path)
    stats = extract_corpus(config, registry)
    registry.save(config.registry_path)
    logger.info("Registry now holds %d image(s) (%d new)", len(registry), stats.new_images)
    return registry, stats


def run_pipeline(
    config: LocalizeConfig,
    session: Optional[requests.Session] = None,
) -> PipelineResult:
    """Run every stage in order against one corpus root."""
    start = time.perf_counter()

    registry, extraction = build_registry(config)
    fetch = fetch_pending(registry, config, session=session)
    localization = localize_corpus(config, registry)
    verification = verify_corpus(config, registry)

    total = time.perf_counter() - start
    logger.info("Pipeline finished in %.2fs", total)
    return PipelineResult(
        extraction=extraction,
        fetch=fetch,
        localization=localization,
        verification=verification,
        total_seconds=total,
    )
