"""Discovery of embedded images and registration of their usage sites."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import DEFAULT_LANGUAGE, MARKER_ATTRIBUTE, LocalizeConfig
from .content import iter_image_tags
from .errors import RecordError
from .models import ImageReference, UsageSite
from .records import iter_questions, iter_record_files, load_record
from .registry import ImageRegistry
from .utils import local_image_path

logger = logging.getLogger("exam_localizer")


@dataclass
class ExtractionStats:
    """Running totals for an extraction pass."""

    files_processed: int = 0
    files_failed: int = 0
    references: int = 0
    skipped_references: int = 0
    new_images: int = 0
    failed_files: List[str] = field(default_factory=list)

    def merge(self, other: "ExtractionStats") -> None:
        self.files_processed += other.files_processed
        self.files_failed += other.files_failed
        self.references += other.references
        self.skipped_references += other.skipped_references
        self.new_images += other.new_images
        self.failed_files.extend(other.failed_files)


def iter_usages(
    document: Dict[str, Any],
    exam_type: str,
    exam_key: str,
    language: str = DEFAULT_LANGUAGE,
    marker: str = MARKER_ATTRIBUTE,
) -> Iterator[Tuple[Optional[str], UsageSite]]:
    """Yield ``(canonical_url, usage)`` for every image embedded in a record.

    The canonical URL is None when the tag carries neither a marker nor a
    ``src`` value.
    """
    for question in iter_questions(document, language):
        for content_field in question.fields():
            for position, tag in enumerate(iter_image_tags(content_field.html, marker)):
                usage = UsageSite(
                    exam_type=exam_type,
                    exam_key=exam_key,
                    subject=question.subject,
                    chapter=question.chapter,
                    question_index=question.number,
                    location=content_field.location,
                    position=position,
                )
                yield tag.canonical, usage


def extract_record(
    document: Dict[str, Any],
    exam_type: str,
    exam_key: str,
    language: str = DEFAULT_LANGUAGE,
) -> List[ImageReference]:
    """Group the storable images of one record by canonical URL, in first-seen order."""
    references: Dict[str, ImageReference] = {}
    for url, usage in iter_usages(document, exam_type, exam_key, language):
        if not url or local_image_path(url) is None:
            continue
        reference = references.setdefault(url, ImageReference(url=url))
        reference.usages.append(usage)
    return list(references.values())


def register_record(
    registry: ImageRegistry,
    document: Dict[str, Any],
    exam_type: str,
    exam_key: str,
    language: str = DEFAULT_LANGUAGE,
) -> ExtractionStats:
    """Register every image usage of one record."""
    stats = ExtractionStats()
    for url, usage in iter_usages(document, exam_type, exam_key, language):
        if not url or local_image_path(url) is None:
            stats.skipped_references += 1
            logger.debug(
                "Skipping unstorable image reference %r in %s/%s (%s)",
                url,
                exam_type,
                exam_key,
                usage.location,
            )
            continue
        if url not in registry:
            stats.new_images += 1
        registry.register(url, usage)
        stats.references += 1
    return stats


def extract_corpus(config: LocalizeConfig, registry: ImageRegistry) -> ExtractionStats:
    """Scan every raw record and register its images; unreadable files are skipped."""
    stats = ExtractionStats()
    for record_file in iter_record_files(config.raw_dir):
        try:
            document = load_record(record_file.path)
        except RecordError as exc:
            logger.error("Skipping unreadable record %s", exc)
            stats.files_failed += 1
            stats.failed_files.append(str(record_file.path))
            continue
        file_stats = register_record(
            registry, document, record_file.exam_type, record_file.exam_key, config.language
        )
        file_stats.files_processed = 1
        stats.merge(file_stats)
        logger.debug(
            "%s/%s: %d reference(s), %d new image(s)",
            record_file.exam_type,
            record_file.exam_key,
            file_stats.references,
            file_stats.new_images,
        )
    logger.info(
        "Extraction: %d file(s) processed, %d failed, %d reference(s), %d new image(s), %d total",
        stats.files_processed,
        stats.files_failed,
        stats.references,
        stats.new_images,
        len(registry),
    )
    return stats
