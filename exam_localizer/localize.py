"""Rewrite raw exam records so embedded images point at local copies."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .config import DEFAULT_LANGUAGE, MARKER_ATTRIBUTE, LocalizeConfig
from .content import ImageTag, replace_image_tags, rewrite_image_tag
from .errors import RecordError
from .records import iter_questions, iter_record_files, load_record, write_record
from .registry import ImageRegistry
from .utils import local_image_path, relative_prefix

logger = logging.getLogger("exam_localizer")


@dataclass
class RewriteStats:
    """Replacement totals for one fragment, record or corpus."""

    replaced: int = 0
    unresolved: int = 0

    @property
    def attempted(self) -> int:
        return self.replaced + self.unresolved

    def merge(self, other: "RewriteStats") -> None:
        self.replaced += other.replaced
        self.unresolved += other.unresolved


@dataclass
class LocalizeStats:
    """Totals for a corpus localization pass."""

    files_processed: int = 0
    files_failed: int = 0
    rewrites: RewriteStats = field(default_factory=RewriteStats)
    failed_files: List[str] = field(default_factory=list)


def localize_html(
    fragment: Optional[str],
    registry: ImageRegistry,
    prefix: str,
    marker: str = MARKER_ATTRIBUTE,
) -> Tuple[Optional[str], RewriteStats]:
    """Point every resolvable ``<img>`` in a fragment at its local file.

    Tags whose image has no successful download keep their remote ``src``.
    References that can never be stored locally are left alone and not counted.
    """
    stats = RewriteStats()
    if not fragment:
        return fragment, stats

    def _replace(tag: ImageTag) -> Optional[str]:
        url = tag.canonical
        if not url or local_image_path(url) is None:
            return None
        local_path = registry.localized_path(url)
        if local_path is None:
            stats.unresolved += 1
            return None
        stats.replaced += 1
        return rewrite_image_tag(tag.text, prefix + local_path, drop=(marker,))

    return replace_image_tags(fragment, _replace, marker), stats


def localize_record(
    document: Dict[str, Any],
    registry: ImageRegistry,
    prefix: str = "../../",
    language: str = DEFAULT_LANGUAGE,
) -> Tuple[Dict[str, Any], RewriteStats]:
    """Return a localized copy of ``document``; the input is left untouched."""
    localized = copy.deepcopy(document)
    stats = RewriteStats()
    for question in iter_questions(localized, language):
        for content_field in question.fields():
            html = content_field.html
            if not html:
                continue
            rewritten, field_stats = localize_html(html, registry, prefix)
            stats.merge(field_stats)
            if rewritten != html:
                content_field.replace(rewritten)
    return localized, stats


def localize_corpus(config: LocalizeConfig, registry: ImageRegistry) -> LocalizeStats:
    """Write a localized copy of every raw record under ``config.localized_dir``."""
    stats = LocalizeStats()
    for record_file in iter_record_files(config.raw_dir):
        output_path = record_file.under(config.localized_dir)
        try:
            document = load_record(record_file.path)
            prefix = relative_prefix(output_path.parent, config.root)
            localized, record_stats = localize_record(
                document, registry, prefix, config.language
            )
            write_record(output_path, localized)
        except (RecordError, OSError) as exc:
            logger.error("Failed to localize %s: %s", record_file.path, exc)
            stats.files_failed += 1
            stats.failed_files.append(str(record_file.path))
            continue
        stats.files_processed += 1
        stats.rewrites.merge(record_stats)
        logger.debug(
            "%s/%s: %d replaced, %d unresolved",
            record_file.exam_type,
            record_file.exam_key,
            record_stats.replaced,
            record_stats.unresolved,
        )

    logger.info(
        "Localization: %d file(s) written, %d failed, %d image(s) replaced, %d unresolved",
        stats.files_processed,
        stats.files_failed,
        stats.rewrites.replaced,
        stats.rewrites.unresolved,
    )
    if stats.rewrites.unresolved:
        logger.warning(
            "%d image reference(s) keep their remote URL; run the fetch stage to retry them",
            stats.rewrites.unresolved,
        )
    return stats
