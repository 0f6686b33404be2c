"""Independent audit of a localized corpus against its raw records."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import DEFAULT_LANGUAGE, LocalizeConfig
from .content import ImageTag, iter_image_tags
from .errors import RecordError
from .records import iter_questions, iter_record_files, load_record
from .registry import ImageRegistry
from .utils import is_remote_reference, local_image_path, resolve_local_reference

logger = logging.getLogger("exam_localizer")

COUNT_MISMATCH = "count_mismatch"
NOT_LOCALIZED = "not_localized"
PATH_MISMATCH = "path_mismatch"
MISSING_FILE = "missing_file"

QuestionKey = Tuple[int, int]


@dataclass
class VerificationIssue:
    """A single divergence between the raw and the localized record."""

    question: str
    issue: str
    location: Optional[str] = None
    url: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    raw: Optional[int] = None
    local: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class FileVerification:
    """Verification outcome for one raw/localized record pair."""

    file: str
    exam_type: str = ""
    total: int = 0
    matched: int = 0
    mismatched: int = 0
    missing_files: int = 0
    unresolved: int = 0
    error: Optional[str] = None
    issues: List[VerificationIssue] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return bool(self.mismatched or self.missing_files or self.error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "file": self.file,
            "examType": self.exam_type,
            "totalImages": self.total,
            "matched": self.matched,
            "mismatched": self.mismatched,
            "missingFiles": self.missing_files,
            "unresolved": self.unresolved,
            "details": [issue.to_dict() for issue in self.issues],
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class VerificationReport:
    """Aggregated verification results for a corpus."""

    files: List[FileVerification] = field(default_factory=list)

    def _sum(self, name: str) -> int:
        return sum(getattr(result, name) for result in self.files)

    @property
    def total(self) -> int:
        return self._sum("total")

    @property
    def matched(self) -> int:
        return self._sum("matched")

    @property
    def mismatched(self) -> int:
        return self._sum("mismatched")

    @property
    def missing_files(self) -> int:
        return self._sum("missing_files")

    @property
    def unresolved(self) -> int:
        return self._sum("unresolved")

    @property
    def files_with_issues(self) -> List[FileVerification]:
        return [result for result in self.files if result.has_issues]

    @property
    def has_issues(self) -> bool:
        return any(result.has_issues for result in self.files)

    def issues(self) -> List[VerificationIssue]:
        return [issue for result in self.files for issue in result.issues]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filesChecked": len(self.files),
            "filesWithImages": sum(1 for result in self.files if result.total),
            "filesWithIssues": len(self.files_with_issues),
            "totalImages": self.total,
            "matched": self.matched,
            "mismatched": self.mismatched,
            "missingFiles": self.missing_files,
            "unresolved": self.unresolved,
            "files": [result.to_dict() for result in self.files],
        }


def _storable(tag: ImageTag) -> Optional[str]:
    canonical = tag.canonical
    if not canonical or local_image_path(canonical) is None:
        return None
    return canonical


def _collect_tags(
    document: Dict[str, Any], language: str
) -> Dict[QuestionKey, List[Tuple[str, ImageTag]]]:
    collected: Dict[QuestionKey, List[Tuple[str, ImageTag]]] = {}
    for question in iter_questions(document, language):
        tags = collected.setdefault(question.key, [])
        for content_field in question.fields():
            for tag in iter_image_tags(content_field.html):
                tags.append((content_field.location, tag))
    return collected


def verify_record(
    raw: Dict[str, Any],
    localized: Dict[str, Any],
    registry: ImageRegistry,
    record_dir: str,
    root: Path,
    language: str = DEFAULT_LANGUAGE,
) -> FileVerification:
    """Compare a raw record with its localized counterpart, image by image.

    ``record_dir`` is the localized record's directory relative to ``root``;
    relative ``src`` values are resolved against it.
    """
    result = FileVerification(file="")
    raw_tags = _collect_tags(raw, language)
    local_tags = _collect_tags(localized, language)

    for key in sorted(set(raw_tags) | set(local_tags)):
        label = f"{key[0]}-{key[1]}"
        storable = sum(1 for _, tag in raw_tags.get(key, []) if _storable(tag))
        local_list = local_tags.get(key, [])
        if len(raw_tags.get(key, [])) != len(local_list):
            result.total += storable
            result.mismatched += storable
            result.issues.append(
                VerificationIssue(
                    question=label,
                    issue=COUNT_MISMATCH,
                    raw=len(raw_tags.get(key, [])),
                    local=len(local_list),
                )
            )
            continue

        for (location, raw_tag), (_, local_tag) in zip(raw_tags.get(key, []), local_list):
            canonical = _storable(raw_tag)
            if canonical is None:
                # Never registered, so the rewriter leaves the tag untouched.
                if local_tag.src != raw_tag.src:
                    result.total += 1
                    result.mismatched += 1
                    result.issues.append(
                        VerificationIssue(
                            question=label,
                            issue=PATH_MISMATCH,
                            location=location,
                            url=raw_tag.src,
                            expected=raw_tag.src,
                            actual=local_tag.src,
                        )
                    )
                continue
            result.total += 1
            src = local_tag.src
            if not src or is_remote_reference(src):
                if registry.localized_path(canonical) is not None:
                    result.mismatched += 1
                    result.issues.append(
                        VerificationIssue(
                            question=label, issue=NOT_LOCALIZED, location=location, url=src
                        )
                    )
                else:
                    result.unresolved += 1
                continue

            expected = local_image_path(canonical)
            actual = resolve_local_reference(src, record_dir)
            if actual != expected:
                result.mismatched += 1
                result.issues.append(
                    VerificationIssue(
                        question=label,
                        issue=PATH_MISMATCH,
                        location=location,
                        url=canonical,
                        expected=expected,
                        actual=actual or src,
                    )
                )
            elif not (root / actual).is_file():
                result.missing_files += 1
                result.issues.append(
                    VerificationIssue(
                        question=label, issue=MISSING_FILE, location=location, actual=actual
                    )
                )
            else:
                result.matched += 1
    return result


def verify_corpus(config: LocalizeConfig, registry: ImageRegistry) -> VerificationReport:
    """Verify every raw record against its counterpart in the localized corpus."""
    report = VerificationReport()
    for record_file in iter_record_files(config.raw_dir):
        localized_path = record_file.under(config.localized_dir)
        name = f"{record_file.exam_type}/{record_file.path.name}"
        try:
            raw = load_record(record_file.path)
            if not localized_path.exists():
                raise RecordError(f"{localized_path}: localized record is missing")
            localized = load_record(localized_path)
        except RecordError as exc:
            logger.error("Cannot verify %s: %s", name, exc)
            report.files.append(
                FileVerification(file=name, exam_type=record_file.exam_type, error=str(exc))
            )
            continue
        record_dir = Path(os.path.relpath(localized_path.parent, config.root)).as_posix()
        result = verify_record(
            raw, localized, registry, record_dir, config.root, config.language
        )
        result.file = name
        result.exam_type = record_file.exam_type
        report.files.append(result)

    logger.info(
        "Verification: %d file(s), %d image reference(s), %d matched, %d mismatched, "
        "%d missing file(s), %d unresolved",
        len(report.files),
        report.total,
        report.matched,
        report.mismatched,
        report.missing_files,
        report.unresolved,
    )
    for issue in report.issues()[:5]:
        logger.warning("Issue %s in question %s: %s", issue.issue, issue.question, issue.to_dict())
    return report
