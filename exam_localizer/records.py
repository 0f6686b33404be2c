"""Typed traversal over raw exam records and the corpus directory layout."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import DEFAULT_LANGUAGE
from .errors import RecordError

logger = logging.getLogger("exam_localizer")

LOCATION_QUESTION = "question"
LOCATION_EXPLANATION = "explanation"
UNKNOWN = "unknown"


def option_location(identifier: object, index: int) -> str:
    label = identifier if identifier not in (None, "") else index
    return f"option:{label}"


@dataclass
class ContentField:
    """One HTML-bearing field of a question (content, an option or the explanation)."""

    location: str
    owner: Dict[str, Any]
    key: str

    @property
    def html(self) -> Optional[str]:
        value = self.owner.get(self.key)
        return value if isinstance(value, str) else None

    def replace(self, html: str) -> None:
        self.owner[self.key] = html


@dataclass
class QuestionView:
    """A question located within an exam record.

    ``block`` is the language block (``question.<lang>``); it is None when the
    record carries no content for that language.
    """

    subject_index: int
    position: int
    number: int
    subject: str
    chapter: str
    block: Optional[Dict[str, Any]]

    @property
    def key(self) -> Tuple[int, int]:
        return (self.subject_index, self.position)

    def fields(self) -> List[ContentField]:
        """Content fields in document order: question, options, explanation."""
        if self.block is None:
            return []
        fields = [ContentField(LOCATION_QUESTION, self.block, "content")]
        options = self.block.get("options")
        if isinstance(options, list):
            for index, option in enumerate(options):
                if isinstance(option, dict):
                    location = option_location(option.get("identifier"), index)
                    fields.append(ContentField(location, option, "content"))
        fields.append(ContentField(LOCATION_EXPLANATION, self.block, "explanation"))
        return fields


def _text(value: object) -> str:
    if value in (None, ""):
        return UNKNOWN
    return str(value)


def iter_questions(document: Dict[str, Any], language: str = DEFAULT_LANGUAGE) -> Iterator[QuestionView]:
    """Yield every question of a record; ``number`` runs from 1 across subjects."""
    results = document.get("results") if isinstance(document, dict) else None
    if not isinstance(results, list):
        return
    number = 0
    for subject_index, subject_data in enumerate(results):
        if not isinstance(subject_data, dict):
            continue
        questions = subject_data.get("questions")
        if not isinstance(questions, list):
            continue
        for position, question in enumerate(questions):
            number += 1
            if not isinstance(question, dict):
                continue
            block = None
            wrapper = question.get("question")
            if isinstance(wrapper, dict) and isinstance(wrapper.get(language), dict):
                block = wrapper[language]
            yield QuestionView(
                subject_index=subject_index,
                position=position,
                number=number,
                subject=_text(question.get("subject")),
                chapter=_text(question.get("chapter")),
                block=block,
            )


def load_record(path: Path) -> Dict[str, Any]:
    """Read and parse one exam record, raising RecordError on failure."""
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RecordError(f"{path}: {exc}") from exc
    if not isinstance(document, dict):
        raise RecordError(f"{path}: expected a JSON object")
    return document


def write_record(path: Path, document: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass
class RecordFile:
    """An exam record on disk: ``<raw_dir>/<exam_type>/<exam_key>.json``."""

    exam_type: str
    exam_key: str
    path: Path

    def under(self, base: Path) -> Path:
        return base / self.exam_type / self.path.name


def iter_record_files(raw_dir: Path) -> Iterator[RecordFile]:
    """Yield record files grouped by exam type, in sorted order."""
    try:
        exam_dirs = sorted(p for p in raw_dir.iterdir() if p.is_dir())
    except OSError as exc:
        raise RecordError(f"Cannot read corpus directory {raw_dir}: {exc}") from exc
    for exam_dir in exam_dirs:
        try:
            files = sorted(p for p in exam_dir.iterdir() if p.suffix == ".json" and p.is_file())
        except OSError as exc:
            logger.error("Cannot read %s: %s", exam_dir, exc)
            continue
        logger.debug("Found %d record(s) in %s", len(files), exam_dir.name)
        for path in files:
            yield RecordFile(exam_type=exam_dir.name, exam_key=path.stem, path=path)
