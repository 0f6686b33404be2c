import json
from pathlib import Path

import pytest
import requests

from exam_localizer.config import LocalizeConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 400

CDN_IMAGE = "https://cdn.example.com/img/q1.png"
OPTION_IMAGE = "https://static.example.org/opts/a.png"


class FakeResponse:
    """Minimal stand-in for a streamed ``requests.Response``."""

    def __init__(self, status_code=200, body=PNG_BYTES, content_type="image/png", reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self.headers = {"Content-Type": content_type}
        self._body = body

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self._body), 100):
            yield self._body[start : start + 100]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class FakeSession:
    """Serves canned responses per URL and records every request."""

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default
        self.calls = []
        self.closed = False

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout, "stream": stream})
        outcome = self.responses.get(url, self.default)
        if outcome is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def make_question(content="", options=None, explanation="", subject="physics", chapter="optics"):
    return {
        "subject": subject,
        "chapter": chapter,
        "chapterGroup": "waves",
        "marks": 4,
        "negMarks": 1,
        "difficulty": "medium",
        "isOutOfSyllabus": False,
        "question": {
            "en": {
                "content": content,
                "options": options or [],
                "correct_options": ["A"],
                "explanation": explanation,
            }
        },
    }


def make_record(*subjects):
    """Build a record from ``(subject_name, [questions])`` pairs."""
    return {"results": [{"_id": name, "questions": list(questions)} for name, questions in subjects]}


@pytest.fixture
def scenario_record():
    """One question: the same image in content and explanation plus one option image."""
    content = (
        '<p>Find the focal length.</p>'
        f'<img src="https://cdn.example.com/fly/@width/img/q1.png?v=2" data-orsrc="{CDN_IMAGE}" alt="lens">'
    )
    explanation = f'<p>See figure</p><img alt="lens" src="{CDN_IMAGE}?cache=1" />'
    options = [
        {"identifier": "A", "content": f"<img src='{OPTION_IMAGE}' style='width:40px'>"},
        {"identifier": "B", "content": "10 cm"},
    ]
    return make_record(("Physics", [make_question(content, options, explanation)]))


@pytest.fixture
def corpus(tmp_path: Path, scenario_record):
    """A corpus root with one exam type holding the scenario record."""
    raw_dir = tmp_path / "raw" / "jee-main"
    raw_dir.mkdir(parents=True)
    (raw_dir / "2024-jan-27-shift-1.json").write_text(json.dumps(scenario_record), encoding="utf-8")
    return tmp_path


@pytest.fixture
def config(corpus: Path):
    return LocalizeConfig(root=corpus, request_delay=0.0, checkpoint_every=1)


@pytest.fixture
def ok_session():
    return FakeSession(default=FakeResponse())
