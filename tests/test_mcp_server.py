import json
from pathlib import Path

import pytest

from conftest import CDN_IMAGE

from exam_localizer import mcp_server
from exam_localizer.config import LocalizeConfig
from exam_localizer.errors import RegistryNotFoundError
from exam_localizer.pipeline import build_registry


def test_registry_status_reports_counts_and_failures(corpus: Path):
    registry, _ = build_registry(LocalizeConfig(root=corpus))
    registry.mark_failed(CDN_IMAGE, "HTTP 404: Not Found")
    registry.save(corpus / ".tmp" / "images.json")

    payload = json.loads(mcp_server.registry_status(str(corpus)))

    assert payload["total"] == 2
    assert payload["failed"] == 1
    assert payload["failedImages"] == [{"url": CDN_IMAGE, "error": "HTTP 404: Not Found"}]


def test_registry_status_requires_registry(corpus: Path):
    with pytest.raises(RegistryNotFoundError):
        mcp_server.registry_status(str(corpus))


def test_unknown_root_is_rejected(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        mcp_server.verify_localization(str(tmp_path / "missing"))


def test_verify_localization_reports_missing_localized_records(corpus: Path):
    build_registry(LocalizeConfig(root=corpus))

    payload = json.loads(mcp_server.verify_localization(str(corpus)))

    assert payload["filesChecked"] == 1
    assert payload["filesWithIssues"] == 1
    assert "missing" in payload["files"][0]["error"]
