import json
from pathlib import Path

import pytest

from conftest import CDN_IMAGE, PNG_BYTES

from exam_localizer import cli
from exam_localizer.registry import ImageRegistry


def test_parse_args_applies_fetch_options(tmp_path: Path):
    args = cli.parse_args(["fetch", "--root", str(tmp_path), "--delay", "0", "--no-retry-failed"])

    config = cli.build_config(args)

    assert config.root == tmp_path.resolve()
    assert config.request_delay == 0.0
    assert config.retry_failed is False
    assert config.registry_path == tmp_path.resolve() / ".tmp" / "images.json"


def test_extract_writes_registry(corpus: Path):
    cli.main(["extract", "--root", str(corpus)])

    registry = ImageRegistry.load(corpus / ".tmp" / "images.json", required=True)
    assert len(registry) == 2


def test_missing_registry_is_fatal(corpus: Path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["localize", "--root", str(corpus)])

    assert excinfo.value.code == cli.EXIT_FATAL


def test_extract_localize_verify_without_network(corpus: Path):
    cli.main(["extract", "--root", str(corpus)])
    registry_path = corpus / ".tmp" / "images.json"
    registry = ImageRegistry.load(registry_path)
    for entry in registry:
        path = corpus / entry.local_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(PNG_BYTES)
    registry.preflight(corpus)
    registry.save(registry_path)
    report_path = corpus / "report.json"

    cli.main(["localize", "--root", str(corpus)])
    cli.main(["verify", "--root", str(corpus), "--report", str(report_path)])

    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["matched"] == 3
    assert report["mismatched"] == 0


def test_verify_exits_with_issues(corpus: Path):
    cli.main(["extract", "--root", str(corpus)])
    cli.main(["localize", "--root", str(corpus)])
    registry_path = corpus / ".tmp" / "images.json"
    registry = ImageRegistry.load(registry_path)
    registry.mark_success(CDN_IMAGE)
    registry.save(registry_path)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["verify", "--root", str(corpus)])

    assert excinfo.value.code == cli.EXIT_ISSUES


def test_status_prints_counts(corpus: Path, capsys):
    cli.main(["extract", "--root", str(corpus)])

    cli.main(["status", "--root", str(corpus)])

    out = capsys.readouterr().out
    assert "Images:    2 (3 usage site(s))" in out
    assert "Pending:   2" in out
