"""MCP server exposing registry status and localization audits."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import LocalizeConfig
from .models import STATUS_FAILED
from .registry import ImageRegistry
from .verify import verify_corpus

logger = logging.getLogger("exam_localizer.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="exam-localizer")


def _config_for(root: str) -> LocalizeConfig:
    source = Path(root).expanduser()
    if not source.is_dir():
        raise FileNotFoundError(f"Corpus root does not exist: {source}")
    return LocalizeConfig(root=source.resolve())


@mcp.tool()
def registry_status(root: str) -> str:
    """Summarize download status of the image registry under a corpus root."""
    config = _config_for(root)
    registry = ImageRegistry.load(config.registry_path, required=True)
    counts = registry.counts()
    failed = [
        {"url": entry.url, "error": entry.error}
        for entry in registry
        if entry.status == STATUS_FAILED
    ]
    return json.dumps({**counts, "failedImages": failed[:50]}, indent=2)


@mcp.tool()
def verify_localization(root: str) -> str:
    """Audit the localized records of a corpus root and return the JSON report."""
    config = _config_for(root)
    registry = ImageRegistry.load(config.registry_path, required=True)
    report = verify_corpus(config, registry)
    return json.dumps(report.to_dict(), ensure_ascii=False, indent=2)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
