"""Command-line entry point for the exam image localizer."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections import Counter
from pathlib import Path
from typing import Sequence

from .config import DEFAULT_LANGUAGE, LocalizeConfig
from .errors import LocalizerError, RecordError, RegistryError
from .extractor import extract_corpus
from .images import fetch_pending
from .localize import localize_corpus
from .models import STATUS_FAILED
from .pipeline import run_pipeline
from .registry import ImageRegistry
from .verify import VerificationReport, verify_corpus

logger = logging.getLogger("exam_localizer.cli")

EXIT_ISSUES = 1
EXIT_FATAL = 2


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=".",
        type=Path,
        help="Corpus root holding raw/, images/ and the localized output",
    )
    parser.add_argument(
        "--raw-dir",
        type=Path,
        default=None,
        help="Directory of raw records grouped by exam type (default: <root>/raw)",
    )
    parser.add_argument(
        "--localized-dir",
        type=Path,
        default=None,
        help="Directory for localized records (default: <root>/raw-local-images)",
    )
    parser.add_argument(
        "--registry",
        type=Path,
        default=None,
        help="Registry JSON file (default: <root>/.tmp/images.json)",
    )
    parser.add_argument(
        "--language",
        default=DEFAULT_LANGUAGE,
        help="Content language block to process",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_fetch_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Per-request timeout in seconds",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.1,
        help="Seconds to wait between requests",
    )
    parser.add_argument(
        "--checkpoint-every",
        type=int,
        default=25,
        help="Save the registry after this many downloads",
    )
    parser.add_argument(
        "--no-retry-failed",
        action="store_true",
        help="Leave previously failed images alone",
    )
    parser.add_argument(
        "--no-validate",
        action="store_true",
        help="Accept any payload, not only recognizable images",
    )


def _add_report_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write the verification report as JSON to this path",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Download the remote images embedded in exam records and rewrite the "
            "records to reference local copies."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser(
        "extract", help="Scan raw records and register every embedded image"
    )
    _add_common_arguments(extract_parser)

    fetch_parser = subparsers.add_parser(
        "fetch", help="Download pending and failed images from the registry"
    )
    _add_common_arguments(fetch_parser)
    _add_fetch_arguments(fetch_parser)

    localize_parser = subparsers.add_parser(
        "localize", help="Write records whose images point at local files"
    )
    _add_common_arguments(localize_parser)

    verify_parser = subparsers.add_parser(
        "verify", help="Audit the localized records against the raw records"
    )
    _add_common_arguments(verify_parser)
    _add_report_argument(verify_parser)

    status_parser = subparsers.add_parser("status", help="Summarize the registry")
    _add_common_arguments(status_parser)

    run_parser = subparsers.add_parser("run", help="Run extract, fetch, localize and verify")
    _add_common_arguments(run_parser)
    _add_fetch_arguments(run_parser)
    _add_report_argument(run_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> LocalizeConfig:
    config = LocalizeConfig(
        root=Path(args.root).resolve(),
        raw_dir=args.raw_dir.resolve() if args.raw_dir else None,
        localized_dir=args.localized_dir.resolve() if args.localized_dir else None,
        registry_path=args.registry.resolve() if args.registry else None,
        language=args.language,
    )
    if hasattr(args, "timeout"):
        config.request_timeout = args.timeout
        config.request_delay = args.delay
        config.checkpoint_every = args.checkpoint_every
        config.retry_failed = not args.no_retry_failed
        config.validate_images = not args.no_validate
    return config


def _write_report(report: VerificationReport, path: Path | None) -> None:
    if path is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("Wrote verification report to %s", path)


def _log_report(report: VerificationReport) -> None:
    if not report.has_issues:
        logger.info(
            "All %d image reference(s) are localized correctly (%d left remote)",
            report.matched,
            report.unresolved,
        )
        return
    logger.warning(
        "%d file(s) with issues: %d mismatched, %d missing local file(s)",
        len(report.files_with_issues),
        report.mismatched,
        report.missing_files,
    )
    for result in report.files_with_issues[:10]:
        if result.error:
            logger.warning("  %s: %s", result.file, result.error)
        for issue in result.issues[:3]:
            logger.warning("  %s: %s", result.file, json.dumps(issue.to_dict()))


def _run_extract(config: LocalizeConfig) -> int:
    registry = ImageRegistry.load(config.registry_path)
    stats = extract_corpus(config, registry)
    registry.save(config.registry_path)
    counts = registry.counts()
    logger.info(
        "Registry: %d image(s), %d downloaded, %d failed, %d pending",
        counts["total"],
        counts["success"],
        counts["failed"],
        counts["pending"],
    )
    return EXIT_ISSUES if stats.files_failed else 0


def _run_fetch(config: LocalizeConfig) -> int:
    registry = ImageRegistry.load(config.registry_path, required=True)
    stats = fetch_pending(registry, config)
    if stats.failed:
        logger.warning(
            "%d image(s) failed to download; run fetch again to retry them", stats.failed
        )
        return EXIT_ISSUES
    return 0


def _run_localize(config: LocalizeConfig) -> int:
    registry = ImageRegistry.load(config.registry_path, required=True)
    stats = localize_corpus(config, registry)
    return EXIT_ISSUES if stats.files_failed else 0


def _run_verify(config: LocalizeConfig, report_path: Path | None) -> int:
    registry = ImageRegistry.load(config.registry_path, required=True)
    report = verify_corpus(config, registry)
    _log_report(report)
    _write_report(report, report_path)
    return EXIT_ISSUES if report.has_issues else 0


def _run_status(config: LocalizeConfig) -> int:
    registry = ImageRegistry.load(config.registry_path, required=True)
    counts = registry.counts()
    usages = sum(entry.usage_count for entry in registry)
    print(f"Registry:  {config.registry_path}")
    print(f"Images:    {counts['total']} ({usages} usage site(s))")
    print(f"Downloaded: {counts['success']}")
    print(f"Pending:   {counts['pending']}")
    print(f"Failed:    {counts['failed']}")
    errors = Counter(
        entry.error or "unknown error" for entry in registry if entry.status == STATUS_FAILED
    )
    for message, count in errors.most_common(5):
        print(f"  {count:>5}  {message}")
    return 0


def _run_all(config: LocalizeConfig, report_path: Path | None) -> int:
    result = run_pipeline(config)
    _log_report(result.verification)
    _write_report(result.verification, report_path)
    logger.info(
        "Finished in %.2fs: %d image(s) downloaded, %d failed, %d reference(s) localized",
        result.total_seconds,
        result.fetch.downloaded,
        result.fetch.failed,
        result.localization.rewrites.replaced,
    )
    if result.verification.has_issues or result.fetch.failed:
        return EXIT_ISSUES
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    config = build_config(args)

    start = time.perf_counter()
    try:
        if args.command == "extract":
            code = _run_extract(config)
        elif args.command == "fetch":
            code = _run_fetch(config)
        elif args.command == "localize":
            code = _run_localize(config)
        elif args.command == "verify":
            code = _run_verify(config, args.report)
        elif args.command == "status":
            code = _run_status(config)
        else:
            code = _run_all(config, args.report)
    except (RegistryError, RecordError) as exc:
        logger.error("%s", exc)
        raise SystemExit(EXIT_FATAL) from exc
    except LocalizerError:
        logger.exception("Unexpected failure")
        raise SystemExit(EXIT_FATAL)
    logger.debug("%s finished in %.2fs", args.command, time.perf_counter() - start)
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
