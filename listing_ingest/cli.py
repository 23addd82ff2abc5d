"""Command-line entry point for project page extraction."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Iterable, Sequence
from urllib.parse import urlparse

from .config import IngestConfig
from .crawler import check_images, preview_project, run_extraction
from .utils import slugify

logger = logging.getLogger("listing_ingest.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("extract", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Request timeout in seconds (default: 30 for pages and images, 5 for checks)",
    )
    parser.add_argument(
        "--verify-tls",
        action="store_true",
        help="Verify TLS certificates instead of accepting any certificate",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Extract project content from a website and store its images locally.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser(
        "extract", help="Extract a project page and download its images"
    )
    extract_parser.add_argument("url", help="Project website URL")
    extract_parser.add_argument(
        "--project",
        default=None,
        help="Project id used as the asset directory (default: derived from the host name)",
    )
    extract_parser.add_argument(
        "--output",
        default=None,
        type=Path,
        help="Asset root directory (default: $LISTING_INGEST_ASSET_ROOT or public/images/projects)",
    )
    extract_parser.add_argument(
        "--public-prefix",
        default=None,
        help="URL prefix used for returned image paths (default: /images/projects)",
    )
    _add_common_arguments(extract_parser)

    preview_parser = subparsers.add_parser(
        "preview", help="Extract a page without downloading any images"
    )
    preview_parser.add_argument("url", help="Project website URL")
    _add_common_arguments(preview_parser)

    check_parser = subparsers.add_parser(
        "check-images", help="HEAD-probe image URLs and report which are reachable"
    )
    check_parser.add_argument("urls", nargs="+", help="Image URLs to check")
    _add_common_arguments(check_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> IngestConfig:
    config = IngestConfig.from_env()
    if getattr(args, "output", None):
        config.asset_root = Path(args.output).resolve()
    if getattr(args, "public_prefix", None):
        config.public_prefix = args.public_prefix.rstrip("/")
    if args.timeout:
        config.page_timeout = args.timeout
        config.image_timeout = args.timeout
        config.check_timeout = args.timeout
    if args.verify_tls:
        config.verify_tls = True
    return config


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _run_extract(args: argparse.Namespace, config: IngestConfig) -> int:
    project_id = args.project or slugify(urlparse(args.url).netloc, fallback="project")
    start = time.perf_counter()
    result = asyncio.run(run_extraction(args.url, project_id, config))
    logger.info("Finished in %.2fs", time.perf_counter() - start)
    _emit(result)
    return 0 if result["success"] else 1


def _run_preview(args: argparse.Namespace, config: IngestConfig) -> int:
    result = asyncio.run(preview_project(args.url, config))
    _emit(result)
    return 0 if result["success"] else 1


def _run_check(args: argparse.Namespace, config: IngestConfig) -> int:
    results = asyncio.run(check_images(args.urls, config))
    _emit({"results": results})
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    config = build_config(args)
    if args.command == "extract":
        return _run_extract(args, config)
    if args.command == "preview":
        return _run_preview(args, config)
    return _run_check(args, config)


if __name__ == "__main__":
    sys.exit(main())
