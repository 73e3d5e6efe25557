"""Command-line interface for nativelink."""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

from nativelink.errors import ConfigError
from nativelink.model import LinkResult
from nativelink.params import ParamPrompter
from nativelink.pipeline import run_link, run_unlink
from nativelink.platforms import parse_platforms

logger = logging.getLogger(__name__)


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        type=Path,
        default=Path("."),
        help="Path to the app (folder holding package.json; default: .)",
    )
    parser.add_argument(
        "--platforms",
        default=None,
        help="Comma-separated platforms to process (default: ios,android)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) output",
    )


def _summarize(results: list[LinkResult]) -> None:
    counts = Counter(result.status.value for result in results)
    if counts:
        logger.info(
            "Done: %s", ", ".join(f"{n} {status}" for status, n in sorted(counts.items()))
        )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="nativelink",
        description="Link native modules into the iOS and Android projects of an app.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    link = subparsers.add_parser("link", help="Link native dependencies")
    link.add_argument(
        "packages",
        nargs="*",
        metavar="PACKAGE",
        help="Dependencies to link (default: every native dependency in package.json)",
    )
    link.add_argument(
        "--no-input",
        action="store_true",
        help="Do not prompt; use parameter defaults",
    )
    _add_common_options(link)

    unlink = subparsers.add_parser("unlink", help="Unlink native dependencies")
    unlink.add_argument(
        "packages",
        nargs="*",
        metavar="PACKAGE",
        help="Dependencies to unlink (default: every native dependency in package.json)",
    )
    _add_common_options(unlink)

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(message)s")
    logging.getLogger("nativelink").setLevel(logging.DEBUG if args.verbose else logging.INFO)

    try:
        platforms = parse_platforms(args.platforms.split(",")) if args.platforms else None
        if args.command == "link":
            prompter = ParamPrompter(interactive=not args.no_input)
            results = run_link(args.root, args.packages, platforms, prompter)
        else:
            results = run_unlink(args.root, args.packages, platforms)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)

    _summarize(results)
