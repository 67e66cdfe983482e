"""
CLI entrypoint for project2prompt package.
"""
import argparse
import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import colorama

from . import __version__
from .core import (
    DEFAULT_PER_FILE_BYTE_LIMIT,
    Project2PromptError,
    Settings,
    TreeContext,
    build_tree,
    copy_to_clipboard,
    load_node,
    render_prompt,
)
from .status import PeriodicRunner, StatusReporter

LOG_LEVEL_ENV = "PROJECT2PROMPT_LOG_LEVEL"

logger = logging.getLogger(__name__)


@dataclass
class Options:
    directory: str
    per_file_byte_limit: int


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def _parse_args(argv: Optional[List[str]] = None) -> Options:
    p = argparse.ArgumentParser(
        prog="project2prompt",
        description=(
            "Copies a project directory tree, inc code blocks, "
            "to the clipboard, for LLM friendly sharing."
        ),
    )
    p.add_argument(
        "directory",
        nargs="?",
        type=Path,
        default=None,
        help="Project root dir (default: current directory)",
    )
    p.add_argument(
        "--per_file_byte_limit",
        "--per-file-byte-limit",
        dest="per_file_byte_limit",
        type=_positive_int,
        default=DEFAULT_PER_FILE_BYTE_LIMIT,
        help=f"Truncate larger files (default {DEFAULT_PER_FILE_BYTE_LIMIT})",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ns = p.parse_args(argv)
    directory = ns.directory if ns.directory is not None else Path.cwd()
    return Options(
        directory=os.path.abspath(directory),
        per_file_byte_limit=ns.per_file_byte_limit,
    )


def _configure_logging() -> None:
    level = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def run(options: Options, settings: Settings) -> str:
    """Walk the project with a live view, then copy the prompt to the clipboard."""
    root = await load_node(options.directory, settings)
    ctx = TreeContext()
    reporter = StatusReporter(root, ctx, margin=settings.screen_margin)
    runner = PeriodicRunner(reporter, settings.refresh_interval)
    runner.start()
    try:
        await build_tree(root, ctx, settings)
    finally:
        runner.stop()

    prompt = render_prompt(root)
    await copy_to_clipboard(prompt)
    return prompt


def main(argv: Optional[List[str]] = None) -> None:
    try:
        options = _parse_args(argv)
        _configure_logging()
        colorama.just_fix_windows_console()

        try:
            settings = Settings.from_env(per_file_byte_limit=options.per_file_byte_limit)
            asyncio.run(run(options, settings))
        except Project2PromptError as e:
            logger.debug("Run aborted", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)

if __name__ == "__main__":
    main()
