"""CLI for rendering and inspecting marked-up files.

Usage:
    sheval render <file> [args...] [options]   Run each block, print the result
    sheval blocks <file> [options]             List blocks without running them

``<file>`` may be ``-`` for stdin. In ``render``, blocks share the
process stdin unless the input itself is stdin; ``args`` become the
block's ``$1..$n`` and ``$0`` is ``<file>``.
"""

from __future__ import annotations

import argparse
import contextlib
import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import IO, TypeVar

import sheval.capture
import sheval.config
import sheval.errors
import sheval.executor
import sheval.processor
import sheval.settings

logger = logging.getLogger("sheval.cli")

T = TypeVar("T")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="sheval: %(message)s",
        stream=sys.stderr,
    )


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add args shared by render and blocks."""
    parser.add_argument("file", help="Input file, or - for stdin")
    parser.add_argument("--open", dest="open_delimiter", help="Open marker (default: %%{)")
    parser.add_argument("--close", dest="close_delimiter", help="Close marker (default: }%%)")
    parser.add_argument("--buffer-size", type=int, help="Scan buffer size in bytes")
    parser.add_argument(
        "--path",
        type=Path,
        default=None,
        help="Project root for .sheval/config.toml (default: repo root or cwd)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def _overrides(args: argparse.Namespace, settings: T) -> T:
    """Apply non-None CLI flags on top of loaded *settings*."""
    changes = {
        f.name: getattr(args, f.name)
        for f in dataclasses.fields(settings)
        if getattr(args, f.name, None) is not None
    }
    return dataclasses.replace(settings, **changes)


def _load_settings(
    args: argparse.Namespace,
) -> tuple[sheval.settings.ScanSettings, sheval.settings.ExecSettings]:
    scan = _overrides(args, sheval.config.load("scan", args.path))
    exe = _overrides(args, sheval.config.load("exec", args.path))
    return scan, exe


def cmd_render(
    args: argparse.Namespace,
    *,
    stdin: IO[bytes],
    stdout: IO[bytes],
) -> int:
    """Render *args.file* to stdout (or ``--output``)."""
    scan, exe = _load_settings(args)
    delimiters = scan.delimiters()
    from_stdin = args.file == "-"

    with contextlib.ExitStack() as stack:
        source = stdin if from_stdin else stack.enter_context(open(args.file, "rb"))
        if args.output is None:
            output = stdout
        else:
            output = stack.enter_context(open(args.output, "wb"))
        capture = stack.enter_context(sheval.capture.open_capture(exe.capture_kind()))

        executor = sheval.executor.ShellExecutor(
            output=output,
            args=args.args,
            name=args.file,
            shell=exe.shell,
            mode=exe.mode,
            stdin=None if from_stdin else stdin,
            timeout=exe.timeout_seconds(),
        )
        processor = sheval.processor.BlockProcessor(
            delimiters, buffer_size=scan.buffer_size, capture=capture
        )
        try:
            result = processor.process(source, output, executor)
        finally:
            output.flush()

    logger.debug("rendered %d block(s) from %d bytes", result.blocks, result.bytes_read)
    return 0


def _print_blocks(blocks: list[sheval.processor.CapturedBlock]) -> None:
    if not blocks:
        print("No blocks found.")
        return
    print(f"{'Block':>5s} {'Offset':>8s} {'Len':>6s}  First line")
    print(f"{'─' * 5} {'─' * 8} {'─' * 6}  {'─' * 40}")
    for block in blocks:
        print(
            f"{block.index:>5d} {block.offset:>8d} {len(block.text):>6d}"
            f"  {block.first_line()[:60]}"
        )
    print(f"\n{len(blocks)} block(s) found.")


def cmd_blocks(args: argparse.Namespace, *, stdin: IO[bytes]) -> int:
    """List the blocks in *args.file* without executing any of them."""
    scan, _ = _load_settings(args)
    blocks: list[sheval.processor.CapturedBlock] = []
    processor = sheval.processor.BlockProcessor(
        scan.delimiters(), buffer_size=scan.buffer_size
    )

    with contextlib.ExitStack() as stack:
        source = stdin if args.file == "-" else stack.enter_context(open(args.file, "rb"))
        literal = stack.enter_context(open(os.devnull, "wb"))
        try:
            processor.process(source, literal, blocks.append)
        finally:
            _print_blocks(blocks)
    return 0


def _report(exc: BaseException) -> int:
    """Print a one-line error and return the exit code for *exc*."""
    if isinstance(exc, sheval.errors.ShevalError):
        print(f"sheval: {exc.kind}: {exc}", file=sys.stderr)
        return exc.exit_code
    print(f"sheval: i/o error: {exc}", file=sys.stderr)
    return sheval.errors.EXIT_IO_ERROR


def main_render(
    argv: list[str] | None = None,
    *,
    stdin: IO[bytes] | None = None,
    stdout: IO[bytes] | None = None,
) -> int:
    """Entry point for ``sheval render``."""
    parser = argparse.ArgumentParser(
        prog="sheval render",
        description="Replace every marked block with the output of running it.",
    )
    _add_common_args(parser)
    parser.add_argument("args", nargs="*", help="Positional arguments for blocks ($1..$n)")
    parser.add_argument("-o", "--output", type=Path, help="Write to a file instead of stdout")
    parser.add_argument("--shell", help="Interpreter for blocks (default: sh)")
    parser.add_argument("--mode", choices=sheval.executor.MODES, help="inline (-c) or file")
    parser.add_argument("--capture", choices=sheval.capture.KINDS, help="Where blocks are held")
    parser.add_argument("--timeout", type=float, help="Seconds per block (0 = no limit)")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return cmd_render(
            args,
            stdin=stdin if stdin is not None else sys.stdin.buffer,
            stdout=stdout if stdout is not None else sys.stdout.buffer,
        )
    except (sheval.errors.ShevalError, OSError) as exc:
        return _report(exc)


def main_blocks(argv: list[str] | None = None, *, stdin: IO[bytes] | None = None) -> int:
    """Entry point for ``sheval blocks``."""
    parser = argparse.ArgumentParser(
        prog="sheval blocks",
        description="List marked blocks without running them.",
    )
    _add_common_args(parser)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return cmd_blocks(args, stdin=stdin if stdin is not None else sys.stdin.buffer)
    except (sheval.errors.ShevalError, OSError) as exc:
        return _report(exc)
