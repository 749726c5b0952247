"""Two-phase extraction state machine.

Alternates between copying literal text to the output and capturing a
code block, using one :class:`~sheval.scanner.Scanner` for both marker
searches. Only the scanner's sink changes between the two phases, so the
open and close markers get exactly the same boundary handling.

Captured blocks are handed to an executor, which writes its own result
to the output before scanning resumes.
"""

from __future__ import annotations

import contextlib
import dataclasses
import enum
import logging
from typing import TYPE_CHECKING

import sheval.capture
import sheval.delimiters
import sheval.errors
import sheval.scanner

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable

logger = logging.getLogger("sheval.processor")


class Mode(enum.Enum):
    AWAITING_OPEN = "awaiting-open"
    AWAITING_CLOSE = "awaiting-close"


@dataclasses.dataclass(frozen=True)
class CapturedBlock:
    """One block of text found between an open and a close marker."""

    # 1-based position among the blocks of this run
    index: int
    # stream offset of the open marker
    offset: int
    text: bytes
    # backing file when the capture is file-based
    path: pathlib.Path | None = None

    def first_line(self) -> str:
        line = self.text.strip().split(b"\n", 1)[0]
        return line.decode(errors="replace")


@dataclasses.dataclass
class ProcessResult:
    blocks: int = 0
    bytes_read: int = 0


class BlockProcessor:
    """Run every marked block of a stream through an executor.

    The capture accumulator is supplied by the caller, who also owns its
    lifetime (see :func:`sheval.capture.open_capture`). Without one, each
    call to :meth:`process` opens an in-memory capture and closes it on
    return.
    """

    def __init__(
        self,
        delimiters: sheval.delimiters.DelimiterPair = sheval.delimiters.DEFAULT_DELIMITERS,
        *,
        buffer_size: int = sheval.scanner.DEFAULT_BUFFER_SIZE,
        capture: sheval.capture.Capture | None = None,
    ) -> None:
        self.delimiters = sheval.delimiters.validate(delimiters)
        for marker in self.delimiters:
            if len(marker) > buffer_size:
                raise sheval.errors.DelimiterTooLargeError(marker, buffer_size)
        self.buffer_size = buffer_size
        self.capture = capture
        self.mode = Mode.AWAITING_OPEN

    def process(
        self,
        source: sheval.scanner.Source,
        output: sheval.scanner.Sink,
        executor: Callable[[CapturedBlock], object],
    ) -> ProcessResult:
        """Copy *source* to *output*, replacing each block with its executor output.

        Raises UnclosedDelimiterError if the input ends inside a block and
        BlockExecutionError if the executor fails. Output already written
        is not rolled back.
        """
        with contextlib.ExitStack() as stack:
            capture = self.capture
            if capture is None:
                capture = stack.enter_context(sheval.capture.open_capture("memory"))
            return self._run(source, output, executor, capture)

    def _run(
        self,
        source: sheval.scanner.Source,
        output: sheval.scanner.Sink,
        executor: Callable[[CapturedBlock], object],
        capture: sheval.capture.Capture,
    ) -> ProcessResult:
        scanner = sheval.scanner.Scanner(source, output, self.buffer_size)
        result = ProcessResult()
        open_offset = 0
        capture.reset()
        self.mode = Mode.AWAITING_OPEN

        while True:
            if self.mode is Mode.AWAITING_OPEN:
                found = scanner.find(self.delimiters.open)
                if found.outcome is sheval.scanner.Outcome.END_OF_STREAM:
                    result.bytes_read = found.offset
                    return result
                open_offset = found.offset
                scanner.redirect(capture)
                self.mode = Mode.AWAITING_CLOSE
            else:
                found = scanner.find(self.delimiters.close)
                if found.outcome is sheval.scanner.Outcome.END_OF_STREAM:
                    capture.reset()
                    raise sheval.errors.UnclosedDelimiterError(
                        self.delimiters.open, self.delimiters.close, open_offset
                    )
                scanner.redirect(output)
                block = CapturedBlock(
                    index=result.blocks + 1,
                    offset=open_offset,
                    text=capture.getvalue(),
                    path=capture.path,
                )
                self._execute(executor, block)
                capture.reset()
                result.blocks += 1
                self.mode = Mode.AWAITING_OPEN

    def _execute(self, executor: Callable[[CapturedBlock], object], block: CapturedBlock) -> None:
        logger.debug(
            "block #%d at byte %d: %d bytes: %s",
            block.index, block.offset, len(block.text), block.first_line(),
        )
        try:
            executor(block)
        except Exception as exc:
            logger.warning("block #%d failed: %s", block.index, exc)
            raise sheval.errors.BlockExecutionError(block.index, block.offset, exc) from exc
