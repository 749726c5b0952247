"""Bounded-buffer delimiter scanner.

A :class:`Scanner` pulls bytes from a source into one fixed-size buffer
and pushes every byte that is not part of a delimiter to its sink. It
never holds more than ``capacity`` bytes, no matter how large the input
is, and never writes a byte that might still turn out to be the start
of a delimiter split across two reads.

A Scanner is not safe for concurrent use. Callers own the ordering.
"""

from __future__ import annotations

import enum
import io
import logging
import select
from typing import NamedTuple, Protocol

import sheval.errors

logger = logging.getLogger("sheval.scanner")

DEFAULT_BUFFER_SIZE = 4096


class Source(Protocol):
    """Pull side: any binary stream with ``readinto`` (files, pipes, BytesIO).

    ``readinto`` may fill fewer bytes than requested. It returns 0 at end
    of stream and ``None`` when a non-blocking source has nothing yet. In
    that case the scanner waits on the source's ``fileno()`` if it has one.
    """

    def readinto(self, buffer: memoryview, /) -> int | None: ...


class Sink(Protocol):
    """Push side: a successful ``write`` means every byte was taken."""

    def write(self, data: bytes, /) -> object: ...


class Outcome(enum.Enum):
    FOUND = "found"
    END_OF_STREAM = "end-of-stream"


class SearchResult(NamedTuple):
    """Result of :meth:`Scanner.find`.

    For ``FOUND``, *offset* is the stream offset of the first delimiter
    byte. For ``END_OF_STREAM`` it is the total number of bytes read.
    """

    outcome: Outcome
    offset: int

    @property
    def found(self) -> bool:
        return self.outcome is Outcome.FOUND


def prefix_as_suffix(
    data: bytes | bytearray,
    delimiter: bytes,
    start: int = 0,
    end: int | None = None,
) -> int:
    """Return the length of the longest proper prefix of *delimiter* ending ``data[start:end]``.

    So with ``data = b"abcde"`` and ``delimiter = b"def"`` the result is 2,
    since ``b"de"`` may be the first half of a delimiter whose remainder
    has not been read yet. Returns 0 when there is no such prefix.

    Longer prefixes are tried first: a short match must not hide a longer
    genuine straddle.
    """
    if end is None:
        end = len(data)
    for n in range(min(len(delimiter) - 1, end - start), 0, -1):
        if data.endswith(delimiter[:n], start, end):
            return n
    return 0


class Scanner:
    """Single-allocation reader that copies input to a sink up to a delimiter.

    Usage::

        scanner = Scanner(source, sink, size=4096)
        while scanner.find(b"%{").found:
            ...
    """

    def __init__(self, source: Source, sink: Sink, size: int = DEFAULT_BUFFER_SIZE) -> None:
        if size < 1:
            raise sheval.errors.ConfigError(f"buffer size must be positive, got {size}")
        self._source = source
        self._sink = sink
        self._buf = bytearray(size)
        self._view = memoryview(self._buf)
        # index of first unconsumed byte
        self._start = 0
        # index of first unfilled byte
        self._end = 0
        # stream offset of self._buf[self._start]
        self._position = 0

    @property
    def capacity(self) -> int:
        return len(self._buf)

    @property
    def position(self) -> int:
        """Number of input bytes consumed (flushed or matched) so far."""
        return self._position

    @property
    def sink(self) -> Sink:
        return self._sink

    def redirect(self, sink: Sink) -> Sink:
        """Send subsequent output to *sink*; return the previous sink."""
        previous, self._sink = self._sink, sink
        return previous

    def empty(self) -> bool:
        return self._start == self._end

    def find(self, delimiter: bytes) -> SearchResult:
        """Copy input to the sink until *delimiter* is found or the input ends.

        The delimiter itself is consumed and never written. Read and write
        errors propagate as-is; whatever was flushed before stays flushed.
        """
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        if len(delimiter) > len(self._buf):
            raise sheval.errors.DelimiterTooLargeError(delimiter, len(self._buf))

        while True:
            if self.empty() and not self._fill():
                return SearchResult(Outcome.END_OF_STREAM, self._position)

            i = self._buf.find(delimiter, self._start, self._end)
            if i != -1:
                offset = self._position + (i - self._start)
                self._flush(i - self._start)
                self._advance(len(delimiter))
                return SearchResult(Outcome.FOUND, offset)

            tail = prefix_as_suffix(self._buf, delimiter, self._start, self._end)
            if not tail:
                self._flush(self._end - self._start)
                continue

            # Hold back the tail: it may be the first part of the delimiter.
            self._flush(self._end - self._start - tail)
            self._compact()
            if not self._fill():
                # Input ended mid-prefix, so the tail was plain text after all.
                self._flush(self._end - self._start)
                return SearchResult(Outcome.END_OF_STREAM, self._position)

    def _fill(self) -> int:
        """Read into the free space after ``_end``; return bytes read, 0 at EOF.

        A single read is not guaranteed to fill the buffer.
        """
        if self.empty():
            self._start = self._end = 0

        n = self._source.readinto(self._view[self._end:])
        while n is None:
            self._wait_readable()
            n = self._source.readinto(self._view[self._end:])

        self._end += n
        logger.debug(
            "refill: read %d bytes, holding %d/%d",
            n, self._end - self._start, len(self._buf),
        )
        return n

    def _wait_readable(self) -> None:
        """Block until a non-blocking source has data, when it has a descriptor.

        Sources without one (in-memory fakes) are simply read again.
        """
        try:
            fd = self._source.fileno()
        except (AttributeError, io.UnsupportedOperation):
            return
        logger.debug("refill: waiting for fd %d to become readable", fd)
        select.select([fd], [], [])

    def _flush(self, n: int) -> None:
        """Write the next *n* unconsumed bytes to the sink."""
        if n:
            self._sink.write(bytes(self._view[self._start:self._start + n]))
        self._advance(n)

    def _advance(self, n: int) -> None:
        self._start += n
        self._position += n
        if self._start == self._end:
            self._start = self._end = 0

    def _compact(self) -> None:
        """Move the unconsumed bytes to the front of the buffer."""
        n = self._end - self._start
        self._buf[:n] = self._buf[self._start:self._end]
        self._start, self._end = 0, n
        logger.debug("compact: carried %d byte(s) across refill", n)
