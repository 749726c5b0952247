"""Capture accumulators for block text.

Both accumulators satisfy the scanner's sink contract, so the block
processor can point the scanner at either one. :class:`FileCapture`
keeps large blocks out of memory and gives executors a script path.

Use :func:`open_capture` so the backing resource is released on every
exit path::

    with sheval.capture.open_capture("file") as capture:
        processor = BlockProcessor(capture=capture)
        ...
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import pathlib
import tempfile
from typing import TYPE_CHECKING, Protocol

import sheval.errors

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("sheval.capture")

KINDS = ("memory", "file")


class Capture(Protocol):
    path: pathlib.Path | None

    def write(self, data: bytes, /) -> int: ...

    def getvalue(self) -> bytes: ...

    def reset(self) -> None: ...

    def close(self) -> None: ...


class MemoryCapture:
    """Append-only in-memory accumulator."""

    path = None

    def __init__(self) -> None:
        self._buf = io.BytesIO()

    def write(self, data: bytes) -> int:
        return self._buf.write(data)

    def getvalue(self) -> bytes:
        return self._buf.getvalue()

    def reset(self) -> None:
        self._buf.seek(0)
        self._buf.truncate()

    def close(self) -> None:
        self._buf.close()


class FileCapture:
    """Accumulator backed by a private temporary file.

    The file is created on construction, truncated by :meth:`reset` and
    removed by :meth:`close`.
    """

    def __init__(self, directory: pathlib.Path | None = None, suffix: str = ".sh") -> None:
        fd, name = tempfile.mkstemp(prefix="sheval-", suffix=suffix, dir=directory)
        self.path: pathlib.Path | None = pathlib.Path(name)
        self._file = os.fdopen(fd, "w+b")
        logger.debug("capture file: %s", self.path)

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def getvalue(self) -> bytes:
        """Flush to disk and return the whole block.

        After this the file on disk is complete, so executors may open
        :attr:`path` themselves.
        """
        self._file.flush()
        self._file.seek(0)
        return self._file.read()

    def reset(self) -> None:
        self._file.seek(0)
        self._file.truncate()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None


@contextlib.contextmanager
def open_capture(
    kind: str = "memory",
    *,
    directory: pathlib.Path | None = None,
) -> Iterator[Capture]:
    """Create a capture of *kind* (``memory`` or ``file``) and close it on exit."""
    capture: Capture
    if kind == "memory":
        capture = MemoryCapture()
    elif kind == "file":
        capture = FileCapture(directory)
    else:
        raise sheval.errors.ConfigError(
            f"unknown capture kind {kind!r} (expected one of: {', '.join(KINDS)})"
        )
    try:
        yield capture
    finally:
        capture.close()
