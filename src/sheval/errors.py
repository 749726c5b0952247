"""Exception hierarchy for sheval.

Every error the preprocessor raises on purpose derives from
:class:`ShevalError` and carries the exit code the CLI reports for it.
Input/output failures are left as the ``OSError`` that caused them.
"""

from __future__ import annotations

from typing import ClassVar

# OSError during a run is reported with this code; it is not wrapped.
EXIT_IO_ERROR = 5


class ShevalError(Exception):
    """Base exception for all sheval errors."""

    exit_code: ClassVar[int] = 1
    kind: ClassVar[str] = "error"


class ConfigError(ShevalError, ValueError):
    """Invalid delimiters, buffer sizes or settings values."""

    exit_code = 2
    kind = "configuration error"


class DelimiterTooLargeError(ConfigError):
    """Raised before any I/O when a delimiter cannot fit in the scan buffer."""

    def __init__(self, delimiter: bytes, capacity: int) -> None:
        super().__init__(
            f"delimiter {delimiter!r} ({len(delimiter)} bytes) is larger "
            f"than the {capacity}-byte buffer"
        )
        self.delimiter = delimiter
        self.capacity = capacity


class UnclosedDelimiterError(ShevalError):
    """The input ended while a block was still open."""

    exit_code = 3
    kind = "unclosed delimiter"

    def __init__(self, open_delimiter: bytes, close_delimiter: bytes, offset: int) -> None:
        super().__init__(
            f"{open_delimiter.decode(errors='replace')!r} at byte {offset} "
            f"has no matching {close_delimiter.decode(errors='replace')!r}"
        )
        self.offset = offset


class BlockExecutionError(ShevalError):
    """The executor failed on a captured block.

    The original exception is chained as ``__cause__``.
    """

    exit_code = 4
    kind = "block failed"

    def __init__(self, index: int, offset: int, cause: BaseException) -> None:
        super().__init__(f"block #{index} at byte {offset}: {cause}")
        self.index = index
        self.offset = offset
