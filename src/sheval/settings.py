"""Configurable settings sections for scanning and block execution.

Both sections validate themselves on construction, so a bad value from a
config file, ``sheval config set`` or a command-line flag raises
:class:`sheval.errors.ConfigError` before any input is read.
"""

from __future__ import annotations

import dataclasses

import sheval.capture
import sheval.config
import sheval.delimiters
import sheval.errors
import sheval.executor
import sheval.scanner


def _one_of(name: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise sheval.errors.ConfigError(
            f"{name} must be one of: {', '.join(allowed)} (got {value!r})"
        )


@sheval.config.configurable("scan")
@dataclasses.dataclass
class ScanSettings:
    """How the input is scanned."""

    # Bytes held in memory at once; must be at least the longer marker.
    buffer_size: int = sheval.scanner.DEFAULT_BUFFER_SIZE
    open_delimiter: str = "%{"
    close_delimiter: str = "}%"

    def __post_init__(self) -> None:
        if self.buffer_size < 1:
            raise sheval.errors.ConfigError(
                f"scan.buffer_size must be at least 1 (got {self.buffer_size})"
            )
        self.delimiters()

    def delimiters(self) -> sheval.delimiters.DelimiterPair:
        return sheval.delimiters.DelimiterPair.from_strings(
            self.open_delimiter, self.close_delimiter
        )


@sheval.config.configurable("exec")
@dataclasses.dataclass
class ExecSettings:
    """How captured blocks are run."""

    shell: str = "sh"
    # inline: `shell -c <block>`; file: `shell <capture file>`
    mode: str = "inline"
    capture: str = "memory"
    # seconds per block, 0 = no limit
    timeout: float = 0.0

    def __post_init__(self) -> None:
        if not self.shell:
            raise sheval.errors.ConfigError("exec.shell must not be empty")
        _one_of("exec.mode", self.mode, sheval.executor.MODES)
        _one_of("exec.capture", self.capture, sheval.capture.KINDS)
        if self.timeout < 0:
            raise sheval.errors.ConfigError(
                f"exec.timeout must not be negative (got {self.timeout})"
            )

    def capture_kind(self) -> str:
        """File mode needs a path to run, so it always captures to a file."""
        return "file" if self.mode == "file" else self.capture

    def timeout_seconds(self) -> float | None:
        return self.timeout if self.timeout > 0 else None
