"""Open/close marker pairs.

Markers follow the format::

    literal text %{ shell code }% more literal text

Markers are plain byte strings. They are never escaped or re-derived
at runtime; whatever is configured is matched byte for byte.
"""

from __future__ import annotations

from typing import NamedTuple

import sheval.errors


class DelimiterPair(NamedTuple):
    """The open and close markers of a code block."""

    open: bytes
    close: bytes

    @classmethod
    def from_strings(cls, open_marker: str, close_marker: str) -> DelimiterPair:
        """Build a validated pair from UTF-8 text (config files, CLI flags)."""
        return validate(cls(open_marker.encode(), close_marker.encode()))


DEFAULT_DELIMITERS = DelimiterPair(b"%{", b"}%")


def validate(pair: DelimiterPair) -> DelimiterPair:
    """Return *pair* unchanged, or raise ConfigError if a marker is empty."""
    if not pair.open:
        raise sheval.errors.ConfigError("open delimiter must not be empty")
    if not pair.close:
        raise sheval.errors.ConfigError("close delimiter must not be empty")
    return pair
