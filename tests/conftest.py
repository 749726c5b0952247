"""Shared test fixtures for sheval tests."""

from __future__ import annotations

import pathlib

import pytest

import sheval.config


class ChunkedReader:
    """Source that hands out at most *chunk* bytes per ``readinto``.

    *stalls* leading reads return ``None`` (no data yet). When *error* is
    set it is raised instead of reporting end of stream.
    """

    def __init__(
        self,
        data: bytes,
        chunk: int = 1,
        *,
        stalls: int = 0,
        error: Exception | None = None,
    ) -> None:
        self._data = data
        self._pos = 0
        self._chunk = chunk
        self._stalls = stalls
        self._error = error
        self.reads = 0

    def readinto(self, buf: memoryview) -> int | None:
        self.reads += 1
        if self._stalls:
            self._stalls -= 1
            return None
        n = min(len(buf), self._chunk, len(self._data) - self._pos)
        if n == 0 and self._error is not None:
            raise self._error
        buf[:n] = self._data[self._pos:self._pos + n]
        self._pos += n
        return n


@pytest.fixture
def chunked():
    """Factory for :class:`ChunkedReader` sources."""
    return ChunkedReader


@pytest.fixture(autouse=True)
def _isolated_global_config(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> pathlib.Path:
    """Keep ~/.config/sheval/config.toml out of every test."""
    global_toml = tmp_path / "global_config" / "config.toml"
    monkeypatch.setattr(sheval.config, "_global_path", lambda: global_toml)
    return global_toml


@pytest.fixture
def marked_file(tmp_path: pathlib.Path):
    """Factory for an input file with the given bytes."""

    def _create(content: bytes, name: str = "input.txt") -> pathlib.Path:
        path = tmp_path / name
        path.write_bytes(content)
        return path

    return _create
