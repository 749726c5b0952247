"""Run captured blocks through a shell.

Inline mode passes the block as the ``-c`` script::

    sh -c '<block>' <name> <arg1> <arg2> ...

so ``$0`` is the input's name and ``$1..$n`` are the user's arguments.
File mode runs the capture file directly (``<shell> <path> <args...>``),
for interpreters that want a script file rather than a ``-c`` string.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shlex
import subprocess
from typing import IO, TYPE_CHECKING, Any

import sheval.errors

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import sheval.processor

logger = logging.getLogger("sheval.executor")

MODES = ("inline", "file")


@dataclasses.dataclass
class ShellExecutor:
    """Callable executor for :meth:`BlockProcessor.process`.

    stdout and stderr of each block are merged and written to *output*
    in the order the shell produced them. *stdin* is shared by every
    block; whichever block reads it first consumes it.
    """

    output: IO[bytes]
    args: Sequence[str] = ()
    name: str = "sheval"
    shell: str = "sh"
    mode: str = "inline"
    stdin: IO[bytes] | None = None
    timeout: float | None = None
    env: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise sheval.errors.ConfigError(
                f"unknown exec mode {self.mode!r} (expected one of: {', '.join(MODES)})"
            )

    def command(self, block: sheval.processor.CapturedBlock) -> list[str]:
        """Return the argv that runs *block*."""
        if self.mode == "file":
            if block.path is None:
                raise sheval.errors.ConfigError("file mode needs a file-backed capture")
            return [self.shell, str(block.path), *self.args]
        return [self.shell, "-c", os.fsdecode(block.text), self.name, *self.args]

    def __call__(self, block: sheval.processor.CapturedBlock) -> None:
        argv = self.command(block)
        kwargs: dict[str, Any] = {}
        if self.env:
            kwargs["env"] = {**os.environ, **self.env}
        stdin, payload = self._stdin()
        if payload is None:
            kwargs["stdin"] = stdin
        else:
            kwargs["input"] = payload

        logger.debug("running: %s", shlex.join(argv))
        result = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=self.timeout,
            check=False,
            **kwargs,
        )
        if result.stdout:
            self.output.write(result.stdout)
        result.check_returncode()

    def _stdin(self) -> tuple[Any, bytes | None]:
        """Return ``(stdin, input)`` for subprocess.run.

        Streams with a real descriptor are handed to the child as-is;
        in-memory streams are drained and fed as input.
        """
        if self.stdin is None:
            return subprocess.DEVNULL, None
        try:
            self.stdin.fileno()
        except (AttributeError, OSError):
            return None, self.stdin.read()
        return self.stdin, None
