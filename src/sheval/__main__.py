"""sheval CLI: run the shell code embedded in a text file.

Usage:
    sheval render <file> [args...]   Replace each %{ ... }% block with its output
    sheval blocks <file>             List blocks without running them
    sheval config <cmd>              Settings (list/get/set/reset/show)

Run ``sheval <command> --help`` for options.
"""

from __future__ import annotations

import sys


def _cmd_render(args: list[str]) -> int:
    """Render a file, running every block."""
    import sheval.render_cli

    return sheval.render_cli.main_render(args)


def _cmd_blocks(args: list[str]) -> int:
    """List blocks without running them."""
    import sheval.render_cli

    return sheval.render_cli.main_blocks(args)


def _cmd_config(args: list[str]) -> int:
    """Show or change settings."""
    import sheval.config_cli

    return sheval.config_cli.main(args)


def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] in ("-h", "--help"):
        print(__doc__)
        sys.exit(1)

    cmd = args[0]
    rest = args[1:]

    if cmd == "render":
        sys.exit(_cmd_render(rest))
    elif cmd == "blocks":
        sys.exit(_cmd_blocks(rest))
    elif cmd == "config":
        sys.exit(_cmd_config(rest))
    else:
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
