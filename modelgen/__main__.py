# File: modelgen/__main__.py
"""
NexaFlow ModelGen — Module entry point.

Allows running the generator directly via::

    python -m modelgen generate --schema schema.yaml

This module simply delegates to the CLI entry point defined in ``modelgen.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from modelgen.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
