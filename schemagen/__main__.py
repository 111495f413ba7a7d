# File: schemagen/__main__.py
"""
schemagen - Module entry point.

Allows running the generator directly via::

    python -m schemagen --schema schema.yaml --output ./my-api

Delegates to :func:`schemagen.cli.main`.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from schemagen.cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
