"""Entry point for `python -m pilot_cli` and the `claimpilot` console script."""

from __future__ import annotations

from pilot_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
