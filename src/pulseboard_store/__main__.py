"""Allow ``python -m pulseboard_store``."""

from __future__ import annotations

from pulseboard_store.cli import app

if __name__ == "__main__":
    app()
