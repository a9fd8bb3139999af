"""wiretalk CLI bootstrap."""

from __future__ import annotations

from wiretalk.cli import app

if __name__ == "__main__":
    app()
