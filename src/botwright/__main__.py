"""Allow running as `python -m botwright`."""

from botwright.cli import app

app()
