"""Command-line interface (``uptrends-spine``)."""

from uptrends_spine.cli.app import app

__all__ = ["app"]
