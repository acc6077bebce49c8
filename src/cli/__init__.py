"""Command-line interface for FlowForge."""

from src.cli.main import app

__all__ = ["app"]
