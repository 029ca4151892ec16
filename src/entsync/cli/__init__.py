"""
entsync CLI.

Command-line interface for running and inspecting the sync.

Usage:
    entsync sweep --config entsync.yaml
    entsync serve
    entsync inspect 76561198000000001
    entsync config --show
"""

from entsync.cli.main import app, main

__all__ = ["app", "main"]
