"""
Interface module - External interfaces to moodstore.

This module contains:
- cli.py: Command-line interface for operators
"""

from moodstore.interface.cli import app as cli_app

__all__ = [
    "cli_app",
]
