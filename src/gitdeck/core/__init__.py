"""Core shared infrastructure for gitdeck.

This package contains foundational utilities:
    - config: Application configuration management
    - console: Rich console output and logging
    - result: Error handling patterns
    - sys: External process execution
"""

from __future__ import annotations

from . import config, console

__all__ = ["config", "console"]
