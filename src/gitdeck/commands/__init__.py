"""CLI command modules for gitdeck.

This package contains the user-facing commands of the terminal host:
    - changes: status, stage, unstage, revert, commit
    - branches: branches, checkout, log
"""

from __future__ import annotations

from . import branches, changes

__all__ = ["branches", "changes"]
