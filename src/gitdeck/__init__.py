"""gitdeck - asynchronous working-tree status engine on top of the git CLI.

This package provides the core a host application drives to stage, unstage,
revert, commit, switch branches and browse history, plus the `gitdeck`
command-line adapter.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
