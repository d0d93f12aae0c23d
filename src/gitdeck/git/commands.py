"""Argument vectors for every git call gitdeck issues.

Paths, branch names and messages are passed as separate argv entries;
nothing is ever interpreted by a shell. ``--`` separates options from
paths so a file named ``-f`` stays a file.
"""

from __future__ import annotations

from dataclasses import dataclass


def sanitize_commit_message(message: str) -> str:
    """Replace embedded double quotes with spaces."""
    return message.replace('"', " ")


@dataclass(frozen=True, slots=True)
class GitCommands:
    binary: str = "git"

    # Reads -----------------------------------------------------------------

    def clean_check(self) -> list[str]:
        return [self.binary, "status", "--porcelain"]

    def staged_diff(self) -> list[str]:
        return [self.binary, "diff", "--name-status", "--cached"]

    def working_diff(self) -> list[str]:
        return [self.binary, "diff", "--name-status"]

    def untracked(self) -> list[str]:
        return [self.binary, "ls-files", "--others", "--exclude-standard"]

    def branches(self) -> list[str]:
        return [self.binary, "branch"]

    def log(self) -> list[str]:
        return [self.binary, "log", "--pretty=oneline", "--abbrev-commit"]

    # Mutations -------------------------------------------------------------

    def stage(self, path: str) -> list[str]:
        return [self.binary, "add", "--", path]

    def unstage(self, path: str) -> list[str]:
        return [self.binary, "reset", "HEAD", "--", path]

    def discard(self, path: str) -> list[str]:
        return [self.binary, "checkout", "HEAD", "--", path]

    def commit(self, message: str) -> list[str]:
        return [self.binary, "commit", "-m", sanitize_commit_message(message)]

    def checkout(self, name: str, *, create: bool = False) -> list[str]:
        args = [self.binary, "checkout"]
        if create:
            args.append("-b")
        args.append(name)
        return args


__all__ = ["GitCommands", "sanitize_commit_message"]
