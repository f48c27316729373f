"""Branch and commit lookup through the ``git`` executable."""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Tuple

logger = logging.getLogger('todo_cli')


def _git(args: List[str], cwd: Optional[str] = None) -> str:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.debug("git %s failed: %s", " ".join(args), exc)
        return ""
    return proc.stdout.strip()


def is_git_repo(cwd: Optional[str] = None) -> bool:
    return _git(["rev-parse", "--is-inside-work-tree"], cwd) == "true"


def current_branch(cwd: Optional[str] = None) -> str:
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)


def current_commit(cwd: Optional[str] = None) -> str:
    """Short hash of HEAD, empty when there is no commit yet."""
    return _git(["rev-parse", "--short", "HEAD"], cwd)


def git_context(cwd: Optional[str] = None) -> Tuple[str, str]:
    if not is_git_repo(cwd):
        return "", ""
    branch = current_branch(cwd)
    if not branch:
        return "", ""
    return branch, current_commit(cwd)
