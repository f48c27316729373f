"""Shell completion through argcomplete.

Enable it with one of::

    eval "$(todo completion bash)"          # ~/.bashrc
    todo completion zsh > "${fpath[1]}/_todo"
    todo completion fish | source
"""

from __future__ import annotations

import logging
import os
from typing import List

import argcomplete

from .errors import ProjectNotFoundError
from .storage import find_project_root

SHELLS = ("bash", "zsh", "fish", "powershell")

logger = logging.getLogger('todo_cli')


def _base_dir() -> str:
    try:
        return find_project_root(".")
    except ProjectNotFoundError:
        return os.getcwd()


def _split(prefix: str):
    """Split what was typed into its folder part (separator kept) and the name being completed."""
    idx = max(prefix.rfind("/"), prefix.rfind("\\"))
    return prefix[:idx + 1], prefix[idx + 1:]


def complete_path(prefix: str, **kwargs) -> List[str]:
    """Files and folders relative to the project root, whatever the current subdirectory."""
    dir_part, name_prefix = _split(prefix)
    typed_dir = os.path.expanduser(dir_part)
    if os.path.isabs(typed_dir):
        search_dir = typed_dir
    elif typed_dir:
        search_dir = os.path.join(_base_dir(), typed_dir)
    else:
        search_dir = _base_dir()

    try:
        with os.scandir(search_dir) as it:
            entries = list(it)
    except OSError as exc:
        logger.debug("Path completion cannot read %s: %s", search_dir, exc)
        return []

    out: List[str] = []
    for entry in entries:
        if not entry.name.startswith(name_prefix):
            continue
        candidate = dir_part + entry.name
        if entry.is_dir():
            candidate += "/"
        out.append(candidate)
    return sorted(out)


def shell_script(shell: str) -> str:
    return argcomplete.shellcode(["todo"], shell=shell)
