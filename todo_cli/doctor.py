"""Health checks over a todo collection, and the fixes ``todo doctor --fix`` applies."""

from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .models import Status, Todo, now as _now

STALE_DAYS = 30

logger = logging.getLogger('todo_cli')


def _path_exists(root: str, path: str) -> bool:
    return os.path.exists(os.path.join(root, path))


def missing_paths(todo: Todo, root: str) -> List[str]:
    return [p for p in todo.context.paths if not _path_exists(root, p)]


def check_orphaned_paths(todos: List[Todo], root: str) -> Tuple[List[Todo], int, int]:
    """Return (todos with a missing path, missing path count, total path count).

    Paths are resolved relative to the project root.
    """
    orphaned: List[Todo] = []
    orphaned_count = 0
    total = 0
    for todo in todos:
        total += len(todo.context.paths)
        missing = missing_paths(todo, root)
        if missing:
            orphaned_count += len(missing)
            orphaned.append(todo)
    return orphaned, orphaned_count, total


def check_empty_todos(todos: List[Todo]) -> List[Todo]:
    return [t for t in todos if not t.text.strip()]


def check_duplicate_todos(todos: List[Todo]) -> List[Todo]:
    """Every todo whose trimmed text already appeared earlier in the list."""
    seen = set()
    duplicates: List[Todo] = []
    for todo in todos:
        key = todo.text.strip()
        if key in seen:
            duplicates.append(todo)
        seen.add(key)
    return duplicates


def check_stale_todos(todos: List[Todo], now: Optional[dt.datetime] = None, days: int = STALE_DAYS) -> List[Todo]:
    now = now or _now()
    limit = dt.timedelta(days=days)
    return [t for t in todos if t.status == Status.OPEN and now - t.created_at > limit]


@dataclass
class FixReport:
    removed_orphaned_paths: int = 0
    removed_empty: int = 0
    removed_duplicates: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.removed_orphaned_paths or self.removed_empty or self.removed_duplicates)


def apply_fixes(todos: List[Todo], root: str) -> Tuple[List[Todo], FixReport]:
    """Drop empty and duplicate todos, strip missing paths from the rest.

    The input list and its todos are left untouched.
    """
    report = FixReport()
    cleaned: List[Todo] = []
    seen = set()
    for todo in todos:
        text = todo.text.strip()
        if not text:
            report.removed_empty += 1
            continue
        if text in seen:
            report.removed_duplicates += 1
            continue
        seen.add(text)

        valid = [p for p in todo.context.paths if _path_exists(root, p)]
        if len(valid) != len(todo.context.paths):
            report.removed_orphaned_paths += len(todo.context.paths) - len(valid)
            todo = replace(todo, context=replace(todo.context, paths=valid), updated_at=_now())
        cleaned.append(todo)

    logger.info(
        "Doctor fixes: %d orphaned path(s), %d empty, %d duplicate(s)",
        report.removed_orphaned_paths, report.removed_empty, report.removed_duplicates,
    )
    return cleaned, report
