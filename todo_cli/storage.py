"""Project discovery and the JSON-backed todo store.

Everything lives under a ``.todos`` marker directory at the project root:

    .todos/todos.json   {"version": 1, "todos": [...]}
    .todos/config.json  {"version": 1, "autoGit": true, "defaultBranch": "..."}

Each command loads the whole collection, mutates it in memory and writes it
back in one piece. There is no locking; concurrent writers race and the last
one wins.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import AlreadyInitializedError, ProjectNotFoundError, StoreError
from .models import SCHEMA_VERSION, Priority, ProjectConfig, Status, Todo, priority_weight

TODOS_DIR = ".todos"
TODOS_FILE = "todos.json"
CONFIG_FILE = "config.json"

logger = logging.getLogger('todo_cli')


# -----------------------------
# Project locator
# -----------------------------
def find_project_root(start: str = ".") -> str:
    """Walk upward from ``start`` until a directory holding ``.todos/`` is found."""
    current = os.path.abspath(start)
    while True:
        if os.path.isdir(os.path.join(current, TODOS_DIR)):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            raise ProjectNotFoundError(start)
        current = parent


def ensure_project_root(path: str) -> str:
    root = os.path.abspath(path)
    try:
        os.makedirs(os.path.join(root, TODOS_DIR), exist_ok=True)
    except OSError as exc:
        raise StoreError(f"failed to create {TODOS_DIR} directory: {exc}") from exc
    return root


def init_project(path: str, force: bool = False) -> str:
    """Create the marker directory with an empty collection and default config.

    With ``force`` an existing project is overwritten and its todos are lost.
    """
    root = os.path.abspath(path)
    marker = os.path.join(root, TODOS_DIR)
    if not force and os.path.exists(marker):
        raise AlreadyInitializedError(marker)
    ensure_project_root(root)
    save_todos(root, [])
    save_config(root, ProjectConfig())
    logger.info("Initialized todo project at %s (force=%s)", root, force)
    return root


def todos_path(root: str) -> str:
    return os.path.join(root, TODOS_DIR, TODOS_FILE)


def config_path(root: str) -> str:
    return os.path.join(root, TODOS_DIR, CONFIG_FILE)


# -----------------------------
# File I/O
# -----------------------------
def _read_json(path: str, what: str) -> Optional[object]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = f.read()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise StoreError(f"failed to read {what} file: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StoreError(f"failed to parse {what} file: {exc}") from exc


def _write_json(path: str, payload: object, what: str) -> None:
    """Replace ``path`` in one step: write a sibling temp file, then rename it over."""
    tmp_path = f"{path}.tmp.{os.getpid()}.{secrets.token_hex(3)}"
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise StoreError(f"failed to write {what} file: {exc}") from exc


def _parse_records(records: list, path: str) -> List[Todo]:
    todos: List[Todo] = []
    for pos, record in enumerate(records, start=1):
        try:
            todos.append(Todo.from_dict(record))
        except ValueError as exc:
            raise StoreError(f"failed to parse todos file {path}: record {pos}: {exc}") from exc
    return todos


def load_todos(root: str) -> List[Todo]:
    """Load the collection; a missing file is an empty collection.

    Accepts the ``{"version", "todos"}`` envelope and, for files written by
    older releases, a bare JSON array of todos.
    """
    path = todos_path(root)
    data = _read_json(path, "todos")
    if data is None:
        return []
    if isinstance(data, dict):
        records = data.get("todos") or []
        if not isinstance(records, list):
            raise StoreError(f"failed to parse todos file {path}: 'todos' must be a list")
    elif isinstance(data, list):
        logger.debug("Loaded legacy array format from %s", path)
        records = data
    else:
        raise StoreError(f"failed to parse todos file {path}: unexpected JSON {type(data).__name__}")
    todos = _parse_records(records, path)
    logger.debug("Loaded %d todo(s) from %s", len(todos), path)
    return todos


def save_todos(root: str, todos: Iterable[Todo]) -> None:
    todos = list(todos)
    payload = {"version": SCHEMA_VERSION, "todos": [t.to_dict() for t in todos]}
    _write_json(todos_path(root), payload, "todos")
    logger.debug("Saved %d todo(s) to %s", len(todos), todos_path(root))


def load_config(root: str) -> ProjectConfig:
    path = config_path(root)
    data = _read_json(path, "config")
    if data is None:
        return ProjectConfig()
    try:
        return ProjectConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise StoreError(f"failed to parse config file {path}: {exc}") from exc


def save_config(root: str, config: ProjectConfig) -> None:
    _write_json(config_path(root), config.to_dict(), "config")


def generate_id() -> str:
    """128 random bits, hex encoded. No uniqueness check against existing ids."""
    return secrets.token_hex(16)


# -----------------------------
# Lookup
# -----------------------------
def find_by_id(todos: List[Todo], todo_id: str) -> Tuple[Optional[Todo], int]:
    for i, t in enumerate(todos):
        if t.id == todo_id:
            return t, i
    return None, -1


def find_by_index(todos: List[Todo], index: int) -> Tuple[Optional[Todo], int]:
    """``index`` is 1-based, as shown by ``todo list``."""
    pos = index - 1
    if 0 <= pos < len(todos):
        return todos[pos], pos
    return None, -1


def find_by_id_or_index(todos: List[Todo], token: str) -> Tuple[Optional[Todo], int]:
    """Resolve a user token: 1-based index first, then exact id, then id prefix.

    Prefixes must be at least 4 characters. When several ids share the
    prefix the first one in collection order wins.
    """
    token = (token or "").strip()
    if token.isascii() and token.isdigit():
        todo, pos = find_by_index(todos, int(token))
        if todo is not None:
            return todo, pos
    todo, pos = find_by_id(todos, token)
    if todo is not None:
        return todo, pos
    if len(token) < 4:
        return None, -1
    matches = [i for i, t in enumerate(todos) if t.id.startswith(token)]
    if not matches:
        return None, -1
    if len(matches) > 1:
        logger.warning("Id prefix %r is ambiguous (%d matches); using the first", token, len(matches))
    return todos[matches[0]], matches[0]


def delete_at(todos: List[Todo], position: int) -> List[Todo]:
    """Return a new list without ``todos[position]``; out of range is a no-op."""
    if position < 0 or position >= len(todos):
        return todos
    return todos[:position] + todos[position + 1:]


# -----------------------------
# Filters
# -----------------------------
def filter_by_status(todos: List[Todo], status: Status) -> List[Todo]:
    return [t for t in todos if t.status == status]


def filter_by_path_prefix(todos: List[Todo], prefix: str) -> List[Todo]:
    """Literal string prefix, not path aware: ``src`` matches ``srcfoo``."""
    return [t for t in todos if any(p.startswith(prefix) for p in t.context.paths)]


def filter_by_branch(todos: List[Todo], branch: str) -> List[Todo]:
    return [t for t in todos if t.context.branch == branch]


def filter_by_priority(todos: List[Todo], priority: Priority) -> List[Todo]:
    return [t for t in todos if t.priority == priority]


def count_by_status(todos: Iterable[Todo]) -> Dict[str, int]:
    """Tally per status value; every status is present, zero when unused."""
    counts = {s.value: 0 for s in Status}
    for t in todos:
        counts[t.status.value] += 1
    return counts


def sort_by_priority(todos: List[Todo]) -> List[Todo]:
    """Highest priority first; equal priorities by creation time, oldest first."""
    return sorted(todos, key=lambda t: (-priority_weight(t.priority), t.created_at))


def normalize_paths(raw: Iterable[str]) -> List[str]:
    """Expand comma separated entries, trim them and drop empties, keeping order."""
    paths: List[str] = []
    for value in raw or []:
        for part in str(value).split(","):
            part = part.strip()
            if part:
                paths.append(part)
    return paths
