"""Error types raised by the store, the commands and the session."""

from __future__ import annotations


class TodoError(Exception):
    """Base class for every error the CLI reports to the user."""


class ProjectNotFoundError(TodoError):
    def __init__(self, search_path: str):
        self.search_path = search_path
        super().__init__(
            f"no todo project found (searched from: {search_path}). "
            "Run 'todo init' to create one"
        )


class AlreadyInitializedError(TodoError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"todo project already initialized at: {path}")


class TodoNotFoundError(TodoError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"todo not found: {token}")


class InvalidStatusError(TodoError, ValueError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"invalid status: {value}. Valid statuses: open, done, blocked, waiting, tech-debt"
        )


class InvalidPriorityError(TodoError, ValueError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"invalid priority: {value}. Use: low, medium, high")


class ValidationError(TodoError, ValueError):
    pass


class StoreError(TodoError):
    """Reading, parsing or writing a file under the marker directory failed."""


class TerminalUnavailableError(TodoError):
    pass
