"""Interactive full-screen todo list.

``ListSession`` holds the whole keyboard state machine and knows nothing
about terminals; ``run_session`` wraps it in a prompt_toolkit application
that redraws the screen after every key press.

Keys while browsing::

    up/k, down/j   move the cursor        g, G      first / last
    space, enter   toggle done/open       d, x      delete (asks first)
    ?, h           help                   q, esc    quit
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Callable, List, Optional

from prompt_toolkit.application import Application, get_app
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style

from .display import Fragments, header, stats_fragments, status_class, status_icon, truncate
from .errors import TerminalUnavailableError, TodoError
from .models import Status, Todo
from .storage import delete_at

logger = logging.getLogger('todo_cli')

Persist = Callable[[List[Todo]], None]

PROGRESS_WIDTH = 30
# lines around the visible rows: header box, key legend, scroll markers,
# progress bar, stats and the selected row's context
CHROME_ROWS = 15

# prompt_toolkit key names folded onto the names ListSession understands
_KEY_ALIASES = {
    Keys.ControlM.value: 'enter',
    Keys.ControlJ.value: 'enter',
    Keys.ControlC.value: 'q',
    Keys.Escape.value: 'escape',
    Keys.Up.value: 'up',
    Keys.Down.value: 'down',
}


class Mode(str, Enum):
    BROWSING = "browsing"
    CONFIRM_DELETE = "confirm-delete"
    HELP = "help"


class ListSession:
    """Cursor, mode and working copy of the todos shown in the list."""

    def __init__(self, todos: List[Todo], persist: Optional[Persist] = None):
        self.todos: List[Todo] = list(todos)
        self.persist: Persist = persist or (lambda todos: None)
        self.cursor = 0
        self.offset = 0  # first row shown when the list is taller than the screen
        self.mode = Mode.BROWSING
        self.exited = False

    @property
    def selected(self) -> Optional[Todo]:
        if 0 <= self.cursor < len(self.todos):
            return self.todos[self.cursor]
        return None

    def _clamp(self) -> None:
        self.cursor = max(0, min(self.cursor, len(self.todos) - 1))

    def scroll_into_view(self, visible_rows: int) -> None:
        visible_rows = max(1, visible_rows)
        if self.cursor < self.offset:
            self.offset = self.cursor
        elif self.cursor >= self.offset + visible_rows:
            self.offset = self.cursor - visible_rows + 1
        self.offset = max(0, min(self.offset, len(self.todos) - visible_rows))

    def press(self, key: str) -> None:
        """Apply one key. Errors raised by ``persist`` propagate to the caller."""
        if self.exited:
            return
        if self.mode == Mode.HELP:
            self.mode = Mode.BROWSING
        elif self.mode == Mode.CONFIRM_DELETE:
            self._press_confirm(key)
        else:
            self._press_browsing(key)
        self._clamp()

    def _press_browsing(self, key: str) -> None:
        if key in ('q', 'Q', 'escape'):
            self.exited = True
        elif key in ('down', 'j'):
            self.cursor += 1
        elif key in ('up', 'k'):
            self.cursor -= 1
        elif key == 'g':
            self.cursor = 0
        elif key == 'G':
            self.cursor = len(self.todos) - 1
        elif key in (' ', 'enter'):
            todo = self.selected
            if todo is not None:
                todo.toggle()
                logger.debug("Toggled %s to %s", todo.short_id, todo.status)
                self.persist(self.todos)
        elif key in ('d', 'D', 'x', 'X'):
            if self.selected is not None:
                self.mode = Mode.CONFIRM_DELETE
        elif key in ('?', 'h', 'H'):
            self.mode = Mode.HELP

    def _press_confirm(self, key: str) -> None:
        if key in ('y', 'Y'):
            self.mode = Mode.BROWSING
            if self.selected is None:
                return
            logger.debug("Deleting %s", self.selected.short_id)
            self.todos = delete_at(self.todos, self.cursor)
            self.persist(self.todos)
            if self.cursor >= len(self.todos) and self.cursor > 0:
                self.cursor -= 1
            if not self.todos:
                self.exited = True
        elif key in ('n', 'N', 'escape', 'q'):
            self.mode = Mode.BROWSING


# -----------------------------
# Rendering
# -----------------------------
def _progress_fragments(cursor: int, total: int) -> Fragments:
    position = cursor + 1 if total else 0
    filled = int(position / total * PROGRESS_WIDTH) if total else 0
    bar = "█" * filled + "░" * (PROGRESS_WIDTH - filled)
    return [('class:dim', f"  {bar} {position}/{total}\n")]


def build_list_fragments(todos: List[Todo], cursor: int, offset: int = 0,
                         visible_rows: Optional[int] = None) -> Fragments:
    """Render the list; only ``visible_rows`` todos starting at ``offset`` when given."""
    frags = header("TODO LIST", "📋")
    frags.append(('', '\n'))
    frags.extend([
        ('', '  '), ('class:key', '↑↓'), ('class:dim', ' navigate  '),
        ('class:key.ok', '␣'), ('class:dim', ' toggle  '),
        ('class:key.danger', 'd'), ('class:dim', ' delete  '),
        ('class:key.danger', 'q'), ('class:dim', ' quit  '),
        ('class:accent', '?'), ('class:dim', ' help\n\n'),
    ])
    if not todos:
        frags.append(('class:dim', "  No todos.\n"))
    end = len(todos) if visible_rows is None else offset + visible_rows
    if offset > 0:
        frags.append(('class:dim', f"    ↑ {offset} more\n"))
    for i, todo in enumerate(todos[offset:end], start=offset):
        selected = i == cursor
        text = truncate(todo.text, 50)
        if selected:
            frags.append(('class:cursor.marker', "  ▸ "))
            frags.append((status_class(todo.status) + ' bold', status_icon(todo.status)))
            frags.append(('class:cursor', f" {text}\n"))
            if todo.context.paths:
                frags.append(('class:dim', f"      📁 {', '.join(todo.context.paths)}\n"))
            if todo.context.branch:
                frags.append(('class:dim', f"      🌿 {todo.context.branch}\n"))
        else:
            text_class = 'class:text.done' if todo.status == Status.DONE else ''
            frags.append(('class:dim', "    "))
            frags.append((status_class(todo.status), status_icon(todo.status)))
            frags.append((text_class, f" {text}\n"))
    if end < len(todos):
        frags.append(('class:dim', f"    ↓ {len(todos) - end} more\n"))
    frags.append(('', '\n'))
    frags.extend(_progress_fragments(cursor, len(todos)))
    frags.extend(stats_fragments(todos))
    frags.append(('', '\n'))
    return frags


def build_confirm_fragments(todo: Optional[Todo]) -> Fragments:
    frags = header("DELETE TODO", "🗑️ ", 'class:header.danger')
    frags.append(('', '\n'))
    if todo is not None:
        frags.extend([
            ('class:dim', "  Are you sure you want to delete:\n\n"),
            ('class:strong', f"  \"{truncate(todo.text, 45)}\"\n\n"),
        ])
    frags.extend([
        ('class:error', "  This action cannot be undone.\n\n"),
        ('', "  Press "), ('class:key.ok', "Y"), ('', " to confirm, "),
        ('class:key.danger', "N"), ('', " to cancel\n"),
    ])
    return frags


def build_help_fragments() -> Fragments:
    frags = header("KEYBOARD SHORTCUTS", "📚")
    frags.extend([
        ('', '\n'),
        ('class:key', "  Navigation\n"),
        ('class:key', "  ↑ k"), ('', "    Move up\n"),
        ('class:key', "  ↓ j"), ('', "    Move down\n"),
        ('class:key', "  g"), ('', "      Jump to top\n"),
        ('class:key', "  G"), ('', "      Jump to bottom\n\n"),
        ('class:key.ok', "  Actions\n"),
        ('class:key.ok', "  ␣"), ('', "      Toggle todo status\n"),
        ('class:key.ok', "  Enter"), ('', "  Toggle todo status\n"),
        ('class:key.danger', "  d/x"), ('', "    Delete selected todo\n\n"),
        ('class:accent', "  Other\n"),
        ('class:key.danger', "  q"), ('', "      Quit\n"),
        ('class:accent', "  ?"), ('', "      Show this help\n\n"),
        ('class:strong', "  Status Icons\n"),
    ])
    for left, right in ((Status.DONE, Status.OPEN), (Status.BLOCKED, Status.WAITING), (Status.TECH_DEBT, None)):
        frags.append((status_class(left), f"  {status_icon(left)}"))
        frags.append(('', f"  {_status_label(left):<9}"))
        if right is not None:
            frags.append((status_class(right), status_icon(right)))
            frags.append(('', f"  {_status_label(right)}"))
        frags.append(('', '\n'))
    frags.append(('class:dim', "\n  Press any key to continue...\n"))
    return frags


def _status_label(status: Status) -> str:
    return status.value.replace('-', ' ').title()


def session_fragments(session: ListSession, screen_rows: Optional[int] = None) -> Fragments:
    if session.mode == Mode.HELP:
        return build_help_fragments()
    if session.mode == Mode.CONFIRM_DELETE:
        return build_confirm_fragments(session.selected)
    if screen_rows is None:
        return build_list_fragments(session.todos, session.cursor)
    visible_rows = max(1, screen_rows - CHROME_ROWS)
    session.scroll_into_view(visible_rows)
    return build_list_fragments(session.todos, session.cursor, session.offset, visible_rows)


# -----------------------------
# Terminal wrapper
# -----------------------------
def normalize_key(key) -> str:
    name = key.value if isinstance(key, Keys) else str(key)
    return _KEY_ALIASES.get(name, name)


def build_key_bindings(session: ListSession) -> KeyBindings:
    kb = KeyBindings()

    @kb.add(Keys.Any)
    def _(event):
        key = normalize_key(event.key_sequence[0].key)
        try:
            session.press(key)
        except TodoError as exc:
            logger.error("Saving from the list view failed: %s", exc)
            event.app.exit(exception=exc)
            return
        if session.exited:
            event.app.exit()

    return kb


def build_application(session: ListSession, style: Optional[Style] = None) -> Application:
    def render() -> Fragments:
        return session_fragments(session, get_app().output.get_size().rows)

    control = FormattedTextControl(text=render)
    body = Window(content=control, wrap_lines=False, always_hide_cursor=True)
    return Application(
        layout=Layout(HSplit([body])),
        key_bindings=build_key_bindings(session),
        full_screen=True,
        style=style,
    )


def run_session(session: ListSession, style: Optional[Style] = None) -> List[Todo]:
    """Run the list in the alternate screen; returns the final working copy.

    prompt_toolkit leaves raw mode and the alternate screen on every exit
    path, including when ``persist`` fails and its error is re-raised here.
    """
    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        raise TerminalUnavailableError("interactive list needs a terminal")
    build_application(session, style).run()
    return session.todos
