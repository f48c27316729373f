"""Formatted-text helpers shared by the commands and the interactive list.

Everything here produces prompt_toolkit ``(style, text)`` fragments that use
named style classes, so one palette (optionally overridden from the user
settings file) drives both the static output and the full-screen list.
"""

from __future__ import annotations

import datetime as dt
import sys
import unicodedata
from typing import Dict, List, Optional, TextIO, Tuple

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText, fragment_list_to_text
from prompt_toolkit.styles import Style
from prompt_toolkit.utils import get_cwidth

from .models import Status, Todo
from .storage import count_by_status

Fragments = List[Tuple[str, str]]

BASE_STYLE: Dict[str, str] = {
    'header': 'bold ansibrightcyan',
    'header.danger': 'bold ansibrightred',
    'success': 'bold ansibrightgreen',
    'warning': 'bold ansibrightyellow',
    'error': 'bold ansibrightred',
    'info': 'bold ansibrightblue',
    'dim': '#808080',
    'accent': 'ansibrightcyan',
    'strong': 'bold',
    'key': 'bold ansiyellow',
    'key.danger': 'bold ansired',
    'key.ok': 'bold ansigreen',
    'cursor': 'bold ansiwhite',
    'cursor.marker': 'bold ansibrightcyan',
    'text.done': '#808080',
    'status.open': 'ansiblue',
    'status.done': 'ansigreen',
    'status.blocked': 'ansired',
    'status.waiting': 'ansiyellow',
    'status.tech_debt': 'ansimagenta',
    'priority.high': 'bold ansired',
    'priority.medium': 'ansiyellow',
    'priority.low': '#808080',
}

STATUS_ICONS: Dict[str, str] = {
    'done': '✓',
    'open': '○',
    'blocked': '✗',
    'waiting': '◔',
    'tech-debt': '⚠',
}

HEADER_WIDTH = 55


def build_style(overrides: Optional[Dict[str, str]] = None) -> Style:
    rules = dict(BASE_STYLE)
    rules.update(overrides or {})
    return Style.from_dict(rules)


def echo(fragments: Fragments, style: Optional[Style] = None, file: Optional[TextIO] = None) -> None:
    """Print fragments; plain text with no escapes or CRLF when the target is not a terminal."""
    out = file or sys.stdout
    if not out.isatty():
        out.write(fragment_list_to_text(fragments) + "\n")
        return
    print_formatted_text(FormattedText(fragments), style=style or build_style(), file=out)


# -----------------------------
# Text width helpers
# -----------------------------
def _char_width(ch: str) -> int:
    if unicodedata.combining(ch) or unicodedata.category(ch) == "Cf":
        return 0
    return max(get_cwidth(ch), 0)


def display_width(text: str) -> int:
    return sum(_char_width(ch) for ch in text)


def truncate(s: Optional[str], maxlen: int) -> str:
    """Truncate to a display width, keeping whole glyphs and adding an ellipsis."""
    s = (s or "").replace("\n", " ").replace("\r", " ")
    if maxlen <= 0:
        return ""
    if display_width(s) <= maxlen:
        return s
    ellipsis = "…"
    out: List[str] = []
    width = 0
    for ch in s:
        ch_w = _char_width(ch)
        if width + ch_w + 1 > maxlen:
            break
        out.append(ch)
        width += ch_w
    return "".join(out) + ellipsis


# -----------------------------
# Small pieces
# -----------------------------
def status_icon(status: object) -> str:
    return STATUS_ICONS.get(str(status), '○')


def status_class(status: object) -> str:
    return 'class:status.' + str(status).replace('-', '_')


def format_time_ago(ts: dt.datetime, now: Optional[dt.datetime] = None) -> str:
    now = now or dt.datetime.now().astimezone()
    seconds = (now - ts).total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        mins = int(seconds // 60)
        return "1 minute ago" if mins == 1 else f"{mins} minutes ago"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    if seconds < 7 * 86400:
        days = int(seconds // 86400)
        return "yesterday" if days == 1 else f"{days} days ago"
    return f"{ts.strftime('%b')} {ts.day}, {ts.year}"


def header(title: str, icon: str, style_class: str = 'class:header') -> Fragments:
    text = f"  {icon}  {title}"
    inner = max(HEADER_WIDTH, display_width(text) + 2)
    pad = inner - display_width(text)
    bar = "─" * inner
    return [
        ('', '\n'),
        (style_class, f"  ╭{bar}╮\n"),
        (style_class, f"  │{text}{' ' * pad}│\n"),
        (style_class, f"  ╰{bar}╯\n"),
    ]


def success(msg: str) -> Fragments:
    return [('class:success', f"  ✓ {msg}")]


def warning(msg: str) -> Fragments:
    return [('class:warning', f"  ⚠ {msg}")]


def info(msg: str) -> Fragments:
    return [('class:info', f"  ℹ {msg}")]


def dim(msg: str) -> Fragments:
    return [('class:dim', f"  {msg}")]


def stats_fragments(todos: List[Todo]) -> Fragments:
    counts = count_by_status(todos)
    return [
        ('class:dim', "  "),
        ('class:status.open', "●"),
        ('class:dim', f" {counts['open']} open  "),
        ('class:status.done', "●"),
        ('class:dim', f" {counts['done']} done"),
    ]


def context_fragments(todo: Todo, indent: str = "     ") -> Fragments:
    frags: Fragments = []
    if todo.context.paths:
        frags.append(('class:dim', f"{indent}📁 {', '.join(todo.context.paths)}\n"))
    if todo.context.branch:
        frags.append(('class:dim', f"{indent}🌿 {todo.context.branch}\n"))
    return frags


# -----------------------------
# Static list
# -----------------------------
def static_list_fragments(todos: List[Todo]) -> Fragments:
    """Numbered, non-interactive rendering used by ``list --static`` and pipes."""
    frags: Fragments = [
        ('class:header', "\n  📋 TODO LIST\n"),
        ('class:dim', "  " + "─" * 41 + "\n\n"),
    ]
    for i, todo in enumerate(todos, start=1):
        text_class = 'class:text.done' if todo.status == Status.DONE else ''
        frags.append(('class:dim', f"  {i}. "))
        frags.append((status_class(todo.status), status_icon(todo.status)))
        frags.append(('', " "))
        frags.append((text_class, todo.text))
        if todo.priority.value != "medium":
            frags.append((f'class:priority.{todo.priority.value}', f"  [{todo.priority.value}]"))
        frags.append(('', "\n"))
        frags.extend(context_fragments(todo))
    frags.append(('', "\n"))
    frags.extend(stats_fragments(todos))
    frags.append(('', "\n"))
    return frags
