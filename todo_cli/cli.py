"""``todo`` command line entry point.

Every verb follows the same shape: locate the project root, load the store,
validate, mutate, save when something changed, print a short report.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Sequence

import argcomplete
from prompt_toolkit.styles import Style

from . import __version__, git
from .completion import SHELLS, complete_path, shell_script
from .display import (
    Fragments, build_style, dim, echo, format_time_ago, header,
    info, static_list_fragments, success, truncate, warning,
)
from .doctor import (
    STALE_DAYS, apply_fixes, check_duplicate_todos, check_empty_todos,
    check_orphaned_paths, check_stale_todos, missing_paths,
)
from .errors import AlreadyInitializedError, TerminalUnavailableError, TodoError, TodoNotFoundError, ValidationError
from .models import Priority, ProjectConfig, Status, Todo
from .session import ListSession, run_session
from .settings import UserSettings, load_settings
from .storage import (
    count_by_status, delete_at, filter_by_path_prefix, filter_by_priority, filter_by_status,
    find_by_id_or_index, find_project_root, generate_id, init_project, load_config, load_todos,
    normalize_paths, save_config, save_todos, sort_by_priority,
)

LOG_PATH = os.path.expanduser("~/.todo_cli.log")

_TRUE = {"1", "t", "true", "y", "yes", "on"}
_FALSE = {"0", "f", "false", "n", "no", "off"}

logger = logging.getLogger('todo_cli')


# -----------------------------
# Logging
# -----------------------------
def configure_logging(log_level: str = 'ERROR') -> None:
    """Route the package logger to a rotating file; stderr if the file is unusable."""
    # Always reset handlers so --log-level reliably controls output.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    lvl = getattr(logging, str(log_level).upper(), logging.ERROR)
    try:
        handler: logging.Handler = RotatingFileHandler(LOG_PATH, maxBytes=2000000, backupCount=2, encoding='utf-8')
    except OSError:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(lvl)
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(handler)


# -----------------------------
# Per-invocation state
# -----------------------------
@dataclass
class CommandContext:
    cwd: str
    settings: UserSettings = field(default_factory=UserSettings)
    style: Optional[Style] = None
    log_level: str = 'ERROR'

    def echo(self, fragments: Fragments) -> None:
        echo(fragments, self.style)

    def root(self) -> str:
        return find_project_root(self.cwd)


def _resolve(todos: List[Todo], token: str):
    todo, pos = find_by_id_or_index(todos, token)
    if todo is None:
        raise TodoNotFoundError(token)
    return todo, pos


def _parse_bool(value: str) -> bool:
    v = str(value).strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValidationError(f"invalid value for --auto-git: {value} (use true/false)")


# -----------------------------
# Commands
# -----------------------------
def cmd_init(args, ctx: CommandContext) -> int:
    ctx.echo(header("INITIALIZE PROJECT", "📦"))
    try:
        root = init_project(ctx.cwd, force=args.force)
    except AlreadyInitializedError:
        ctx.echo(warning("Project already initialized"))
        ctx.echo(dim("Use --force to reinitialize") + [('', '\n')])
        return 1
    ctx.echo(success("Todo project initialized!") + [('', '\n')])
    ctx.echo([
        ('class:dim', "  Created:\n"),
        ('class:accent', "    .todos/todos.json"), ('', "  - Todo storage\n"),
        ('class:accent', "    .todos/config.json"), ('', " - Configuration\n\n"),
        ('class:dim', "  Location: "), ('', f"{root}\n\n"),
        ('class:dim', "  💡 Next steps:\n"),
        ('class:accent', "    todo add \"Your first todo\"\n"),
        ('class:accent', "    todo list\n"),
    ])
    return 0


def cmd_add(args, ctx: CommandContext) -> int:
    root = ctx.root()
    config = load_config(root)

    words: List[str] = list(args.text)
    raw_paths: List[str] = list(args.paths or [])
    text = " ".join(words).strip()
    if not text:
        raise ValidationError("todo text cannot be empty")
    if args.paths is not None and len(words) > 1:
        # with a path flag, words after the first are paths as well
        text = words[0].strip()
        raw_paths.extend(words[1:])
    priority = Priority.parse(args.priority)

    todos = load_todos(root)
    todo = Todo.create(generate_id(), text)
    todo.priority = priority
    paths = normalize_paths(raw_paths)
    if paths:
        todo.set_paths(paths)

    if not args.no_git and config.auto_git:
        branch, commit = git.git_context(ctx.cwd)
        if branch:
            todo.set_git_context(branch, commit)
        elif config.default_branch:
            todo.set_git_context(config.default_branch, "")

    todos.append(todo)
    save_todos(root, todos)
    logger.info("Added %s", todo.id)

    ctx.echo(success(f"Added: {text}"))
    lines: Fragments = []
    if paths:
        lines.append(('class:dim', f"  📁 Paths: {', '.join(paths)}\n"))
    if todo.context.branch:
        lines.append(('class:dim', f"  🌿 Branch: {todo.context.branch}\n"))
    if todo.context.commit:
        lines.append(('class:dim', f"  📝 Commit: {todo.context.commit}\n"))
    lines.append(('class:dim', f"  🆔 ID: {todo.short_id}\n"))
    ctx.echo(lines)
    return 0


def _list_tips() -> Fragments:
    return [
        ('class:dim', "\n  💡 Run 'todo list' in a terminal for interactive mode\n"),
        ('class:dim', "  💡 Run 'todo ui' for web interface\n"),
    ]


def cmd_list(args, ctx: CommandContext) -> int:
    root = ctx.root()
    all_todos = load_todos(root)

    todos = all_todos
    if args.status:
        todos = filter_by_status(todos, Status.parse(args.status))
    if args.path:
        todos = filter_by_path_prefix(todos, args.path)
    if args.priority:
        todos = filter_by_priority(todos, Priority.parse(args.priority))
    if args.sort == "priority":
        todos = sort_by_priority(todos)

    if not todos:
        ctx.echo(info("No todos found"))
        if args.status or args.path or args.priority:
            ctx.echo(dim("Try removing filters or add a new todo with: todo add \"Your task\""))
        else:
            ctx.echo(dim("Add your first todo with: todo add \"Your task\""))
        return 0

    if not args.static:
        shown = {t.id for t in todos}

        def persist(remaining: List[Todo]) -> None:
            # todos outside the filtered view are written back untouched
            kept = {t.id for t in remaining}
            save_todos(root, [t for t in all_todos if t.id not in shown or t.id in kept])

        try:
            run_session(ListSession(todos, persist), ctx.style)
            return 0
        except TerminalUnavailableError:
            logger.debug("No terminal for the interactive list; printing static output")

    ctx.echo(static_list_fragments(todos) + _list_tips())
    return 0


def cmd_done(args, ctx: CommandContext) -> int:
    root = ctx.root()
    todos = load_todos(root)
    todo, _ = _resolve(todos, args.target)
    if todo.status == Status.DONE:
        ctx.echo(warning(f"Already done: {todo.text}") + [('', '\n')])
        return 0
    todo.mark_done()
    save_todos(root, todos)
    ctx.echo(success(f"Completed: {todo.text}") + [('', '\n')])

    open_count = count_by_status(todos)[Status.OPEN.value]
    if open_count == 0:
        ctx.echo([('class:success', "  🎉 All todos complete! Great job!\n")])
    else:
        ctx.echo(dim(f"{open_count} todo(s) remaining") + [('', '\n')])
    return 0


def cmd_edit(args, ctx: CommandContext) -> int:
    root = ctx.root()
    todos = load_todos(root)
    todo, _ = _resolve(todos, args.target)

    updated = False
    if args.text is not None:
        todo.set_text(args.text)
        updated = True
    if args.priority is not None:
        todo.set_priority(args.priority)
        updated = True
    if args.status is not None:
        todo.set_status(args.status)
        updated = True
    if args.clear_paths:
        todo.set_paths([])
        updated = True
    elif args.paths is not None:
        todo.set_paths(normalize_paths(args.paths))
        updated = True
    if not updated:
        raise ValidationError("no updates provided; set --text, --status, --priority, or --path")

    save_todos(root, todos)
    ctx.echo(success("Todo updated"))
    ctx.echo(dim(todo.text) + [('', '\n')])
    return 0


def cmd_delete(args, ctx: CommandContext) -> int:
    root = ctx.root()
    todos = load_todos(root)
    target, pos = _resolve(todos, args.target)
    save_todos(root, delete_at(todos, pos))
    logger.info("Deleted %s", target.id)
    ctx.echo(success(f"Deleted: {target.text}") + [('', '\n')])
    return 0


def cmd_status(args, ctx: CommandContext) -> int:
    root = ctx.root()
    todos = load_todos(root)
    target, _ = _resolve(todos, args.target)
    new_status = Status.parse(args.status)
    if target.status == new_status:
        ctx.echo(info("Status unchanged") + [('', '\n')])
        return 0
    target.set_status(new_status)
    save_todos(root, todos)
    ctx.echo(success(f"Status set to {new_status}: {target.text}") + [('', '\n')])
    return 0


def cmd_focus(args, ctx: CommandContext) -> int:
    root = ctx.root()
    todos = load_todos(root)
    open_todos = filter_by_status(todos, Status.OPEN)

    branch = ""
    if not args.all and git.is_git_repo(ctx.cwd):
        branch = git.current_branch(ctx.cwd)
    if branch:
        focused = [t for t in open_todos if t.context.branch == branch]
        focused += [t for t in open_todos if not t.context.branch]
    else:
        focused = open_todos

    counts = count_by_status(todos)
    ctx.echo(header("FOCUS MODE", "🎯"))
    bar: Fragments = [('class:info', f"  {len(focused)} open")]
    for key, cls in (("blocked", "status.blocked"), ("waiting", "status.waiting"), ("done", "status.done")):
        if counts[key]:
            bar += [('class:dim', "  •  "), (f'class:{cls}', f"{counts[key]} {key}")]
    if branch:
        bar.append(('class:dim', f"\n  🌿 Branch: {branch}"))
    ctx.echo(bar + [('', '\n')])

    if not focused:
        ctx.echo([('class:success', "  ✨ No open todos! You're all caught up! 🎉\n")])
        return 0

    for i, todo in enumerate(focused):
        frags: Fragments = []
        if i == 0:
            frags.append(('class:accent', "  ─── CURRENT FOCUS ───\n"))
            frags.append(('class:cursor.marker', "▶ "))
            frags.append(('class:cursor', f"{todo.text}\n"))
        else:
            frags.append(('class:dim', f"  {i + 1}. "))
            frags.append(('', f"{todo.text}\n"))
        if todo.context.paths:
            path_class = 'class:accent' if i == 0 else 'class:dim'
            frags.append((path_class, f"     📁 {', '.join(todo.context.paths)}\n"))
        frags.append(('class:dim', f"     ⏱  {format_time_ago(todo.created_at)}\n"))
        if i == 0:
            frags.append(('class:accent', "  ───────────────────────\n"))
        ctx.echo(frags)

    ctx.echo([
        ('class:dim', "  💡 Tip: Run "), ('class:accent', "todo done <id>"),
        ('class:dim', " to mark your current focus as complete\n"),
        ('class:dim', "  💡 Tip: Run "), ('class:accent', "todo list"),
        ('class:dim', " for interactive navigation\n"),
    ])
    return 0


def _check_line(ok: bool, good: str, bad: str) -> Fragments:
    if ok:
        return [('class:status.done', f"     ✓  {good}")]
    return [('class:warning', f"     ⚠  {bad}")]


def cmd_doctor(args, ctx: CommandContext) -> int:
    root = ctx.root()
    todos = load_todos(root)

    ctx.echo(header("TODO DOCTOR", "🩺"))
    about: Fragments = [
        ('class:dim', "  📁 Project: "), ('class:accent', f"{os.path.basename(root)}\n"),
        ('class:dim', "  📋 Todos:   "), ('class:strong', f"{len(todos)} total\n"),
    ]
    if git.is_git_repo(ctx.cwd):
        about += [('class:dim', "  🌿 Branch:  "), ('class:status.done', f"{git.current_branch(ctx.cwd)}\n")]
    ctx.echo(about)

    if not todos:
        ctx.echo(success("No todos to check.") + [('', '\n')])
        return 0

    ctx.echo([('class:accent', "  ─── HEALTH CHECKS ───\n")])
    orphaned, orphaned_paths, total_paths = check_orphaned_paths(todos, root)
    ctx.echo(dim("🔍 Checking for orphaned paths..."))
    if orphaned:
        ctx.echo(_check_line(False, "", f"{orphaned_paths} orphaned path(s) found in {len(orphaned)} todo(s)"))
    elif total_paths:
        ctx.echo(_check_line(True, f"All {total_paths} path(s) are valid", ""))
    else:
        ctx.echo([('class:dim', "     ○  No paths to check")])

    empty = check_empty_todos(todos)
    ctx.echo(dim("🔍 Checking for empty todos..."))
    ctx.echo(_check_line(not empty, "No empty todos", f"{len(empty)} empty todo(s) found"))

    duplicates = check_duplicate_todos(todos)
    ctx.echo(dim("🔍 Checking for duplicate todos..."))
    ctx.echo(_check_line(not duplicates, "No duplicates detected", f"{len(duplicates)} potential duplicate(s) found"))

    stale = check_stale_todos(todos)
    ctx.echo(dim("🔍 Checking for stale todos..."))
    ctx.echo(_check_line(not stale, "No stale todos", f"{len(stale)} stale todo(s) (open > {STALE_DAYS} days)"))
    ctx.echo([('', '')])

    modified = False
    if args.fix:
        ctx.echo(dim("🔧 Applying fixes..."))
        todos, report = apply_fixes(todos, root)
        if report.has_changes:
            modified = True
            for count, what in (
                (report.removed_orphaned_paths, "invalid path(s)"),
                (report.removed_empty, "empty todo(s)"),
                (report.removed_duplicates, "duplicate todo(s)"),
            ):
                if count:
                    ctx.echo([('class:status.done', f"     • removed {count} {what}")])
        else:
            ctx.echo([('class:status.done', "     No changes needed")])
        ctx.echo([('', '')])
        orphaned, _, _ = check_orphaned_paths(todos, root)
        empty = check_empty_todos(todos)
        duplicates = check_duplicate_todos(todos)
        stale = check_stale_todos(todos)

    issues = len(orphaned) + len(empty) + len(duplicates) + len(stale)
    counts = count_by_status(todos)
    ctx.echo([
        ('class:accent', "  ─── SUMMARY ───\n\n"),
        ('class:dim', f"  {'Open':<12}"), ('class:status.open', f"{counts['open']:>3}"),
        ('class:dim', f"   {'Done':<12}"), ('class:status.done', f"{counts['done']:>3}\n"),
        ('class:dim', f"  {'Blocked':<12}"), ('class:status.blocked', f"{counts['blocked']:>3}"),
        ('class:dim', f"   {'Waiting':<12}"), ('class:status.waiting', f"{counts['waiting']:>3}\n"),
        ('class:dim', f"  {'Tech Debt':<12}"), ('class:status.tech_debt', f"{counts['tech-debt']:>3}"),
        ('class:dim', f"   {'Total':<12}"), ('class:strong', f"{len(todos):>3}\n"),
    ])

    if issues == 0:
        ctx.echo(success("Your todo list is healthy!") + [('', '\n')])
    else:
        ctx.echo([('class:warning', f"  ⚠  Found {issues} issue(s) to review\n")])
        if orphaned:
            frags: Fragments = [('class:warning', "  Orphaned Paths:\n")]
            for todo in orphaned:
                frags.append(('', f"    • {truncate(todo.text, 50)}\n"))
                for path in missing_paths(todo, root):
                    frags.append(('class:error', f"      ❌ {path}\n"))
            ctx.echo(frags)
        if stale:
            frags = [('class:warning', "  Stale Todos (consider updating or completing):\n")]
            for todo in stale:
                frags.append(('', f"    • {truncate(todo.text, 40)} "))
                frags.append(('class:dim', f"({format_time_ago(todo.created_at)})\n"))
            ctx.echo(frags)

    if modified:
        save_todos(root, todos)
        ctx.echo(success("Changes saved!") + [('', '\n')])

    ctx.echo([
        ('class:dim', "  💡 Tips:\n"),
        ('class:dim', "     • Use "), ('class:accent', "todo list"), ('class:dim', " to manage your todos interactively\n"),
        ('class:dim', "     • Use "), ('class:accent', "todo ui"), ('class:dim', " for a web-based interface\n"),
        ('class:dim', "     • Use "), ('class:accent', "todo focus"), ('class:dim', " to see your current priorities\n"),
    ])
    return 0


def cmd_config(args, ctx: CommandContext) -> int:
    root = ctx.root()
    config = load_config(root)
    modified = False
    if args.reset:
        config = ProjectConfig()
        modified = True
    if args.auto_git is not None:
        config.auto_git = _parse_bool(args.auto_git)
        modified = True
    if args.default_branch is not None:
        config.default_branch = args.default_branch
        modified = True
    if modified:
        save_config(root, config)
        ctx.echo(success("Configuration updated") + [('', '\n')])

    ctx.echo([
        ('class:dim', "  Config:\n"),
        ('class:accent', "    autoGit:       "), ('', f"{str(config.auto_git).lower()}\n"),
        ('class:accent', "    defaultBranch: "), ('', f"{config.default_branch or '(not set)'}\n"),
    ])
    return 0


def cmd_ui(args, ctx: CommandContext) -> int:
    from .server import serve

    root = ctx.root()
    host = args.host or ctx.settings.ui_host
    port = args.port or ctx.settings.ui_port
    ctx.echo(header("TODO UI SERVER", "🚀"))
    ctx.echo([
        ('class:status.done', "  ● "), ('', "Running at "), ('class:accent underline', f"http://{host}:{port}\n"),
        ('class:warning', "  ● "), ('', "Press "), ('class:strong', "Ctrl+C"), ('', " to stop\n"),
    ])
    serve(root, host=host, port=port, log_level=ctx.log_level.lower())
    ctx.echo([('class:warning', "Shutting down server...")])
    return 0


def cmd_completion(args, ctx: CommandContext) -> int:
    sys.stdout.write(shell_script(args.shell))
    return 0


# -----------------------------
# Argument parsing
# -----------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="todo", description="Project-scoped todos with path and git context")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--log-level", default=None, help="File log level (DEBUG, INFO, WARNING, ERROR)")
    ap.add_argument("--settings", metavar="PATH", help="Path to YAML user settings (default ~/.todo_cli.yml)")
    sub = ap.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    p = sub.add_parser("init", help="Initialize a todo project in the current directory")
    p.add_argument("-f", "--force", action="store_true", help="Reinitialize, discarding existing todos")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("add", help="Add a todo")
    p.add_argument("text", nargs="+", help="Todo text")
    path_arg = p.add_argument("-p", "--path", dest="paths", action="append", help="Associate with a file/folder path (repeatable, comma separated)")
    path_arg.completer = complete_path
    p.add_argument("--priority", default="medium", help="Priority level: low, medium, high")
    p.add_argument("--no-git", action="store_true", help="Don't capture git context (branch/commit)")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("list", aliases=["ls"], help="List todos with interactive navigation")
    p.add_argument("--static", action="store_true", help="Non-interactive output")
    p.add_argument("-s", "--status", help="Filter by status: open, done, blocked, waiting, tech-debt")
    path_arg = p.add_argument("-p", "--path", help="Filter by path prefix")
    path_arg.completer = complete_path
    p.add_argument("--priority", help="Filter by priority: low, medium, high")
    p.add_argument("--sort", choices=["created", "priority"], default="created", help="Sort order")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("done", help="Mark a todo as done")
    p.add_argument("target", metavar="ID|INDEX")
    p.set_defaults(func=cmd_done)

    p = sub.add_parser("edit", help="Edit a todo")
    p.add_argument("target", metavar="ID|INDEX")
    p.add_argument("--text", help="New todo text")
    p.add_argument("--status", help="Set status: open, done, blocked, waiting, tech-debt")
    p.add_argument("--priority", help="Set priority: low, medium, high")
    path_arg = p.add_argument("-p", "--path", dest="paths", action="append", help="Replace paths (repeatable, comma separated)")
    path_arg.completer = complete_path
    p.add_argument("--clear-paths", action="store_true", help="Remove all associated paths")
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("delete", aliases=["del", "rm"], help="Delete a todo")
    p.add_argument("target", metavar="ID|INDEX")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("status", aliases=["set-status"], help="Set the status of a todo")
    p.add_argument("target", metavar="ID|INDEX")
    p.add_argument("status", help="open, done, blocked, waiting, tech-debt")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("focus", help="Show what to work on next")
    p.add_argument("-a", "--all", action="store_true", help="Show all open todos, not just branch-relevant")
    p.set_defaults(func=cmd_focus)

    p = sub.add_parser("doctor", help="Check the todo list for problems")
    p.add_argument("--fix", action="store_true", help="Auto-fix issues where possible")
    p.set_defaults(func=cmd_doctor)

    p = sub.add_parser("config", help="Show or change project configuration")
    p.add_argument("--auto-git", metavar="BOOL", help="Enable/disable automatic git context capture (true/false)")
    p.add_argument("--default-branch", help="Branch recorded when git context is unavailable")
    p.add_argument("--reset", action="store_true", help="Reset configuration to defaults")
    p.set_defaults(func=cmd_config)

    p = sub.add_parser("ui", help="Serve the web interface")
    p.add_argument("-p", "--port", type=int, default=None, help="Port to run the server on (default 8080)")
    p.add_argument("--host", default=None, help="Interface to bind (default 127.0.0.1)")
    p.set_defaults(func=cmd_ui)

    p = sub.add_parser("completion", help="Print a shell completion script")
    p.add_argument("shell", choices=SHELLS)
    p.set_defaults(func=cmd_completion)
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    argcomplete.autocomplete(parser)
    args, extras = parser.parse_known_args(argv)
    if extras:
        # shell-expanded globs after a --path value belong to add's words
        if args.func is not cmd_add or any(e.startswith("-") for e in extras):
            parser.error(f"unrecognized arguments: {' '.join(extras)}")
        args.text.extend(extras)
    try:
        settings = load_settings(args.settings)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    log_level = (args.log_level or settings.log_level or 'ERROR').upper()
    configure_logging(log_level)

    ctx = CommandContext(cwd=os.getcwd(), settings=settings, style=build_style(settings.style), log_level=log_level)
    logger.debug("Running %s in %s", args.command, ctx.cwd)
    try:
        return args.func(args, ctx)
    except TodoError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
