import argparse
import datetime as dt
import json
import os
from types import SimpleNamespace

import pytest

from todo_cli import cli, git, settings, storage
from todo_cli.completion import complete_path
from todo_cli.models import Priority, ProjectConfig, Status, TodoContext


@pytest.fixture(autouse=True)
def no_user_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "DEFAULT_SETTINGS_PATH", str(tmp_path / "missing.yml"))


@pytest.fixture
def fake_git(monkeypatch):
    """Pretend the cwd is a git checkout on ``feature/x`` at ``abc1234``."""
    state = {'repo': False, 'branch': 'feature/x', 'commit': 'abc1234'}
    monkeypatch.setattr(git, 'is_git_repo', lambda cwd=None: state['repo'])
    monkeypatch.setattr(git, 'current_branch', lambda cwd=None: state['branch'] if state['repo'] else '')
    monkeypatch.setattr(
        git, 'git_context',
        lambda cwd=None: (state['branch'], state['commit']) if state['repo'] else ('', ''),
    )
    return state


@pytest.fixture
def in_project(monkeypatch, project_root, fake_git):
    monkeypatch.chdir(project_root)
    return project_root


def _todos(root):
    return storage.load_todos(str(root))


def _seed(root, *todos):
    storage.save_todos(str(root), list(todos))


# -----------------------------
# init
# -----------------------------
def test_init_creates_project(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    assert cli.main(['init']) == 0
    out = capsys.readouterr().out
    assert 'Todo project initialized!' in out
    assert '.todos/todos.json' in out
    assert os.path.isfile(tmp_path / '.todos' / 'config.json')


def test_init_twice_warns_and_fails(in_project, make_todo, capsys):
    _seed(in_project, make_todo('keep'))
    assert cli.main(['init']) == 1
    assert 'Project already initialized' in capsys.readouterr().out
    assert len(_todos(in_project)) == 1

    assert cli.main(['init', '--force']) == 0
    assert _todos(in_project) == []


def test_commands_outside_project_fail(monkeypatch, tmp_path, fake_git, capsys):
    monkeypatch.chdir(tmp_path)
    assert cli.main(['list']) == 1
    err = capsys.readouterr().err
    assert err.startswith('Error: no todo project found')


# -----------------------------
# add
# -----------------------------
def test_add_basic(in_project, capsys):
    assert cli.main(['add', 'Write', 'the', 'docs']) == 0
    [todo] = _todos(in_project)
    assert todo.text == 'Write the docs'
    assert todo.priority == Priority.MEDIUM
    assert todo.context == TodoContext()
    out = capsys.readouterr().out
    assert 'Added: Write the docs' in out
    assert f'ID: {todo.id[:8]}' in out


def test_add_paths_priority_and_glob_expansion(in_project):
    assert cli.main(['add', 'Fix parser', '-p', 'src/a.py, src/b.py', '--path', 'docs', 'extra1', 'extra2',
                     '--priority', 'high']) == 0
    [todo] = _todos(in_project)
    assert todo.text == 'Fix parser'
    assert todo.context.paths == ['src/a.py', 'src/b.py', 'docs', 'extra1', 'extra2']
    assert todo.priority == Priority.HIGH


def test_add_words_after_text_become_paths_with_path_flag(in_project):
    assert cli.main(['add', 'Fix', 'more.py', '-p', 'a.py']) == 0
    [todo] = _todos(in_project)
    assert todo.text == 'Fix'
    assert todo.context.paths == ['a.py', 'more.py']


def test_add_path_flag_before_text(in_project):
    assert cli.main(['add', '-p', 'src', 'Fix it', '-p', 'docs']) == 0
    [todo] = _todos(in_project)
    assert todo.text == 'Fix it'
    assert todo.context.paths == ['src', 'docs']


def test_add_words_after_other_flags_join_the_text(in_project):
    assert cli.main(['add', 'Fix', '--priority', 'low', 'the', 'thing']) == 0
    [todo] = _todos(in_project)
    assert (todo.text, todo.priority) == ('Fix the thing', Priority.LOW)


def test_add_rejects_bad_priority_and_blank_text(in_project, capsys):
    assert cli.main(['add', 'x', '--priority', 'urgent']) == 1
    assert 'invalid priority: urgent' in capsys.readouterr().err
    assert cli.main(['add', '   ']) == 1
    assert 'todo text cannot be empty' in capsys.readouterr().err
    assert _todos(in_project) == []


def test_add_captures_git_context(in_project, fake_git):
    fake_git['repo'] = True
    cli.main(['add', 'on branch'])
    cli.main(['add', 'no git please', '--no-git'])
    with_git, without = _todos(in_project)
    assert (with_git.context.branch, with_git.context.commit) == ('feature/x', 'abc1234')
    assert without.context.branch == ''


def test_add_respects_auto_git_and_default_branch(in_project, fake_git):
    storage.save_config(str(in_project), ProjectConfig(auto_git=True, default_branch='main'))
    cli.main(['add', 'no repo'])
    assert _todos(in_project)[0].context.branch == 'main'

    fake_git['repo'] = True
    storage.save_config(str(in_project), ProjectConfig(auto_git=False))
    cli.main(['add', 'disabled'])
    assert _todos(in_project)[1].context.branch == ''


def test_add_checks_for_a_repo_once(monkeypatch, project_root):
    calls = []
    answers = {
        '--is-inside-work-tree': 'true',
        '--abbrev-ref': 'main',
        '--short': 'def5678',
    }

    def run(cmd, **kwargs):
        calls.append(cmd[2])
        return SimpleNamespace(stdout=answers[cmd[2]] + '\n')

    monkeypatch.chdir(project_root)
    monkeypatch.setattr(git.subprocess, 'run', run)
    assert cli.main(['add', 'tracked']) == 0
    assert calls.count('--is-inside-work-tree') == 1
    todo = _todos(project_root)[0]
    assert (todo.context.branch, todo.context.commit) == ('main', 'def5678')


# -----------------------------
# list
# -----------------------------
def test_list_static_when_not_a_terminal(in_project, make_todo, capsys):
    _seed(in_project, make_todo('alpha', context=TodoContext(paths=['src/'])), make_todo('beta', status=Status.DONE))
    assert cli.main(['list']) == 0
    out = capsys.readouterr().out
    assert '1. ○ alpha' in out
    assert '2. ✓ beta' in out
    assert '📁 src/' in out
    assert '1 open' in out and '1 done' in out


def test_list_filters(in_project, make_todo, capsys):
    _seed(
        in_project,
        make_todo('alpha', context=TodoContext(paths=['src/x.py'])),
        make_todo('beta', status=Status.DONE),
        make_todo('gamma', priority=Priority.HIGH),
    )
    cli.main(['ls', '--static', '-s', 'done'])
    out = capsys.readouterr().out
    assert 'beta' in out and 'alpha' not in out

    cli.main(['list', '--static', '-p', 'src'])
    out = capsys.readouterr().out
    assert 'alpha' in out and 'gamma' not in out

    cli.main(['list', '--static', '--sort', 'priority'])
    out = capsys.readouterr().out
    assert out.index('gamma') < out.index('alpha')

    cli.main(['list', '--static', '-s', 'blocked'])
    assert 'No todos found' in capsys.readouterr().out


def test_list_rejects_invalid_status(in_project, capsys):
    assert cli.main(['list', '-s', 'finished']) == 1
    assert 'invalid status: finished' in capsys.readouterr().err


def test_interactive_list_keeps_hidden_todos(in_project, make_todo, monkeypatch):
    _seed(
        in_project,
        make_todo('visible 1', context=TodoContext(paths=['src/a'])),
        make_todo('hidden', context=TodoContext(paths=['docs/'])),
        make_todo('visible 2', context=TodoContext(paths=['src/b'])),
    )

    def fake_run(session, style=None):
        session.press(' ')
        session.press('j')
        session.press('d')
        session.press('y')
        return session.todos

    monkeypatch.setattr(cli, 'run_session', fake_run)
    assert cli.main(['list', '-p', 'src']) == 0
    todos = _todos(in_project)
    assert [t.text for t in todos] == ['visible 1', 'hidden']
    assert todos[0].status == Status.DONE


# -----------------------------
# done / status / edit / delete
# -----------------------------
def test_done_by_index_and_prefix(in_project, make_todo, capsys):
    a = make_todo('alpha', id='aaaa' + '1' * 28)
    b = make_todo('beta', id='bbbb' + '2' * 28)
    _seed(in_project, a, b)
    assert cli.main(['done', '1']) == 0
    assert '1 todo(s) remaining' in capsys.readouterr().out
    assert cli.main(['done', 'bbbb']) == 0
    assert 'All todos complete' in capsys.readouterr().out
    assert all(t.status == Status.DONE for t in _todos(in_project))


def test_done_twice_is_a_noop(in_project, make_todo, capsys):
    _seed(in_project, make_todo('alpha', status=Status.DONE))
    before = _todos(in_project)[0].updated_at
    assert cli.main(['done', '1']) == 0
    assert 'Already done: alpha' in capsys.readouterr().out
    assert _todos(in_project)[0].updated_at == before


def test_done_unknown_target(in_project, make_todo, capsys):
    _seed(in_project, make_todo('alpha'))
    assert cli.main(['done', '9']) == 1
    assert 'Error: todo not found: 9' in capsys.readouterr().err


def test_status_set_and_unchanged(in_project, make_todo, capsys):
    _seed(in_project, make_todo('alpha'))
    assert cli.main(['status', '1', 'blocked']) == 0
    assert _todos(in_project)[0].status == Status.BLOCKED
    assert cli.main(['set-status', '1', 'blocked']) == 0
    assert 'Status unchanged' in capsys.readouterr().out
    assert cli.main(['status', '1', 'nope']) == 1


@pytest.mark.parametrize('argv', [
    ['status', '1', '  DONE '],
    ['status', '1', 'Done'],
    ['edit', '1', '--status', 'Tech-Debt'],
    ['edit', '1', '--priority', 'HIGH'],
    ['add', 'x', '--priority', 'HIGH'],
])
def test_miscased_values_are_rejected(in_project, make_todo, capsys, argv):
    _seed(in_project, make_todo('alpha'))
    assert cli.main(argv) == 1
    assert 'invalid' in capsys.readouterr().err
    [todo] = _todos(in_project)
    assert (todo.status, todo.priority) == (Status.OPEN, Priority.MEDIUM)


def test_edit_fields(in_project, make_todo, capsys):
    _seed(in_project, make_todo('alpha', context=TodoContext(paths=['old'])))
    assert cli.main(['edit', '1', '--text', ' renamed ', '--priority', 'low', '--status', 'waiting',
                     '-p', 'a, b']) == 0
    todo = _todos(in_project)[0]
    assert (todo.text, todo.priority, todo.status) == ('renamed', Priority.LOW, Status.WAITING)
    assert todo.context.paths == ['a', 'b']

    assert cli.main(['edit', '1', '--clear-paths']) == 0
    assert _todos(in_project)[0].context.paths == []


def test_edit_requires_a_change(in_project, make_todo, capsys):
    _seed(in_project, make_todo('alpha'))
    assert cli.main(['edit', '1']) == 1
    assert 'no updates provided' in capsys.readouterr().err
    assert cli.main(['edit', '1', '--text', '  ']) == 1


def test_delete_aliases(in_project, make_todo, capsys):
    _seed(in_project, make_todo('a'), make_todo('b'), make_todo('c'))
    assert cli.main(['delete', '2']) == 0
    assert 'Deleted: b' in capsys.readouterr().out
    assert cli.main(['rm', '1']) == 0
    assert cli.main(['del', '5']) == 1
    assert [t.text for t in _todos(in_project)] == ['c']


# -----------------------------
# focus / doctor / config
# -----------------------------
def test_focus_orders_branch_then_global(in_project, make_todo, fake_git, capsys):
    fake_git['repo'] = True
    _seed(
        in_project,
        make_todo('other branch', context=TodoContext(branch='main')),
        make_todo('global'),
        make_todo('mine', context=TodoContext(branch='feature/x')),
        make_todo('finished', status=Status.DONE),
        make_todo('stuck', status=Status.BLOCKED),
    )
    assert cli.main(['focus']) == 0
    out = capsys.readouterr().out
    assert 'other branch' not in out
    assert out.index('mine') < out.index('global')
    assert '2 open' in out
    assert '1 blocked' in out and '1 done' in out
    assert 'CURRENT FOCUS' in out

    cli.main(['focus', '--all'])
    assert 'other branch' in capsys.readouterr().out


def test_focus_with_nothing_open(in_project, make_todo, capsys):
    _seed(in_project, make_todo('x', status=Status.DONE))
    cli.main(['focus'])
    assert 'all caught up' in capsys.readouterr().out


def test_doctor_reports_and_fixes(in_project, make_todo, capsys):
    (in_project / 'real.py').write_text('')
    old = dt.datetime(2020, 1, 1, tzinfo=dt.timezone.utc)
    fresh = dt.datetime.now(dt.timezone.utc)
    _seed(
        in_project,
        make_todo('dup', created_at=fresh, context=TodoContext(paths=['real.py', 'ghost.py'])),
        make_todo('dup', created_at=fresh),
        make_todo('  ', created_at=fresh),
        make_todo('ancient', created_at=old),
    )
    assert cli.main(['doctor']) == 0
    out = capsys.readouterr().out
    assert '1 orphaned path(s) found in 1 todo(s)' in out
    assert '1 empty todo(s) found' in out
    assert '1 potential duplicate(s) found' in out
    assert '1 stale todo(s)' in out
    assert '❌ ghost.py' in out
    assert len(_todos(in_project)) == 4

    assert cli.main(['doctor', '--fix']) == 0
    out = capsys.readouterr().out
    assert 'removed 1 invalid path(s)' in out
    assert 'Changes saved!' in out
    todos = _todos(in_project)
    assert [t.text for t in todos] == ['dup', 'ancient']
    assert todos[0].context.paths == ['real.py']


def test_doctor_empty_project(in_project, capsys):
    assert cli.main(['doctor']) == 0
    assert 'No todos to check.' in capsys.readouterr().out


def test_config_show_and_update(in_project, capsys):
    assert cli.main(['config']) == 0
    out = capsys.readouterr().out
    assert 'autoGit:       true' in out
    assert '(not set)' in out

    assert cli.main(['config', '--auto-git', 'off', '--default-branch', 'develop']) == 0
    with open(storage.config_path(str(in_project)), encoding='utf-8') as f:
        assert json.load(f) == {'version': 1, 'defaultBranch': 'develop', 'autoGit': False}

    assert cli.main(['config', '--auto-git', 'maybe']) == 1
    assert 'invalid value for --auto-git' in capsys.readouterr().err

    assert cli.main(['config', '--reset']) == 0
    assert storage.load_config(str(in_project)) == ProjectConfig()


def test_ui_serves_project_root(in_project, monkeypatch):
    calls = []
    import todo_cli.server as server
    monkeypatch.setattr(server, 'serve', lambda root, host, port, log_level: calls.append((root, host, port, log_level)))
    assert cli.main(['ui', '-p', '9999']) == 0
    assert calls == [(str(in_project), '127.0.0.1', 9999, 'error')]


# -----------------------------
# Global options
# -----------------------------
def test_log_level_writes_to_log_file(in_project, isolated_log_path):
    cli.main(['--log-level', 'DEBUG', 'add', 'logged'])
    assert 'Added' in isolated_log_path.read_text(encoding='utf-8')


def test_settings_file_errors_are_reported(in_project, tmp_path, capsys):
    bad = tmp_path / 'bad.yml'
    bad.write_text('ui_port: [1, 2]\n')
    assert cli.main(['--settings', str(bad), 'list']) == 1
    assert "'ui_port' must be an integer" in capsys.readouterr().err


def test_usage_errors_exit_2(in_project):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(['frobnicate'])
    assert excinfo.value.code == 2


@pytest.mark.parametrize('argv', [
    ['edit', '1', '-p', 'a', 'b'],
    ['add', 'x', '--bogus'],
    ['done', '1', '2'],
])
def test_leftover_arguments_exit_2(in_project, argv):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    assert excinfo.value.code == 2


# -----------------------------
# completion
# -----------------------------
def test_completion_prints_a_script(in_project, capsys):
    assert cli.main(['completion', 'bash']) == 0
    out = capsys.readouterr().out
    assert 'todo' in out
    assert 'complete' in out


def test_completion_rejects_unknown_shell(in_project):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(['completion', 'tcsh'])
    assert excinfo.value.code == 2


def test_path_flags_use_project_completion():
    parser = cli.build_parser()
    sub = next(a for a in parser._actions if isinstance(a, argparse._SubParsersAction))
    for name in ('add', 'edit', 'list'):
        [path_action] = [a for a in sub.choices[name]._actions if '--path' in a.option_strings]
        assert path_action.completer is complete_path
