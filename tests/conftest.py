import datetime as dt
import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from todo_cli import cli, storage  # noqa: E402
from todo_cli.models import Priority, Status, Todo, TodoContext, TodoMeta  # noqa: E402

BASE_TIME = dt.datetime(2024, 3, 1, 9, 30, tzinfo=dt.timezone.utc)


@pytest.fixture(autouse=True)
def isolated_log_path(monkeypatch, tmp_path):
    """Keep CLI runs from writing to the real ~/.todo_cli.log."""
    log_path = tmp_path / "todo_cli.log"
    monkeypatch.setattr(cli, "LOG_PATH", str(log_path))
    return log_path


@pytest.fixture
def project_root(tmp_path):
    """An initialized project directory with an empty collection."""
    root = tmp_path / "proj"
    root.mkdir()
    storage.init_project(str(root))
    return root


@pytest.fixture
def make_todo():
    counter = {'n': 0}

    def _make(text='Task', **overrides) -> Todo:
        counter['n'] += 1
        n = counter['n']
        base = {
            'id': overrides.pop('id', f"{n:02d}" + 'ab' * 15),
            'text': text,
            'status': Status.OPEN,
            'priority': Priority.MEDIUM,
            'created_at': BASE_TIME + dt.timedelta(minutes=n),
            'updated_at': BASE_TIME + dt.timedelta(minutes=n),
            'context': TodoContext(),
            'meta': TodoMeta(source='cli'),
        }
        base.update(overrides)
        return Todo(**base)

    return _make
