import itertools
from pathlib import Path

import pytest

from py_kit.objects import ObjectStore
from py_kit.repository import Repository


class FixedClock:
    """Deterministic timestamps, one second apart."""

    def __init__(self, start=1_700_000_000):
        self._counter = itertools.count(start)

    def __call__(self):
        return next(self._counter)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(tmp_path: Path):
    return ObjectStore(str(tmp_path / "objects"))


@pytest.fixture
def repo(tmp_path: Path, monkeypatch, clock):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PY_KIT_AUTHOR", raising=False)
    monkeypatch.delenv("PY_KIT_REMOTE_URL", raising=False)
    return Repository.init(str(tmp_path), clock=clock)


def write(repo, path, text):
    target = Path(repo.root, *path.split("/"))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text)


def read(repo, path):
    return Path(repo.root, *path.split("/")).read_text()


def commit_files(repo, files, message):
    """Write ``files`` ({path: text}), stage them and commit."""
    for path, text in files.items():
        write(repo, path, text)
    repo.add(list(files))
    return repo.commit(message)
