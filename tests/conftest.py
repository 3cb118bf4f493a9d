from pathlib import Path

import pytest

from minigit import base
from minigit.data import Repository


def _make_repo(path: Path) -> Repository:
    path.mkdir(parents=True, exist_ok=True)
    repo = Repository(path)
    base.init(repo)
    return repo


@pytest.fixture
def temp_repo(tmp_path: Path) -> Repository:
    return _make_repo(tmp_path / 'local')


@pytest.fixture
def remote_repo(tmp_path: Path) -> Repository:
    return _make_repo(tmp_path / 'remote')


@pytest.fixture
def commit_file():
    """Write files relative to a repo's working tree, stage everything and commit."""
    def commit_file(repo: Repository, files: dict[str, str], message: str = 'commit') -> str:
        for name, content in files.items():
            path = Path(repo.worktree) / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        base.add(repo, list(files))
        return base.commit(repo, message)

    return commit_file
