import hashlib
from pathlib import Path

import pytest
from pytest import raises

from minigit import base, data
from minigit.data import Repository
from minigit.errors import MalformedObject
from minigit.types import COMMIT, RefValue

EMPTY_TREE = hashlib.sha1(b'').hexdigest()


def make_commit(repo: Repository, parents: list[str], message: str) -> str:
    """Store a commit object on the empty tree without touching any ref."""
    text = f'tree {base.hash_tree(repo, {})}\n'
    text += ''.join(f'parent {parent}\n' for parent in parents)
    text += f'\n{message}\n'
    return repo.hash_object(text.encode(), COMMIT)


@pytest.fixture
def graph(temp_repo: Repository) -> dict[str, str]:
    """c0 <- c1 <- c2, c0 <- s1, and m merging s1 into c2."""
    c0 = make_commit(temp_repo, [], 'c0')
    c1 = make_commit(temp_repo, [c0], 'c1')
    c2 = make_commit(temp_repo, [c1], 'c2')
    s1 = make_commit(temp_repo, [c0], 's1')
    m = make_commit(temp_repo, [c2, s1], 'm')
    return {'c0': c0, 'c1': c1, 'c2': c2, 's1': s1, 'm': m}


def test_root_commit(temp_repo: Repository) -> None:
    oid = base.commit(temp_repo, 'root')

    commit = base.get_commit(temp_repo, oid)
    assert commit.tree == EMPTY_TREE
    assert commit.parents == []
    assert commit.message == 'root'


def test_commit_moves_branch_through_head(temp_repo: Repository) -> None:
    first = base.commit(temp_repo, 'first')
    second = base.commit(temp_repo, 'second')

    assert temp_repo.get_ref(data.HEAD, deref=False) == RefValue(symbolic=True, value='refs/heads/master')
    assert temp_repo.get_ref('refs/heads/master').value == second
    assert base.get_commit(temp_repo, second).parents == [first]
    assert temp_repo.get_object(second, COMMIT).decode() == (
        f'tree {EMPTY_TREE}\n'
        f'parent {first}\n'
        '\n'
        'second\n'
    )


def test_commit_records_staged_tree(temp_repo: Repository, commit_file) -> None:
    oid = commit_file(temp_repo, {'a.txt': 'a', 'dir/b.txt': 'b'})

    tree = base.get_commit(temp_repo, oid).tree
    assert base.get_tree(temp_repo, tree) == {
        'a.txt': temp_repo.hash_object(b'a'),
        'dir/b.txt': temp_repo.hash_object(b'b'),
    }


def test_multiline_message(temp_repo: Repository) -> None:
    oid = base.commit(temp_repo, 'subject\n\nbody line 1\nbody line 2')

    assert base.get_commit(temp_repo, oid).message == 'subject\n\nbody line 1\nbody line 2'


def test_commit_during_merge_has_two_parents(temp_repo: Repository, graph) -> None:
    temp_repo.update_ref(data.HEAD, RefValue(symbolic=False, value=graph['c2']))
    temp_repo.update_ref(data.MERGE_HEAD, RefValue(symbolic=False, value=graph['s1']), deref=False)

    oid = base.commit(temp_repo, 'merge')

    assert base.get_commit(temp_repo, oid).parents == [graph['c2'], graph['s1']]
    assert temp_repo.get_ref(data.MERGE_HEAD).value is None
    assert not Path(temp_repo.git_dir, data.MERGE_HEAD).exists()


def test_get_commit_malformed(temp_repo: Repository) -> None:
    unknown_field = temp_repo.hash_object(b'tree abc\nauthor me\n\nmsg\n', COMMIT)
    no_tree = temp_repo.hash_object(b'parent abc\n\nmsg\n', COMMIT)
    blob = temp_repo.hash_object(b'just a blob')

    for oid in (unknown_field, no_tree, blob, 'f' * 40):
        with raises(MalformedObject):
            base.get_commit(temp_repo, oid)


def test_get_oid(temp_repo: Repository) -> None:
    oid = base.commit(temp_repo, 'root')
    base.create_tag(temp_repo, 'v1', oid)
    base.create_branch(temp_repo, 'feature', oid)

    assert base.get_oid(temp_repo, 'HEAD') == oid
    assert base.get_oid(temp_repo, '@') == oid
    assert base.get_oid(temp_repo, 'master') == oid
    assert base.get_oid(temp_repo, 'heads/feature') == oid
    assert base.get_oid(temp_repo, 'refs/tags/v1') == oid
    assert base.get_oid(temp_repo, 'v1') == oid
    assert base.get_oid(temp_repo, oid) == oid
    assert base.get_oid(temp_repo, 'no-such-name') == 'no-such-name'


def test_iter_commits_and_parents_order(temp_repo: Repository, graph) -> None:
    order = list(base.iter_commits_and_parents(temp_repo, [graph['m']]))

    assert order == [graph[name] for name in ('m', 'c2', 'c1', 'c0', 's1')]


def test_iter_commits_and_parents_multiple_seeds(temp_repo: Repository, graph) -> None:
    order = list(base.iter_commits_and_parents(temp_repo, [graph['c1'], graph['s1']]))

    assert order == [graph[name] for name in ('c1', 'c0', 's1')]


def test_merge_base_on_linear_history(temp_repo: Repository, graph) -> None:
    assert base.get_merge_base(temp_repo, graph['c1'], graph['c2']) == graph['c1']
    assert base.get_merge_base(temp_repo, graph['c2'], graph['c1']) == graph['c1']
    assert base.get_merge_base(temp_repo, graph['c2'], graph['c2']) == graph['c2']


def test_merge_base_of_diverged_branches(temp_repo: Repository, graph) -> None:
    assert base.get_merge_base(temp_repo, graph['c2'], graph['s1']) == graph['c0']
    assert base.get_merge_base(temp_repo, graph['m'], graph['s1']) == graph['s1']


def test_merge_base_of_unrelated_histories(temp_repo: Repository, graph) -> None:
    other_root = make_commit(temp_repo, [], 'unrelated')

    assert base.get_merge_base(temp_repo, graph['c2'], other_root) is None


def test_is_ancestor_of(temp_repo: Repository, graph) -> None:
    for oid in graph.values():
        assert base.is_ancestor_of(temp_repo, oid, oid)
    assert base.is_ancestor_of(temp_repo, graph['m'], graph['s1'])
    assert base.is_ancestor_of(temp_repo, graph['c2'], graph['c0'])
    assert not base.is_ancestor_of(temp_repo, graph['c0'], graph['c2'])
    assert not base.is_ancestor_of(temp_repo, graph['c2'], graph['s1'])


def test_branches(temp_repo: Repository) -> None:
    oid = base.commit(temp_repo, 'root')
    base.create_branch(temp_repo, 'feature', oid)

    assert list(base.iter_branch_names(temp_repo)) == ['feature', 'master']
    assert base.is_branch(temp_repo, 'feature')
    assert not base.is_branch(temp_repo, 'nope')
    assert base.get_branch_name(temp_repo) == 'master'


def test_checkout_branch_and_detached(temp_repo: Repository, commit_file) -> None:
    first = commit_file(temp_repo, {'a.txt': 'one'})
    base.create_branch(temp_repo, 'feature', first)
    second = commit_file(temp_repo, {'a.txt': 'two', 'b.txt': 'b'})
    worktree = Path(temp_repo.worktree)

    base.checkout(temp_repo, 'feature')

    assert base.get_branch_name(temp_repo) == 'feature'
    assert (worktree / 'a.txt').read_text() == 'one'
    assert not (worktree / 'b.txt').exists()

    base.checkout(temp_repo, second)

    assert base.get_branch_name(temp_repo) is None
    assert temp_repo.get_ref(data.HEAD, deref=False) == RefValue(symbolic=False, value=second)
    assert (worktree / 'b.txt').read_text() == 'b'


def test_checkout_unknown_name_keeps_head(temp_repo: Repository) -> None:
    oid = base.commit(temp_repo, 'root')

    with raises(MalformedObject):
        base.checkout(temp_repo, 'does-not-exist')

    assert temp_repo.get_ref(data.HEAD).value == oid
    assert base.get_branch_name(temp_repo) == 'master'


def test_reset_moves_current_branch(temp_repo: Repository) -> None:
    first = base.commit(temp_repo, 'first')
    base.commit(temp_repo, 'second')

    base.reset(temp_repo, first)

    assert temp_repo.get_ref('refs/heads/master').value == first
    assert base.get_branch_name(temp_repo) == 'master'
