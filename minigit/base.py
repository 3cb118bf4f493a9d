import itertools
import operator
import os
from collections import deque
from typing import Iterable, Iterator, Optional

from minigit import data, diff
from minigit import types
from minigit.data import Repository
from minigit.errors import (
    MalformedObject, MissingTree, ObjectKindMismatch, ObjectNotFound, PathClash, RefNotFound,
)
from minigit.log_utils import getLogger
from minigit.types import BLOB, COMMIT, TREE, DirectoryNode, FileNode, RefValue

logger = getLogger(__name__)

IGNORED_NAMES = frozenset({'.git', '__pycache__', '.idea', 'venv', '.venv', 'build', 'dist', 'target'})

_TREE_ERRORS = (ObjectNotFound, ObjectKindMismatch, MalformedObject)


def init(repo: Repository) -> None:
    repo.init()
    repo.update_ref(data.HEAD, RefValue(symbolic=True, value=f'refs/heads/{data.DEFAULT_BRANCH}'), deref=False)


def get_branch_name(repo: Repository) -> Optional[str]:
    HEAD = repo.get_ref(data.HEAD, deref=False)
    if not HEAD.symbolic:
        return None
    HEAD = HEAD.value
    if not HEAD.startswith('refs/heads/'):
        return None
    return HEAD[len('refs/heads/'):]


def checkout(repo: Repository, name: str) -> None:
    oid = get_oid(repo, name)
    commit_ = get_commit(repo, oid)
    read_tree(repo, commit_.tree, update_working=True)

    if is_branch(repo, name):
        HEAD = RefValue(symbolic=True, value=f'refs/heads/{name}')
    else:
        HEAD = RefValue(symbolic=False, value=oid)

    repo.update_ref(data.HEAD, HEAD, deref=False)


def iter_branch_names(repo: Repository) -> Iterator[str]:
    for refname, _ in repo.iter_refs('refs/heads/'):
        yield refname[len('refs/heads/'):]


def is_branch(repo: Repository, name: str) -> bool:
    return repo.get_ref(f'refs/heads/{name}').value is not None


def create_branch(repo: Repository, name: str, oid: types.OID) -> None:
    repo.update_ref(f'refs/heads/{name}', RefValue(symbolic=False, value=oid))


def create_tag(repo: Repository, name: str, oid: types.OID) -> None:
    repo.update_ref(f'refs/tags/{name}', RefValue(symbolic=False, value=oid))


def reset(repo: Repository, oid: types.OID) -> None:
    repo.update_ref(data.HEAD, RefValue(symbolic=False, value=oid))


def get_commit(repo: Repository, oid: types.OID) -> types.Commit:
    try:
        commit_ = repo.get_object(oid, COMMIT).decode()
    except (ObjectNotFound, ObjectKindMismatch, UnicodeDecodeError) as e:
        raise MalformedObject(oid, str(e)) from e

    parents = []
    tree = None
    lines = iter(commit_.splitlines())
    # headers end at the first empty line, the message follows
    for line in itertools.takewhile(operator.truth, lines):
        key, _, value = line.partition(' ')
        if key == 'tree':
            tree = value
        elif key == 'parent':
            parents.append(value)
        else:
            raise MalformedObject(oid, f'unknown field {key!r}')

    if not tree:
        raise MalformedObject(oid, 'no tree')
    message = '\n'.join(lines)
    return types.Commit(tree=tree, parents=parents, message=message)


def commit(repo: Repository, message: str) -> types.OID:
    commit_ = f'tree {write_tree(repo)}\n'

    HEAD = repo.get_ref(data.HEAD).value
    if HEAD:
        commit_ += f'parent {HEAD}\n'

    MERGE_HEAD = repo.get_ref(data.MERGE_HEAD).value
    if MERGE_HEAD:
        commit_ += f'parent {MERGE_HEAD}\n'

    commit_ += '\n'
    commit_ += f'{message}\n'

    oid = repo.hash_object(commit_.encode(), COMMIT)
    repo.update_ref(data.HEAD, RefValue(symbolic=False, value=oid))
    if MERGE_HEAD:
        repo.delete_ref(data.MERGE_HEAD, deref=False)
    return oid


def _build_index_tree(index: types.TreeMap) -> DirectoryNode:
    """Regroup flat index paths into nested directory nodes."""
    root = DirectoryNode({})
    for path, oid in sorted(index.items()):
        *dirpath, filename = path.split('/')
        if '\n' in path or any(part in ('', '.', '..') for part in (*dirpath, filename)):
            logger.warning('Skipping index entry with invalid path %r', path)
            continue

        current = root
        for dirname in dirpath:
            child = current.children.setdefault(dirname, DirectoryNode({}))
            if isinstance(child, FileNode):
                logger.warning('Skipping %s: %s is staged as a file', path, dirname)
                break
            current = child
        else:
            if isinstance(current.children.get(filename), DirectoryNode):
                logger.warning('Skipping %s: it is staged as a directory', path)
                continue
            current.children[filename] = FileNode(oid)
    return root


def _write_tree_recursive(repo: Repository, directory: DirectoryNode) -> types.OID:
    entries = []
    for name, node in directory.children.items():
        if isinstance(node, DirectoryNode):
            entries.append((name, _write_tree_recursive(repo, node), TREE))
        else:
            entries.append((name, node.oid, BLOB))

    tree = ''.join(f'{type_} {oid} {name}\n'
                   for name, oid, type_
                   in sorted(entries))
    return repo.hash_object(tree.encode(), TREE)


def hash_tree(repo: Repository, tree_map: types.TreeMap) -> types.OID:
    """Store `tree_map` as tree objects and return the root tree's OID."""
    return _write_tree_recursive(repo, _build_index_tree(tree_map))


def write_tree(repo: Repository) -> types.OID:
    return hash_tree(repo, repo.index.load())


def _iter_tree_entries(repo: Repository, oid: types.OID) -> Iterator[tuple[types.ObjectType, types.OID, str]]:
    if not oid:
        return
    tree = repo.get_object(oid, TREE)
    try:
        lines = tree.decode().splitlines()
    except UnicodeDecodeError as e:
        raise MalformedObject(oid, str(e)) from e
    for entry in lines:
        parts = entry.split(' ', 2)
        if len(parts) != 3 or parts[0] not in (BLOB, TREE):
            raise MalformedObject(oid, f'bad tree entry {entry!r}')
        type_, oid_, name = parts
        yield type_, oid_, name


def get_tree(repo: Repository, oid: types.OID, base_path: types.Path = '') -> types.TreeMap:
    result = {}
    for type_, oid_, name in _iter_tree_entries(repo, oid):
        if '/' in name or name in ('', '.', '..'):
            raise MalformedObject(oid, f'bad entry name {name!r}')
        path = base_path + name
        if type_ == BLOB:
            result[path] = oid_
        else:
            result.update(get_tree(repo, oid_, f'{path}/'))
    return result


def _expand_tree(repo: Repository, oid: Optional[types.OID]) -> types.TreeMap:
    if oid is None:
        return {}
    try:
        return get_tree(repo, oid)
    except _TREE_ERRORS as e:
        raise MissingTree(oid) from e


def is_ignored(repo: Repository, path: types.Path) -> bool:
    parts = path.split('/')
    return any(part == repo.git_dir_name or part in IGNORED_NAMES or part.endswith('.egg-info')
               for part in parts)


def _relpath(repo: Repository, full_path: str) -> Optional[types.Path]:
    path = os.path.relpath(full_path, repo.worktree)
    if path == os.pardir or path.startswith(os.pardir + os.sep):
        return None
    return path.replace(os.sep, '/')


def _iter_files(repo: Repository, top: str) -> Iterator[tuple[str, types.Path]]:
    for root, dirnames, filenames in os.walk(top):
        dirnames[:] = sorted(d for d in dirnames if not is_ignored(repo, d))
        for filename in sorted(filenames):
            full_path = os.path.join(root, filename)
            path = _relpath(repo, full_path)
            if path is None or is_ignored(repo, path) or not os.path.isfile(full_path):
                continue
            yield full_path, path


def get_working_tree(repo: Repository) -> types.TreeMap:
    result = {}
    for full_path, path in _iter_files(repo, repo.worktree):
        try:
            result[path] = repo.hash_file(full_path)
        except OSError as e:
            logger.warning('Cannot read %s: %s', path, e)
    return result


def get_index_tree(repo: Repository) -> types.TreeMap:
    return repo.index.load()


def _remove_stale_files(repo: Repository, old_index: types.TreeMap, new_index: types.TreeMap) -> None:
    for path in old_index.keys() - new_index.keys():
        full_path = repo.working_path(path)
        if os.path.isfile(full_path):
            os.remove(full_path)
        # prune directories left empty, never the working tree itself
        parent = os.path.dirname(full_path)
        while parent != repo.worktree and os.path.isdir(parent) and not os.listdir(parent):
            os.rmdir(parent)
            parent = os.path.dirname(parent)


def _check_path_clashes(paths: Iterable[types.Path]) -> None:
    paths = set(paths)
    for path in sorted(paths):
        parts = path.split('/')
        for i in range(1, len(parts)):
            parent = '/'.join(parts[:i])
            if parent in paths:
                raise PathClash(parent, path)


def _replace_index(repo: Repository, new_index: types.TreeMap, update_working: bool) -> None:
    _check_path_clashes(new_index)
    missing = sorted(oid for oid in set(new_index.values()) if not repo.object_exists(oid))
    if missing:
        raise ObjectNotFound(missing[0])

    with repo.get_index() as index:
        old_index = dict(index)
        index.clear()
        index.update(new_index)

    if update_working:
        _remove_stale_files(repo, old_index, new_index)
        repo.index.materialize(new_index)


def read_tree(repo: Repository, tree_oid: types.OID, update_working: bool = False) -> None:
    _replace_index(repo, _expand_tree(repo, tree_oid), update_working)


def read_tree_merged(repo: Repository,
                     t_base: Optional[types.OID],
                     t_head: types.OID,
                     t_other: types.OID,
                     update_working: bool = False) -> None:
    merged_tree = diff.merge_trees(
        repo,
        _expand_tree(repo, t_base),
        _expand_tree(repo, t_head),
        _expand_tree(repo, t_other),
    )
    _check_path_clashes(merged_tree)
    merged_index = {path: repo.hash_object(content) for path, content in merged_tree.items()}
    _replace_index(repo, merged_index, update_working)


def add(repo: Repository, filenames: Iterable[str]) -> None:
    """Stage files and directories, given relative to the working tree or absolute."""
    def add_file(full_path, path):
        try:
            index[path] = repo.hash_file(full_path)
        except OSError as e:
            logger.warning('Cannot add %s: %s', path, e)

    with repo.get_index() as index:
        for name in filenames:
            full_path = os.path.join(repo.worktree, name)
            path = _relpath(repo, full_path)
            if path is None:
                logger.warning('Skipping %s: outside the working tree', name)
            elif os.path.isfile(full_path):
                if is_ignored(repo, path):
                    logger.warning('Skipping ignored path %s', path)
                    continue
                add_file(full_path, path)
            elif os.path.isdir(full_path):
                for full_path_inner, path_inner in _iter_files(repo, full_path):
                    add_file(full_path_inner, path_inner)
            else:
                logger.warning('Skipping %s: no such file or directory', name)


def get_oid(repo: Repository, name: str) -> types.OID:
    """Resolve a ref name, branch, tag or literal OID."""
    if name == '@':
        name = data.HEAD

    refs_to_try = [
        f'{name}',
        f'refs/{name}',
        f'refs/tags/{name}',
        f'refs/heads/{name}',
    ]
    for ref in refs_to_try:
        if oid := repo.get_ref(ref).value:
            return oid

    return name


def iter_commits_and_parents(repo: Repository, oids: Iterable[types.OID]) -> Iterator[types.OID]:
    oids = deque(oids)
    visited = set()

    while oids:
        oid = oids.popleft()
        if not oid or oid in visited:
            continue
        visited.add(oid)
        yield oid

        commit_ = get_commit(repo, oid)
        # first parent next, other parents later
        oids.extendleft(commit_.parents[:1])
        oids.extend(commit_.parents[1:])


def get_merge_base(repo: Repository, oid1: types.OID, oid2: types.OID) -> Optional[types.OID]:
    """First commit in `oid2`'s traversal order that is also an ancestor of `oid1`."""
    parents1 = set(iter_commits_and_parents(repo, {oid1}))

    for oid in iter_commits_and_parents(repo, {oid2}):
        if oid in parents1:
            return oid
    return None


def is_ancestor_of(repo: Repository, commit_: types.OID, maybe_ancestor: types.OID) -> bool:
    return maybe_ancestor in iter_commits_and_parents(repo, {commit_})


def merge(repo: Repository, other_name: str) -> types.MergeOutcome:
    HEAD = repo.get_ref(data.HEAD).value
    if not HEAD:
        raise RefNotFound(data.HEAD)
    other = get_oid(repo, other_name)
    c_other = get_commit(repo, other)
    merge_base = get_merge_base(repo, HEAD, other)

    if merge_base == other:
        logger.info('Already up to date')
        return 'up-to-date'

    if merge_base == HEAD:
        read_tree(repo, c_other.tree, update_working=True)
        repo.update_ref(data.HEAD, RefValue(symbolic=False, value=other))
        logger.info('Fast-forward merge, no need to commit')
        return 'fast-forward'

    c_HEAD = get_commit(repo, HEAD)
    t_base = get_commit(repo, merge_base).tree if merge_base else None
    read_tree_merged(repo, t_base, c_HEAD.tree, c_other.tree, update_working=True)
    repo.update_ref(data.MERGE_HEAD, RefValue(symbolic=False, value=other), deref=False)
    logger.info('Merged in working tree, please commit')
    return 'merging'


def iter_objects_in_commits(repo: Repository, oids: Iterable[types.OID]) -> Iterator[types.OID]:
    """Yield every commit, tree and blob reachable from `oids`, each once."""
    visited = set()

    def iter_objects_in_tree(source_tree_oid):
        visited.add(source_tree_oid)
        yield source_tree_oid
        try:
            entries = list(_iter_tree_entries(repo, source_tree_oid))
        except _TREE_ERRORS as e:
            logger.warning('Cannot walk tree %s: %s', source_tree_oid, e)
            return
        for type_, oid_, _ in entries:
            if oid_ not in visited:
                if type_ == TREE:
                    yield from iter_objects_in_tree(oid_)
                else:
                    visited.add(oid_)
                    yield oid_

    for oid in iter_commits_and_parents(repo, oids):
        yield oid
        commit_ = get_commit(repo, oid)
        if commit_.tree not in visited:
            yield from iter_objects_in_tree(commit_.tree)
