import subprocess
from collections import defaultdict
from typing import Iterable, Iterator, Optional
from typing_extensions import Unpack
from tempfile import NamedTemporaryFile as Temp

from minigit import types
from minigit.data import Repository
from minigit.errors import ExternalToolError
from minigit.log_utils import getLogger
from minigit.types import BLOB

logger = getLogger(__name__)

CONFLICT_MARKER = b'<<<<<<< HEAD'


def compare_trees(*trees: types.TreeMap) -> Iterator[tuple[types.Path, Unpack[tuple[Optional[types.OID], ...]]]]:
    entries = defaultdict(lambda: [None] * len(trees))
    for i, tree in enumerate(trees):
        for path, oid in tree.items():
            entries[path][i] = oid

    for path in sorted(entries):
        yield path, *entries[path]


def diff_trees(repo: Repository, t_from: types.TreeMap, t_to: types.TreeMap) -> bytes:
    output = b''
    for path, o_from, o_to in compare_trees(t_from, t_to):
        if o_from != o_to:
            output += diff_blobs(repo, o_from, o_to, path)
    return output


def iter_changed_files(t_from: types.TreeMap, t_to: types.TreeMap) -> Iterable[tuple[types.Path, types.Action]]:
    for path, o_from, o_to in compare_trees(t_from, t_to):
        if o_from != o_to:
            action = ('new file' if not o_from else
                      'deleted' if not o_to else
                      'modified')
            yield path, action


def _run(args: list[str]) -> bytes:
    """Run an external tool; exit status 0 and 1 both carry a usable result."""
    try:
        with subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE) as proc:
            output, stderr = proc.communicate()
    except OSError as e:
        raise ExternalToolError(f'Cannot run {args[0]}: {e}') from e
    if proc.returncode not in (0, 1):
        raise ExternalToolError(
            f'{args[0]} exited with status {proc.returncode}: {stderr.decode(errors="replace").strip()}')
    return output


def diff_blobs(repo: Repository, o_from: Optional[types.OID], o_to: Optional[types.OID], path: str = 'blob') -> bytes:
    with Temp() as f_from, Temp() as f_to:
        for oid, f in [(o_from, f_from), (o_to, f_to)]:
            if oid:
                f.write(repo.get_object(oid, BLOB))
                f.flush()

        return _run(['diff', '--unified', '--show-c-function',
                     '--label', f'a/{path}', f_from.name,
                     '--label', f'b/{path}', f_to.name])


def merge_trees(repo: Repository,
                t_base: types.TreeMap,
                t_head: types.TreeMap,
                t_other: types.TreeMap) -> dict[types.Path, bytes]:
    """Merge three flat trees path by path.

    A path changed on one side only, or changed the same way on both, takes
    that side's blob without running diff3. A path that side deletes is left
    out of the result.
    """
    tree = {}
    for path, o_base, o_HEAD, o_other in compare_trees(t_base, t_head, t_other):
        if o_HEAD == o_other or o_base == o_other:
            resolved = o_HEAD
        elif o_base == o_HEAD:
            resolved = o_other
        else:
            tree[path] = merge_blobs(repo, o_base, o_HEAD, o_other)
            if CONFLICT_MARKER in tree[path]:
                logger.warning('Merge conflict in %s', path)
            continue
        if resolved:
            tree[path] = repo.get_object(resolved, BLOB)
    return tree


def merge_blobs(repo: Repository,
                o_base: Optional[types.OID],
                o_head: Optional[types.OID],
                o_other: Optional[types.OID]) -> bytes:
    """Three-way merge of blob contents through diff3.

    A missing side is merged as an empty file and every input is treated
    as text. Conflicting regions come back wrapped in diff3's markers,
    labelled HEAD, BASE and MERGE_HEAD.
    """
    with Temp() as f_base, Temp() as f_HEAD, Temp() as f_other:
        for oid, f in [(o_base, f_base), (o_head, f_HEAD), (o_other, f_other)]:
            if oid:
                f.write(repo.get_object(oid, BLOB))
                f.flush()

        return _run([
            'diff3', '-m', '--text',
            '-L', 'HEAD', f_HEAD.name,
            '-L', 'BASE', f_base.name,
            '-L', 'MERGE_HEAD', f_other.name,
        ])
