import os
import hashlib
import json
import shutil
import string
from contextlib import contextmanager
from typing import Iterable, Iterator

from typing_extensions import Self

from minigit import types
from minigit.errors import NotARepository, ObjectKindMismatch, ObjectNotFound
from minigit.log_utils import getLogger
from minigit.types import BLOB, RefValue

logger = getLogger(__name__)

GIT_DIR_NAME = '.minigit'
DEFAULT_BRANCH = 'master'
HEAD = 'HEAD'
MERGE_HEAD = 'MERGE_HEAD'
SYMREF_PREFIX = 'ref:'
SYMREF_MAX_DEPTH = 5


class Index:
    """The staged path -> blob OID mapping, stored as JSON in the store root.

    Always handled as a whole: load it, replace it, save it.
    """

    def __init__(self, repo: 'Repository') -> None:
        self.repo = repo
        self.path = f'{repo.git_dir}/index'

    def load(self) -> types.TreeMap:
        if not os.path.isfile(self.path):
            return {}
        with open(self.path) as f:
            return json.load(f)

    def save(self, index: types.TreeMap) -> None:
        with open(self.path, 'w') as f:
            json.dump(index, f, indent=2, sort_keys=True)

    def materialize(self, index: types.TreeMap) -> None:
        """Write every staged blob to its path in the working tree."""
        for path, oid in index.items():
            full_path = self.repo.working_path(path)
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'wb') as f:
                f.write(self.repo.get_object(oid, BLOB))


class Repository:
    """Handle on one repository: a working tree and its store root.

    Every operation goes through a handle, so working with a second
    repository (a remote) means opening a second handle on its path.
    """

    def __init__(self, worktree: str = '.', git_dir_name: str = GIT_DIR_NAME) -> None:
        self.worktree = os.path.abspath(worktree)
        self.git_dir_name = git_dir_name
        self.git_dir = os.path.join(self.worktree, git_dir_name)
        self.index = Index(self)

    @classmethod
    def open(cls, worktree: str = '.', git_dir_name: str = GIT_DIR_NAME) -> Self:
        repo = cls(worktree, git_dir_name)
        if not repo.exists():
            raise NotARepository(repo.worktree)
        return repo

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.worktree!r})'

    def exists(self) -> bool:
        return os.path.isdir(f'{self.git_dir}/objects')

    def init(self) -> None:
        os.makedirs(self.git_dir, exist_ok=True)
        os.makedirs(f'{self.git_dir}/objects', exist_ok=True)

    def working_path(self, path: types.Path) -> str:
        return os.path.join(self.worktree, *path.split('/'))

    # Object store

    def _object_path(self, oid: types.OID) -> str:
        if not oid or not all(c in string.hexdigits for c in oid):
            raise ObjectNotFound(oid)
        return f'{self.git_dir}/objects/{oid}'

    def hash_object(self, data: bytes, type_: types.ObjectType = BLOB) -> types.OID:
        # Only the content is hashed; the kind tag lives in the envelope.
        oid = hashlib.sha1(data).hexdigest()
        path = self._object_path(oid)
        if not os.path.exists(path):
            with open(path, 'wb') as out:
                out.write(type_.encode() + b'\x00' + data)
        return oid

    def hash_file(self, path: str) -> types.OID:
        with open(path, 'rb') as f:
            return self.hash_object(f.read())

    def get_object(self, oid: types.OID, expected: types.ObjectType | None = BLOB) -> bytes:
        """Read an object's content.

        `expected=None` accepts any kind. An empty payload is the same object
        under every kind, so it is never rejected.
        """
        try:
            with open(self._object_path(oid), 'rb') as f:
                obj = f.read()
        except FileNotFoundError:
            raise ObjectNotFound(oid) from None

        type_, _, content = obj.partition(b'\x00')
        type_ = type_.decode()
        if expected is not None and type_ != expected and content:
            raise ObjectKindMismatch(oid, expected, type_)
        return content

    def object_exists(self, oid: types.OID) -> bool:
        try:
            return os.path.isfile(self._object_path(oid))
        except ObjectNotFound:
            return False

    def fetch_object_if_missing(self, oid: types.OID, remote: 'Repository') -> bool:
        """Copy `oid` from `remote` unless it is already here. Returns True if copied."""
        if self.object_exists(oid):
            return False
        if not remote.object_exists(oid):
            raise ObjectNotFound(oid)
        logger.debug('Fetching object %s', oid)
        shutil.copyfile(remote._object_path(oid), self._object_path(oid))
        return True

    def push_object(self, oid: types.OID, remote: 'Repository') -> None:
        if not self.object_exists(oid):
            raise ObjectNotFound(oid)
        logger.debug('Pushing object %s', oid)
        shutil.copyfile(self._object_path(oid), remote._object_path(oid))

    # Refs

    def update_ref(self, ref: str, value: RefValue, deref: bool = True) -> None:
        ref = self._get_ref_internal(ref, deref)[0]

        if not value.value:
            raise ValueError(f'Refusing to write an empty value to {ref}')
        if value.symbolic:
            content = f'{SYMREF_PREFIX} {value.value}'
        else:
            content = value.value
        ref_path = f'{self.git_dir}/{ref}'
        os.makedirs(os.path.dirname(ref_path), exist_ok=True)
        with open(ref_path, 'w') as f:
            f.write(content)

    def get_ref(self, ref: str, deref: bool = True) -> RefValue:
        return self._get_ref_internal(ref, deref)[1]

    def delete_ref(self, ref: str, deref: bool = True) -> None:
        ref = self._get_ref_internal(ref, deref)[0]
        ref_path = f'{self.git_dir}/{ref}'
        if os.path.isfile(ref_path):
            os.remove(ref_path)

    def _get_ref_internal(self, ref: str, deref: bool, depth: int = 0) -> tuple[str, RefValue]:
        ref_path = f'{self.git_dir}/{ref}'
        value = None
        if os.path.isfile(ref_path):
            with open(ref_path) as f:
                value = f.read().strip()

        symbolic = bool(value) and value.startswith(SYMREF_PREFIX)
        if symbolic:
            value = value[len(SYMREF_PREFIX):].strip()
            if deref:
                if depth >= SYMREF_MAX_DEPTH:
                    logger.warning('Symbolic ref %s is nested too deeply or cyclic', ref)
                    return ref, RefValue(symbolic=False, value=None)
                return self._get_ref_internal(value, deref=True, depth=depth + 1)
        return ref, RefValue(symbolic=symbolic, value=value)

    def iter_refs(self, prefix: str = '', deref: bool = True) -> Iterable[tuple[str, RefValue]]:
        refs = [HEAD, MERGE_HEAD]
        for root, dirnames, filenames in os.walk(f'{self.git_dir}/refs'):
            dirnames.sort()
            root = os.path.relpath(root, self.git_dir).replace(os.sep, '/')
            refs.extend(f'{root}/{name}' for name in sorted(filenames))

        for refname in refs:
            if not refname.startswith(prefix):
                continue
            ref = self.get_ref(refname, deref=deref)
            if ref.value:
                yield refname, ref

    # Index

    @contextmanager
    def get_index(self) -> Iterator[types.TreeMap]:
        index = self.index.load()
        yield index
        self.index.save(index)
