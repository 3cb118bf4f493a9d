"""Exception classes raised by minigit."""

from typing import Optional


class MinigitError(Exception):
    """Base class for all minigit errors."""


class NotARepository(MinigitError):
    """The path has no object store."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f'Not a minigit repository: {path}')


class ObjectNotFound(MinigitError):
    """No object is stored under the given id."""

    def __init__(self, oid: str) -> None:
        self.oid = oid
        super().__init__(f'Object not found: {oid}')


class ObjectKindMismatch(MinigitError):
    """An object was read back under a kind other than the one it was stored with."""

    def __init__(self, oid: str, expected: str, actual: str) -> None:
        self.oid = oid
        self.expected = expected
        self.actual = actual
        super().__init__(f'Object {oid}: expected {expected}, got {actual}')


class MalformedObject(MinigitError):
    """Commit or tree text does not parse."""

    def __init__(self, oid: str, reason: Optional[str] = None) -> None:
        self.oid = oid
        message = f'Malformed object {oid}'
        if reason is not None:
            message += f': {reason}'
        super().__init__(message)


class MissingTree(MinigitError):
    """A commit references a tree that cannot be expanded."""

    def __init__(self, oid: str, commit: Optional[str] = None) -> None:
        self.oid = oid
        self.commit = commit
        message = f'Missing tree {oid}'
        if commit is not None:
            message += f' (referenced by commit {commit})'
        super().__init__(message)


class RefNotFound(MinigitError):
    """A ref that the operation requires has no value."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Ref has no value: {name}')


class ExternalToolError(MinigitError, OSError):
    """An external tool (diff, diff3) could not be run or reported trouble."""


class PathClash(MinigitError):
    """One path names a file and, in the same tree, a directory holding another path."""

    def __init__(self, path: str, nested: str) -> None:
        self.path = path
        self.nested = nested
        super().__init__(f'{path} is a file and also the parent of {nested}')
