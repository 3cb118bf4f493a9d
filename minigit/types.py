from typing import TypeAlias, NamedTuple, Literal, Optional, Union

Path: TypeAlias = str  # a path relative to the working tree, '/' separated
OID: TypeAlias = str  # hash
TreeMap: TypeAlias = dict[Path, OID]
ObjectType: TypeAlias = Literal['Blob', 'Tree', 'Commit']
Action: TypeAlias = Literal['new file', 'deleted', 'modified']
MergeOutcome: TypeAlias = Literal['fast-forward', 'merging', 'up-to-date']

BLOB: ObjectType = 'Blob'
TREE: ObjectType = 'Tree'
COMMIT: ObjectType = 'Commit'


class Commit(NamedTuple):
    tree: OID
    parents: list[OID]
    message: str


class RefValue(NamedTuple):
    symbolic: bool
    value: Optional[OID]  # None when the ref (or the chain it points into) is missing


class FileNode(NamedTuple):
    oid: OID


class DirectoryNode(NamedTuple):
    children: dict[str, 'Node']


Node: TypeAlias = Union[FileNode, DirectoryNode]
