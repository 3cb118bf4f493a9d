from minigit import base
from minigit import types
from minigit.data import Repository
from minigit.errors import MinigitError, RefNotFound
from minigit.log_utils import getLogger
from minigit.types import RefValue

logger = getLogger(__name__)

REMOTE_REFS_BASE = 'refs/heads/'
LOCAL_REFS_BASE = 'refs/remote/'


def fetch(repo: Repository, remote_path: str) -> dict[str, types.OID]:
    """Copy the history of every remote branch and record it under refs/remote/.

    Returns the local remote-tracking ref names and the OIDs they now hold.
    """
    remote = Repository.open(remote_path)
    refs = _get_remote_refs(remote, REMOTE_REFS_BASE)

    fetched = 0
    for oid in base.iter_objects_in_commits(remote, refs.values()):
        try:
            if repo.fetch_object_if_missing(oid, remote):
                fetched += 1
        except (MinigitError, OSError) as e:
            logger.warning('Cannot fetch object %s: %s', oid, e)

    tracking = {}
    for remote_name, value in refs.items():
        refname = f'{LOCAL_REFS_BASE}{remote_name[len(REMOTE_REFS_BASE):]}'
        repo.update_ref(refname, RefValue(symbolic=False, value=value))
        tracking[refname] = value
    logger.info('Fetched %d objects from %s', fetched, remote.worktree)
    return tracking


def push(repo: Repository, remote_path: str, refname: str) -> set[types.OID]:
    """Send the objects `refname` needs to the remote and point its `refname` at them.

    Returns the OIDs that were sent. The remote ref is left alone when any object
    could not be sent.
    """
    remote = Repository.open(remote_path)
    local_ref = repo.get_ref(refname).value
    if not local_ref:
        raise RefNotFound(refname)

    remote_refs = _get_remote_refs(remote)
    known_remote_refs = {oid for oid in remote_refs.values() if remote.object_exists(oid)}
    remote_objects = set(base.iter_objects_in_commits(remote, known_remote_refs))
    local_objects = set(base.iter_objects_in_commits(repo, {local_ref}))
    objects_to_push = local_objects - remote_objects

    failed = set()
    for oid in objects_to_push:
        try:
            repo.push_object(oid, remote)
        except (MinigitError, OSError) as e:
            logger.warning('Cannot push object %s: %s', oid, e)
            failed.add(oid)

    if failed:
        logger.error('Not updating %s on %s: %d objects could not be sent',
                     refname, remote.worktree, len(failed))
        return objects_to_push - failed

    remote.update_ref(refname, RefValue(symbolic=False, value=local_ref))
    logger.info('Pushed %d objects to %s', len(objects_to_push), remote.worktree)
    return objects_to_push


def _get_remote_refs(remote: Repository, prefix: str = '') -> dict[str, types.OID]:
    return {refname: ref.value for refname, ref in remote.iter_refs(prefix)}
