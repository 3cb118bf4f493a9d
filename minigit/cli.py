import argparse
import sys
import textwrap

from minigit import base, data, diff, remote
from minigit.data import Repository
from minigit.errors import MinigitError
from minigit.log_utils import default_logging_config


def main(argv=None):
    default_logging_config()
    args = parse_args(argv)
    try:
        args.func(args)
    except MinigitError as e:
        print(f'error: {e}', file=sys.stderr)
        sys.exit(1)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='minigit')
    commands = parser.add_subparsers(dest='command')
    commands.required = True

    init_parser = commands.add_parser('init')
    init_parser.set_defaults(func=init)

    hash_object_parser = commands.add_parser('hash-object')
    hash_object_parser.set_defaults(func=hash_object)
    hash_object_parser.add_argument('file')

    cat_file_parser = commands.add_parser('cat-file')
    cat_file_parser.set_defaults(func=cat_file)
    cat_file_parser.add_argument('object')

    write_tree_parser = commands.add_parser('write-tree')
    write_tree_parser.set_defaults(func=write_tree)

    read_tree_parser = commands.add_parser('read-tree')
    read_tree_parser.set_defaults(func=read_tree)
    read_tree_parser.add_argument('tree')

    add_parser = commands.add_parser('add')
    add_parser.set_defaults(func=add)
    add_parser.add_argument('files', nargs='+')

    commit_parser = commands.add_parser('commit')
    commit_parser.set_defaults(func=commit)
    commit_parser.add_argument('-m', '--message', required=True)

    log_parser = commands.add_parser('log')
    log_parser.set_defaults(func=log)
    log_parser.add_argument('oid', default='@', nargs='?')

    checkout_parser = commands.add_parser('checkout')
    checkout_parser.set_defaults(func=checkout)
    checkout_parser.add_argument('commit')

    tag_parser = commands.add_parser('tag')
    tag_parser.set_defaults(func=tag)
    tag_parser.add_argument('name')
    tag_parser.add_argument('oid', default='@', nargs='?')

    branch_parser = commands.add_parser('branch')
    branch_parser.set_defaults(func=branch)
    branch_parser.add_argument('name', nargs='?')
    branch_parser.add_argument('start_point', default='@', nargs='?')

    status_parser = commands.add_parser('status')
    status_parser.set_defaults(func=status)

    diff_parser = commands.add_parser('diff')
    diff_parser.set_defaults(func=_diff)
    diff_parser.add_argument('commit', default='@', nargs='?')

    merge_parser = commands.add_parser('merge')
    merge_parser.set_defaults(func=merge)
    merge_parser.add_argument('commit')

    merge_base_parser = commands.add_parser('merge-base')
    merge_base_parser.set_defaults(func=merge_base)
    merge_base_parser.add_argument('commit1')
    merge_base_parser.add_argument('commit2')

    fetch_parser = commands.add_parser('fetch')
    fetch_parser.set_defaults(func=fetch)
    fetch_parser.add_argument('remote')

    push_parser = commands.add_parser('push')
    push_parser.set_defaults(func=push)
    push_parser.add_argument('remote')
    push_parser.add_argument('branch')

    return parser.parse_args(argv)


def init(args):
    repo = Repository('.')
    base.init(repo)
    print(f'Initialized empty minigit repository in {repo.git_dir}')


def hash_object(args):
    print(Repository.open('.').hash_file(args.file))


def cat_file(args):
    repo = Repository.open('.')
    sys.stdout.flush()
    sys.stdout.buffer.write(repo.get_object(base.get_oid(repo, args.object), expected=None))


def write_tree(args):
    print(base.write_tree(Repository.open('.')))


def read_tree(args):
    repo = Repository.open('.')
    base.read_tree(repo, base.get_oid(repo, args.tree), update_working=True)


def add(args):
    base.add(Repository.open('.'), args.files)


def commit(args):
    print(base.commit(Repository.open('.'), args.message))


def log(args):
    repo = Repository.open('.')
    for oid in base.iter_commits_and_parents(repo, {base.get_oid(repo, args.oid)}):
        commit_ = base.get_commit(repo, oid)
        print(f'commit {oid}\n')
        print(textwrap.indent(commit_.message, '    '))
        print('')


def checkout(args):
    base.checkout(Repository.open('.'), args.commit)


def tag(args):
    repo = Repository.open('.')
    base.create_tag(repo, args.name, base.get_oid(repo, args.oid))


def branch(args):
    repo = Repository.open('.')
    if not args.name:
        current = base.get_branch_name(repo)
        for name in base.iter_branch_names(repo):
            prefix = '*' if name == current else ' '
            print(f'{prefix} {name}')
    else:
        oid = base.get_oid(repo, args.start_point)
        base.create_branch(repo, args.name, oid)
        print(f'Branch {args.name} created at {oid[:10]}')


def status(args):
    repo = Repository.open('.')
    branch_name = base.get_branch_name(repo)
    if branch_name:
        print(f'On branch {branch_name}')
    else:
        HEAD = repo.get_ref(data.HEAD).value
        print(f'HEAD detached at {HEAD[:10]}' if HEAD else 'HEAD has no commit')

    MERGE_HEAD = repo.get_ref(data.MERGE_HEAD).value
    if MERGE_HEAD:
        print(f'Merging with {MERGE_HEAD[:10]}')

    HEAD = repo.get_ref(data.HEAD).value
    HEAD_tree = base.get_tree(repo, base.get_commit(repo, HEAD).tree) if HEAD else {}
    index_tree = base.get_index_tree(repo)

    print('\nChanges to be committed:\n')
    for path, action in diff.iter_changed_files(HEAD_tree, index_tree):
        print(f'{action:>12}: {path}')

    print('\nChanges not staged for commit:\n')
    for path, action in diff.iter_changed_files(index_tree, base.get_working_tree(repo)):
        print(f'{action:>12}: {path}')


def _diff(args):
    repo = Repository.open('.')
    tree = base.get_tree(repo, base.get_commit(repo, base.get_oid(repo, args.commit)).tree)
    result = diff.diff_trees(repo, tree, base.get_working_tree(repo))
    sys.stdout.flush()
    sys.stdout.buffer.write(result)


def merge(args):
    outcome = base.merge(Repository.open('.'), args.commit)
    if outcome == 'fast-forward':
        print('Fast-forward merge, no need to commit')
    elif outcome == 'up-to-date':
        print('Already up to date')
    else:
        print('Merged in working tree\nPlease commit')


def merge_base(args):
    repo = Repository.open('.')
    oid = base.get_merge_base(repo, base.get_oid(repo, args.commit1), base.get_oid(repo, args.commit2))
    if oid is None:
        sys.exit(1)
    print(oid)


def fetch(args):
    for refname, oid in remote.fetch(Repository.open('.'), args.remote).items():
        print(f'{oid[:10]} {refname}')


def push(args):
    remote.push(Repository.open('.'), args.remote, f'refs/heads/{args.branch}')
