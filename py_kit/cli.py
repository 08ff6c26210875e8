import sys
import argparse
from datetime import datetime, timezone

from loguru import logger

from py_kit import remote
from py_kit.config import DEFAULT_BRANCH
from py_kit.diff import format_diff
from py_kit.errors import PyKitError
from py_kit.merge import MergeStatus
from py_kit.repository import Repository, RESET_MODES

LOG_FORMAT = "{level}: {message}"


def configure_logging(verbose=False):
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level="DEBUG" if verbose else "WARNING", colorize=False)


def cmd_init(args):
    repo = Repository.init(args.path, branch=args.branch)
    print(f"Initialized empty py_kit repository in {repo.repo_dir}")


def cmd_add(args):
    repo = Repository.find()
    for path in repo.add(args.paths):
        print(f"add '{path}'")


def cmd_rm(args):
    repo = Repository.find()
    for path in repo.remove(args.paths, cached=args.cached):
        print(f"rm '{path}'")


def cmd_commit(args):
    repo = Repository.find()
    digest = repo.commit(args.message, author=args.author)
    print(f"[{repo.head_description()} {digest[:8]}] {args.message}")


def cmd_log(args):
    repo = Repository.find()
    commits = repo.log(args.rev, limit=args.limit)
    if not commits:
        print("No commits yet.")
        return
    for commit in commits:
        print(f"commit {commit.digest}")
        if commit.is_merge:
            print("Merge: " + " ".join(p[:8] for p in commit.parents))
        print(f"Author: {commit.author}")
        date = datetime.fromtimestamp(commit.timestamp, tz=timezone.utc)
        print(f"Date:   {date:%Y-%m-%d %H:%M:%S %z}")
        print()
        for line in commit.message.splitlines():
            print(f"    {line}")
        print()


def cmd_status(args):
    repo = Repository.find()
    status = repo.status()
    print(f"On branch {repo.head_description()}")
    if repo.merge_head():
        print("You have unmerged paths; fix conflicts and run 'commit'.")

    if status.staged:
        print("\nChanges to be committed:")
        for label, path in status.staged:
            print(f"  {label}: {path}")
    if status.modified or status.deleted:
        print("\nChanges not staged for commit:")
        for path in status.modified:
            print(f"  modified: {path}")
        for path in status.deleted:
            print(f"  deleted: {path}")
    if status.untracked:
        print("\nUntracked files:")
        for path in status.untracked:
            print(f"  {path}")

    if status.clean and not status.untracked:
        print("nothing to commit, working tree clean")


def cmd_diff(args):
    repo = Repository.find()
    for file_diff in repo.diff():
        print(f"--- a/{file_diff.path}")
        if file_diff.status == 'deleted':
            print("+++ /dev/null")
            continue
        print(f"+++ b/{file_diff.path}")
        print(format_diff(file_diff.lines))


def cmd_show(args):
    repo = Repository.find()
    commit, files = repo.show(args.rev)
    print(f"commit {commit.digest}")
    print(f"tree {commit.tree}")
    for parent in commit.parents:
        print(f"parent {parent}")
    print(f"Author: {commit.author}")
    print()
    for line in commit.message.splitlines():
        print(f"    {line}")
    print()
    for path, digest in sorted(files.items()):
        print(f"{digest[:8]}  {path}")


def cmd_branch(args):
    repo = Repository.find()
    if args.delete:
        repo.delete_branch(args.name)
        print(f"Deleted branch {args.name}")
    elif args.name:
        repo.create_branch(args.name, at=args.start_point)
        print(f"Created branch {args.name}")
    else:
        current = repo.current_branch()
        for name in repo.branches():
            print(f"{'*' if name == current else ' '} {name}")


def cmd_checkout(args):
    repo = Repository.find()
    if args.new_branch:
        repo.create_branch(args.target)
        repo.switch(args.target)
        print(f"Switched to a new branch '{args.target}'")
    elif repo.refs.branch_exists(args.target):
        repo.switch(args.target)
        print(f"Switched to branch '{args.target}'")
    else:
        digest = repo.checkout_detached(args.target)
        print(f"HEAD is now at {digest[:8]} (detached)")


def cmd_merge(args):
    repo = Repository.find()
    result = repo.merge(args.branch, message=args.message)
    print(result.message)
    for path in result.conflicts:
        print(f"CONFLICT (content): {path}")
    return 1 if result.status == MergeStatus.CONFLICT else 0


def cmd_reset(args):
    repo = Repository.find()
    digest = repo.reset(args.target, mode=args.mode)
    print(f"HEAD is now at {digest[:8]}")


def cmd_revert(args):
    repo = Repository.find()
    digest = repo.revert(args.rev)
    print(f"[{repo.head_description()} {digest[:8]}] Revert of {args.rev}")


def cmd_tag(args):
    repo = Repository.find()
    if args.delete:
        if not repo.delete_tag(args.name):
            print(f"error: tag '{args.name}' not found", file=sys.stderr)
            return 1
        print(f"Deleted tag {args.name}")
    elif args.name:
        digest = repo.tag(args.name, args.rev)
        print(f"Tagged {digest[:8]} as {args.name}")
    else:
        for name in repo.tags():
            print(name)


def cmd_remote(args):
    repo = Repository.find()
    if args.action == 'add':
        if not args.name or not args.url:
            args.parser.error("remote add requires a name and a url")
        repo.config.add_remote(args.name, args.url)
    else:
        for name, url in sorted(repo.config.remotes().items()):
            print(f"{name}\t{url}")


def cmd_push(args):
    repo = Repository.find()
    count = remote.push(repo, args.repo_name, branch=args.branch, remote=args.remote)
    print(f"Pushed {count} objects")


def cmd_pull(args):
    repo = Repository.find()
    count = remote.pull(repo, args.repo_name, branch=args.branch, remote=args.remote)
    print(f"Pulled {count} new objects")


def cmd_stash(args):
    repo = Repository.find()
    if args.action == 'list':
        for position, entry in enumerate(repo.stash_list()):
            print(f"stash@{{{position}}}: {entry.message}")
    elif args.action == 'pop':
        entry = repo.stash_pop(args.index)
        print(f"Restored stash@{{{args.index}}}: {entry.message}")
    elif args.action == 'drop':
        entry = repo.stash_drop(args.index)
        print(f"Dropped stash@{{{args.index}}}: {entry.message}")
    else:
        entry = repo.stash_save(args.message)
        if entry is None:
            print("No local changes to save")
        else:
            print(f"Saved working directory: {entry.message}")


def cmd_config(args):
    repo = Repository.find()
    if args.key is None:
        for key, value in repo.config.items():
            print(f"{key}={value}")
    elif args.value is None:
        value = repo.config.get(args.key)
        print("(not set)" if value is None else value)
    else:
        repo.config.set(args.key, args.value)


def cmd_clone(args):
    directory = args.directory or args.repo_name
    repo = remote.clone(args.repo_name, directory, remote_url=args.url, branch=args.branch)
    print(f"Cloned {args.repo_name} into {repo.root}")


def build_parser():
    parser = argparse.ArgumentParser(prog="py_kit", description="py_kit version control")
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('init', help='Create an empty repository')
    p.add_argument('path', nargs='?', default='.')
    p.add_argument('-b', '--branch', default=DEFAULT_BRANCH, help='Name of the initial branch')
    p.set_defaults(func=cmd_init)

    p = sub.add_parser('add', help='Stage files')
    p.add_argument('paths', nargs='+')
    p.set_defaults(func=cmd_add)

    p = sub.add_parser('rm', help='Untrack files')
    p.add_argument('paths', nargs='+')
    p.add_argument('--cached', action='store_true', help='Keep the working copy')
    p.set_defaults(func=cmd_rm)

    p = sub.add_parser('commit', help='Record the staged snapshot')
    p.add_argument('-m', '--message', required=True, help='Commit message')
    p.add_argument('--author', help='Override the configured author')
    p.set_defaults(func=cmd_commit)

    p = sub.add_parser('log', help='Show commit history')
    p.add_argument('rev', nargs='?', default='HEAD')
    p.add_argument('-n', '--limit', type=int)
    p.set_defaults(func=cmd_log)

    p = sub.add_parser('status', help='Show the working tree status')
    p.set_defaults(func=cmd_status)

    p = sub.add_parser('diff', help='Diff the working tree against HEAD')
    p.set_defaults(func=cmd_diff)

    p = sub.add_parser('show', help='Show a commit and its files')
    p.add_argument('rev', nargs='?', default='HEAD')
    p.set_defaults(func=cmd_show)

    p = sub.add_parser('branch', help='List, create or delete branches')
    p.add_argument('name', nargs='?')
    p.add_argument('start_point', nargs='?', default='HEAD')
    p.add_argument('-d', '--delete', action='store_true')
    p.set_defaults(func=cmd_branch)

    p = sub.add_parser('checkout', help='Switch branches or detach HEAD')
    p.add_argument('target')
    p.add_argument('-b', dest='new_branch', action='store_true', help='Create the branch first')
    p.set_defaults(func=cmd_checkout)

    p = sub.add_parser('merge', help='Merge a branch into HEAD')
    p.add_argument('branch')
    p.add_argument('-m', '--message')
    p.set_defaults(func=cmd_merge)

    p = sub.add_parser('reset', help='Move HEAD to another commit')
    p.add_argument('target', nargs='?', default='HEAD')
    modes = p.add_mutually_exclusive_group()
    for mode in RESET_MODES:
        modes.add_argument(f'--{mode}', dest='mode', action='store_const', const=mode)
    p.set_defaults(func=cmd_reset, mode='mixed')

    p = sub.add_parser('revert', help='Undo a commit with a new commit')
    p.add_argument('rev')
    p.set_defaults(func=cmd_revert)

    p = sub.add_parser('tag', help='List, create or delete tags')
    p.add_argument('name', nargs='?')
    p.add_argument('rev', nargs='?', default='HEAD')
    p.add_argument('-d', '--delete', action='store_true')
    p.set_defaults(func=cmd_tag)

    p = sub.add_parser('remote', help='Manage remotes')
    p.add_argument('action', nargs='?', choices=['add', 'list'], default='list')
    p.add_argument('name', nargs='?')
    p.add_argument('url', nargs='?')
    p.set_defaults(func=cmd_remote, parser=p)

    for name, func in (('push', cmd_push), ('pull', cmd_pull)):
        p = sub.add_parser(name, help=f'{name.capitalize()} a branch')
        p.add_argument('-r', '--repo_name', required=True, help='Repository name on the remote')
        p.add_argument('-b', '--branch', help='Branch (defaults to the current one)')
        p.add_argument('--remote', default='origin')
        p.set_defaults(func=func)

    p = sub.add_parser('stash', help='Shelve or restore working directory changes')
    p.add_argument('action', nargs='?', choices=['save', 'pop', 'list', 'drop'], default='save')
    p.add_argument('index', nargs='?', type=int, default=0, help='Entry for pop/drop (0 is newest)')
    p.add_argument('-m', '--message')
    p.set_defaults(func=cmd_stash)

    p = sub.add_parser('config', help='Get or set repository settings')
    p.add_argument('key', nargs='?', help='Dotted key such as user.name')
    p.add_argument('value', nargs='?')
    p.set_defaults(func=cmd_config)

    p = sub.add_parser('clone', help='Copy a remote repository into a new directory')
    p.add_argument('repo_name')
    p.add_argument('directory', nargs='?')
    p.add_argument('--url', help='Remote base URL, saved as origin')
    p.add_argument('-b', '--branch', default=DEFAULT_BRANCH)
    p.set_defaults(func=cmd_clone)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command in ('branch', 'tag') and args.delete and not args.name:
        parser.error(f"{args.command} -d requires a name")

    configure_logging(args.verbose)
    try:
        return args.func(args) or 0
    except PyKitError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
