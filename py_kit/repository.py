import os
import re
import json
from itertools import islice

from loguru import logger

from py_kit import diff as diff_engine
from py_kit import merge as merge_engine
from py_kit.commit import create_commit, read_commit, history, collect_reachable, system_clock
from py_kit.config import RepoConfig, DEFAULT_BRANCH
from py_kit.errors import (
    AlreadyExists,
    BranchNotFound,
    InvalidPath,
    NoCommits,
    NotARepository,
    RevertConflict,
    UncommittedChanges,
    UnknownRevision,
)
from py_kit.index import StagingIndex, IndexEntry
from py_kit.objects import ObjectStore, DIGEST_LENGTH, hash_object
from py_kit.refs import RefStore, HEADS, Symbolic
from py_kit.stash import StashStack, StashEntry
from py_kit.tree import flatten_tree
from py_kit.worktree import WorkTree, REPO_DIR

_ANCESTRY_RE = re.compile(r'^(.+)~(\d+)$')

RESET_MODES = ('soft', 'mixed', 'hard')


class Repository:
    """
    Handle to one repository on disk.

    Every operation goes through the handle, so several repositories can be
    used side by side in one process. The ``clock`` callable supplies commit
    timestamps.
    """

    def __init__(self, root, clock=system_clock):
        self.root = os.path.abspath(root)
        self.repo_dir = os.path.join(self.root, REPO_DIR)
        if not os.path.isdir(self.repo_dir):
            raise NotARepository(f"Not a py_kit repository: {self.root}")

        self.store = ObjectStore(os.path.join(self.repo_dir, 'objects'))
        self.refs = RefStore(self.repo_dir)
        self.index = StagingIndex(os.path.join(self.repo_dir, 'index'), self.store)
        self.worktree = WorkTree(self.root)
        self.config = RepoConfig(os.path.join(self.repo_dir, 'config'))
        self.clock = clock
        self.merge_head_file = os.path.join(self.repo_dir, 'MERGE_HEAD')
        self.stash = StashStack(os.path.join(self.repo_dir, 'stash'))

    def __repr__(self):
        return f"Repository({self.root!r})"

    @classmethod
    def init(cls, root='.', branch=DEFAULT_BRANCH, clock=system_clock):
        repo_dir = os.path.join(os.path.abspath(root), REPO_DIR)
        if os.path.exists(repo_dir):
            raise AlreadyExists(f"Already a py_kit repository: {repo_dir}")

        os.makedirs(os.path.join(repo_dir, 'objects'))
        os.makedirs(os.path.join(repo_dir, 'refs', 'heads'))
        os.makedirs(os.path.join(repo_dir, 'refs', 'tags'))
        with open(os.path.join(repo_dir, 'HEAD'), 'w') as f:
            f.write(f"ref: {HEADS}{branch}\n")
        with open(os.path.join(repo_dir, 'index'), 'w') as f:
            json.dump({'entries': {}}, f)
        with open(os.path.join(repo_dir, 'config'), 'w') as f:
            json.dump({'user': {}, 'remotes': {}}, f, indent=2)

        logger.info(f"Initialized empty py_kit repository in {repo_dir}")
        return cls(root, clock=clock)

    @classmethod
    def find(cls, start='.', clock=system_clock):
        current = os.path.abspath(start)
        while True:
            if os.path.isdir(os.path.join(current, REPO_DIR)):
                return cls(current, clock=clock)
            parent = os.path.dirname(current)
            if parent == current:
                raise NotARepository(
                    f"Not a py_kit repository (or any parent directory): {REPO_DIR} not found"
                )
            current = parent

    # revisions

    def head_commit(self):
        return self.refs.resolve_head()

    def resolve(self, rev):
        """Commit digest for a branch, tag, ``HEAD``, (abbreviated) digest or ``<rev>~N``."""
        match = _ANCESTRY_RE.match(rev)
        if match:
            digest = self.resolve(match.group(1))
            for _ in range(int(match.group(2))):
                if not digest:
                    break
                digest = read_commit(self.store, digest).parent
            return digest

        digest = self.refs.resolve(rev)
        if digest and len(digest) < DIGEST_LENGTH:
            digest = self.store.expand_prefix(digest) or digest
        return digest

    def resolve_commit(self, rev):
        digest = self.resolve(rev)
        if not digest:
            raise UnknownRevision(rev)
        return read_commit(self.store, digest).digest

    def _rel(self, path):
        if os.path.isabs(path):
            return self.worktree.relpath(path)
        return path.replace(os.sep, '/').strip('/')

    # staging

    def add(self, paths):
        added = []
        ignores = self.worktree.ignores()
        for path in paths:
            rel_path = self._rel(path)
            abs_path = self.worktree.abspath(rel_path) if rel_path not in ('', '.') else self.root
            if os.path.isdir(abs_path):
                files = list(self.worktree.iter_files(abs_path, ignores=ignores))
            elif os.path.isfile(abs_path):
                files = [rel_path]
            else:
                raise InvalidPath(f"File not found: {path}")

            for file_path in files:
                mtime = self.worktree.mtime(file_path)
                self.index.stage(file_path, self.worktree.read(file_path), mtime=mtime)
                added.append(file_path)
        logger.debug(f"Staged {len(added)} file(s)")
        return added

    def remove(self, paths, cached=False):
        removed = []
        for path in paths:
            rel_path = self._rel(path)
            if not self.index.unstage(rel_path):
                raise InvalidPath(f"'{rel_path}' is not tracked")
            if not cached:
                self.worktree.remove(rel_path)
            removed.append(rel_path)
        return removed

    def unstage(self, paths=None):
        """Drop entries from the index; with no paths, empty it."""
        if not paths:
            self.index.clear()
            return []
        return [p for p in map(self._rel, paths) if self.index.unstage(p)]

    # commits

    def merge_head(self):
        try:
            with open(self.merge_head_file, 'r') as f:
                return f.read().strip() or None
        except FileNotFoundError:
            return None

    def set_merge_head(self, digest):
        with open(self.merge_head_file, 'w') as f:
            f.write(f"{digest}\n")

    def clear_merge_head(self):
        if os.path.exists(self.merge_head_file):
            os.remove(self.merge_head_file)

    def commit(self, message, author=None):
        tree = self.index.write_tree()
        parent = self.head_commit()
        parents = [parent] if parent else []
        merge_head = self.merge_head()
        if merge_head and parent:
            parents.append(merge_head)

        digest = create_commit(
            self.store, tree, parents, author or self.config.author, message, clock=self.clock,
        )
        self.refs.update_head(digest, expected=parent)
        self.clear_merge_head()

        branch = self.refs.current_branch() or 'detached HEAD'
        logger.bind(branch=branch).info(f"Committed {digest[:8]}: {message}")
        return digest

    def log(self, rev='HEAD', limit=None):
        start = self.resolve(rev)
        if not start:
            return []
        return list(islice(history(self.store, start), limit))

    def show(self, rev='HEAD'):
        commit = read_commit(self.store, self.resolve_commit(rev))
        return commit, flatten_tree(self.store, commit.tree)

    # branches and tags

    def create_branch(self, name, at='HEAD'):
        if at != 'HEAD':
            at = self.resolve_commit(at)
        return self.refs.create_branch(name, at=at)

    def delete_branch(self, name):
        self.refs.delete_branch(name)

    def branches(self):
        return self.refs.list_branches()

    def current_branch(self):
        return self.refs.current_branch()

    def switch(self, name):
        if not self.refs.branch_exists(name):
            raise BranchNotFound(name)
        digest = self.refs.read_ref(HEADS + name)
        if digest:
            merge_engine.checkout_commit(self, digest)
        self.refs.set_head_symbolic(name)
        self.clear_merge_head()
        logger.info(f"Switched to branch {name}")

    def checkout_detached(self, rev):
        digest = self.resolve_commit(rev)
        merge_engine.checkout_commit(self, digest)
        self.refs.set_head_detached(digest)
        self.clear_merge_head()
        return digest

    def tag(self, name, rev='HEAD'):
        digest = self.resolve(rev)
        if not digest:
            raise NoCommits("No commits to tag")
        digest = self.resolve_commit(digest)
        self.refs.create_tag(name, digest)
        return digest

    def delete_tag(self, name):
        return self.refs.delete_tag(name)

    def tags(self):
        return self.refs.list_tags()

    # history rewriting

    def reset(self, target='HEAD', mode='mixed'):
        if mode not in RESET_MODES:
            raise ValueError(f"Unknown reset mode: {mode}")
        digest = self.resolve(target)
        if not digest:
            raise NoCommits(f"Cannot reset to {target}: no such commit")
        digest = self.resolve_commit(digest)

        staged = self.index.snapshot()
        self.refs.update_head(digest)
        self.clear_merge_head()
        if mode == 'hard':
            merge_engine.checkout_commit(self, digest, previous=staged)
        elif mode == 'mixed':
            files = flatten_tree(self.store, read_commit(self.store, digest).tree)
            self.index.replace({
                path: self._index_entry_for(path, blob)
                for path, blob in files.items()
            })
        logger.info(f"Reset ({mode}) to {digest[:8]}")
        return digest

    def _index_entry_for(self, path, digest):
        existing = self.index.get(path)
        if existing is not None and existing.digest == digest:
            return existing
        _, content = self.store.get(digest)
        return IndexEntry(digest, len(content), None)

    def revert(self, rev, author=None):
        """Commit the inverse of ``rev`` on top of HEAD.

        The reverted commit's tree acts as the merge base, HEAD as the
        current side and its parent's tree as the target, so later changes
        to unrelated paths survive.
        """
        commit = read_commit(self.store, self.resolve_commit(rev))
        if not commit.parent:
            raise NoCommits("Cannot revert the initial commit")
        head = self.head_commit()
        if not head:
            raise NoCommits("No commits to revert on top of")

        files_of = merge_engine.files_of
        current = files_of(self, head)
        staged = self.index.snapshot()
        if staged != current:
            changed = set(staged.items()) ^ set(current.items())
            raise UncommittedChanges(sorted({path for path, _ in changed}))
        merged, conflicts = merge_engine.merge_trees(
            files_of(self, commit.digest), current, files_of(self, commit.parent),
        )
        if conflicts:
            raise RevertConflict(commit.digest, conflicts)

        merge_engine.materialize(self, merged, current)
        message = f'Revert "{commit.message}"\n\nThis reverts commit {commit.digest[:8]}.'
        return self.commit(message, author=author)

    # stash

    def stash_save(self, message=None):
        """Shelve every difference from HEAD and restore its snapshot.

        Returns the new StashEntry, or None when there was nothing to save.
        """
        committed = merge_engine.files_of(self, self.head_commit())
        staged = self.index.snapshot()
        paths = set(self.worktree.iter_files())
        paths.update(p for p in set(committed) | set(staged) if self.worktree.exists(p))

        files = {}
        for path in sorted(paths):
            data = self.worktree.read(path)
            if hash_object('blob', data) != committed.get(path):
                files[path] = self.store.put('blob', data)
        removed = sorted(path for path in committed if not self.worktree.exists(path))
        if not files and not removed:
            logger.info("No local changes to save")
            return None

        entry = StashEntry(
            message or f"WIP on {self.head_description()}", self.clock(), files, removed,
        )
        self.stash.push(entry)
        for path in files:
            if path not in committed:
                self.worktree.remove(path)
        merge_engine.materialize(self, committed, staged)
        logger.bind(files=len(files), removed=len(removed)).info(f"Saved {entry.message}")
        return entry

    def stash_pop(self, index=0):
        """Write a stash entry back into the working directory and drop it.

        The index is left alone, so restored changes show up as unstaged.
        """
        entry = self.stash.get(index)
        committed = merge_engine.files_of(self, self.head_commit())
        clobbered = [
            path for path, digest in entry.files.items()
            if self.worktree.exists(path)
            and hash_object('blob', self.worktree.read(path)) not in (digest, committed.get(path))
        ]
        if clobbered:
            raise UncommittedChanges(sorted(clobbered))

        for path, digest in sorted(entry.files.items()):
            _, content = self.store.get(digest)
            self.worktree.write(path, content)
        for path in entry.removed:
            self.worktree.remove(path)
        self.stash.drop(index)
        logger.info(f"Restored {entry.message}")
        return entry

    def stash_list(self):
        return self.stash.newest_first()

    def stash_drop(self, index=0):
        return self.stash.drop(index)

    # comparisons

    def status(self):
        return diff_engine.status(self)

    def diff(self):
        return diff_engine.diff_working_tree(self)

    def merge(self, branch_name, author=None, message=None):
        return merge_engine.merge(self, branch_name, author=author, message=message)

    def collect_reachable(self, rev='HEAD'):
        return collect_reachable(self.store, self.resolve_commit(rev))

    def head_description(self):
        head = self.refs.head()
        if isinstance(head, Symbolic):
            return head.name
        return f"detached at {head.digest[:8]}"
