import enum
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from py_kit.commit import read_commit, create_commit, is_ancestor, find_common_ancestor
from py_kit.errors import BranchNotFound, NoCommonAncestor, UncommittedChanges
from py_kit.index import IndexEntry
from py_kit.tree import build_tree, flatten_tree


class MergeStatus(str, enum.Enum):
    FAST_FORWARD = "fast-forward"
    UP_TO_DATE = "up-to-date"
    MERGED = "merged"
    CONFLICT = "conflict"


@dataclass
class MergeResult:
    status: MergeStatus
    message: str
    commit: Optional[str] = None
    conflicts: List[str] = field(default_factory=list)


def conflict_markers(current, target, branch_name):
    """Both versions of a file, delimited the way a user resolves them by hand."""
    def section(data):
        if data and not data.endswith(b"\n"):
            data += b"\n"
        return data

    return (
        b"<<<<<<< HEAD\n"
        + section(current)
        + b"=======\n"
        + section(target)
        + f">>>>>>> {branch_name}\n".encode()
    )


def files_of(repo, digest):
    """``{path: blob digest}`` of a commit's tree; empty when ``digest`` is None."""
    if not digest:
        return {}
    return flatten_tree(repo.store, read_commit(repo.store, digest).tree)


def staged_only(repo, previous):
    """Index entries that were not part of the snapshot being left."""
    return {path: entry for path, entry in repo.index.entries.items() if path not in previous}


def check_staged(repo, files, previous):
    """Raise UncommittedChanges if moving from ``previous`` to ``files`` loses staged content.

    Both arguments map paths to blob digests. An index entry that differs
    from ``previous`` is staged work; it survives only when ``files`` leaves
    the path alone or already holds the same blob.
    """
    clobbered = []
    for path, entry in repo.index.entries.items():
        if entry.digest == previous.get(path):
            continue
        if path not in previous and path not in files:
            continue
        if files.get(path) != entry.digest:
            clobbered.append(path)
    if clobbered:
        raise UncommittedChanges(sorted(clobbered))
    return staged_only(repo, previous)


def materialize(repo, files, previous):
    """Make the working directory and the index mirror ``files`` ({path: blob digest}).

    ``previous`` holds the paths tracked by the snapshot being left; those
    missing from ``files`` are removed from disk. Entries staged on top of it
    are carried over, and UncommittedChanges is raised before anything is
    written if ``files`` would overwrite one of them.
    """
    kept = check_staged(repo, files, previous)

    for path in previous:
        if path not in files and path in repo.index:
            repo.worktree.remove(path)

    entries = {path: entry for path, entry in kept.items() if path not in files}
    for path, digest in sorted(files.items()):
        _, content = repo.store.get(digest)
        mtime = repo.worktree.write(path, content)
        entries[path] = IndexEntry(digest, len(content), mtime)
    repo.index.replace(entries)


def checkout_commit(repo, digest, previous=None):
    """Check out ``digest``, leaving the snapshot ``previous`` (HEAD's files by default)."""
    if previous is None:
        previous = files_of(repo, repo.head_commit())
    files = files_of(repo, digest)
    materialize(repo, files, previous)
    logger.bind(files=len(files)).info(f"Checked out {digest[:8]}")
    return files


def merge_trees(base_files, current_files, target_files):
    """Three-way merge of flat path maps.

    Returns ``(merged, conflicts)``; a conflicting path keeps the current
    side's digest in ``merged`` (or is absent if the current side deleted it).
    """
    merged = {}
    conflicts = []
    for path in sorted(set(base_files) | set(current_files) | set(target_files)):
        base = base_files.get(path)
        current = current_files.get(path)
        target = target_files.get(path)

        if current == target:
            chosen = current
        elif current == base:
            chosen = target
        elif target == base:
            chosen = current
        else:
            conflicts.append(path)
            chosen = current

        if chosen:
            merged[path] = chosen
    return merged, conflicts


def _fast_forward(repo, current, target, branch_name):
    previous = files_of(repo, current)
    check_staged(repo, files_of(repo, target), previous)
    repo.refs.update_head(target, expected=current)
    checkout_commit(repo, target, previous)
    logger.bind(commit=target).info(f"Fast-forwarded to {branch_name}")
    return MergeResult(MergeStatus.FAST_FORWARD, f"Fast-forwarded to {branch_name}", commit=target)


def merge(repo, branch_name, author=None, message=None) -> MergeResult:
    current = repo.head_commit()
    target = repo.resolve(branch_name)
    if not target or not repo.store.exists(target):
        raise BranchNotFound(branch_name)

    if not current:
        return _fast_forward(repo, None, target, branch_name)

    if current == target or is_ancestor(repo.store, target, current):
        return MergeResult(MergeStatus.UP_TO_DATE, "Already up to date.", commit=current)

    if is_ancestor(repo.store, current, target):
        return _fast_forward(repo, current, target, branch_name)

    base = find_common_ancestor(repo.store, current, target)
    if not base:
        raise NoCommonAncestor(current, target)

    current_files = files_of(repo, current)
    target_files = files_of(repo, target)
    merged, conflicts = merge_trees(files_of(repo, base), current_files, target_files)

    materialize(repo, merged, current_files)

    if conflicts:
        for path in conflicts:
            current_content = repo.store.get(current_files[path])[1] if path in current_files else b""
            target_content = repo.store.get(target_files[path])[1] if path in target_files else b""
            repo.worktree.write(path, conflict_markers(current_content, target_content, branch_name))
            entry = repo.index.get(path)
            if entry is not None:
                # force status to re-hash the marked-up file
                repo.index.entries[path] = entry._replace(mtime=None)
        repo.index.save()
        repo.set_merge_head(target)

        logger.bind(base=base[:8]).warning(f"Merge conflict in: {', '.join(conflicts)}")
        return MergeResult(
            MergeStatus.CONFLICT,
            f"Merge conflict in: {', '.join(conflicts)}. Resolve and commit.",
            conflicts=conflicts,
        )

    tree = build_tree(repo.store, merged)
    merge_commit = create_commit(
        repo.store,
        tree,
        [current, target],
        author or repo.config.author,
        message or f"Merge branch '{branch_name}'",
        clock=repo.clock,
    )
    repo.refs.update_head(merge_commit, expected=current)

    logger.bind(commit=merge_commit, base=base).info(f"Merged {branch_name}")
    return MergeResult(MergeStatus.MERGED, f"Merged '{branch_name}' successfully.", commit=merge_commit)
