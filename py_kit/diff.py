from dataclasses import dataclass, field
from typing import List, NamedTuple, Tuple

from py_kit.commit import read_commit
from py_kit.objects import hash_object
from py_kit.tree import flatten_tree

CONTEXT = 'context'
ADDED = 'added'
REMOVED = 'removed'

_PREFIX = {CONTEXT: ' ', ADDED: '+', REMOVED: '-'}


class DiffLine(NamedTuple):
    tag: str
    line: str


def diff_lines(old_text, new_text) -> List[DiffLine]:
    """
    Line diff of two texts based on the longest common subsequence.

    The LCS table costs O(m*n) in time and memory. When backtracking, a tie
    is resolved by consuming the new text first, so within a changed hunk
    removals are listed before additions once the result is reversed into
    document order.
    """
    old_lines = old_text.split('\n')
    new_lines = new_text.split('\n')
    m, n = len(old_lines), len(new_lines)

    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if old_lines[i - 1] == new_lines[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    result = []
    i, j = m, n
    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_lines[i - 1] == new_lines[j - 1]:
            result.append(DiffLine(CONTEXT, old_lines[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            result.append(DiffLine(ADDED, new_lines[j - 1]))
            j -= 1
        else:
            result.append(DiffLine(REMOVED, old_lines[i - 1]))
            i -= 1

    result.reverse()
    return result


def format_diff(lines):
    return "\n".join(f"{_PREFIX[tag]}{line}" for tag, line in lines)


@dataclass
class Status:
    staged: List[Tuple[str, str]] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)

    @property
    def clean(self):
        return not (self.staged or self.modified or self.deleted)


@dataclass
class FileDiff:
    path: str
    status: str
    lines: List[DiffLine] = field(default_factory=list)


def committed_files(repo):
    head = repo.head_commit()
    if not head:
        return {}
    return flatten_tree(repo.store, read_commit(repo.store, head).tree)


def status(repo) -> Status:
    result = Status()
    index = repo.index.entries
    committed = committed_files(repo)

    for path in sorted(set(index) | set(committed)):
        entry = index.get(path)
        committed_digest = committed.get(path)
        if entry is None:
            result.staged.append(('deleted', path))
        elif committed_digest is None:
            result.staged.append(('new file', path))
        elif entry.digest != committed_digest:
            result.staged.append(('modified', path))

    # tracked paths are checked on disk directly; ignore rules only hide untracked files
    for path, entry in sorted(index.items()):
        if not repo.worktree.exists(path):
            result.deleted.append(path)
            continue
        if repo.worktree.mtime(path) == entry.mtime and repo.worktree.size(path) == entry.size:
            continue
        digest = hash_object('blob', repo.worktree.read(path))
        if digest != entry.digest:
            result.modified.append(path)

    result.untracked = [path for path in repo.worktree.iter_files() if path not in index]
    return result


def _text(data):
    return data.decode('utf-8', errors='replace')


def diff_working_tree(repo) -> List[FileDiff]:
    """Compare every file of the last commit against the working directory."""
    diffs = []
    for path, digest in sorted(committed_files(repo).items()):
        if not repo.worktree.exists(path):
            diffs.append(FileDiff(path, 'deleted'))
            continue

        _, old_content = repo.store.get(digest)
        new_content = repo.worktree.read(path)
        if old_content != new_content:
            diffs.append(FileDiff(
                path, 'modified', diff_lines(_text(old_content), _text(new_content)),
            ))
    return diffs
