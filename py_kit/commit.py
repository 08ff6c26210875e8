import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from py_kit.errors import MalformedCommit, WrongKind
from py_kit.tree import read_tree

_SIGNATURE_RE = re.compile(r'^(.*)\s(-?\d+)$')


def system_clock():
    return int(time.time())


@dataclass(frozen=True)
class Commit:
    digest: str
    tree: str
    parents: Tuple[str, ...]
    author: str
    timestamp: int
    message: str
    committer: Optional[str] = field(default=None, compare=False)

    @property
    def parent(self) -> Optional[str]:
        """First parent, the one history walks follow."""
        return self.parents[0] if self.parents else None

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


def serialize_commit(tree, parents, author, timestamp, message):
    lines = [f"tree {tree}"]
    for parent in parents:
        lines.append(f"parent {parent}")
    lines.append(f"author {author} {timestamp}")
    lines.append(f"committer {author} {timestamp}")
    lines.append("")
    lines.append(message)
    return ("\n".join(lines) + "\n").encode()


def _parse_signature(digest, value):
    match = _SIGNATURE_RE.match(value)
    if not match:
        raise MalformedCommit(digest, f"bad signature {value!r}")
    return match.group(1), int(match.group(2))


def parse_commit(digest, data):
    text = data.decode()
    header, sep, message = text.partition("\n\n")
    if not sep:
        raise MalformedCommit(digest, "missing blank line before message")

    tree = None
    parents = []
    author = committer = None
    timestamp = None
    for line in header.splitlines():
        key, _, value = line.partition(' ')
        if key == 'tree':
            tree = value
        elif key == 'parent':
            parents.append(value)
        elif key == 'author':
            author, timestamp = _parse_signature(digest, value)
        elif key == 'committer':
            committer, _ = _parse_signature(digest, value)

    if tree is None:
        raise MalformedCommit(digest, "missing tree header")
    if author is None:
        raise MalformedCommit(digest, "missing author header")

    if message.endswith("\n"):
        message = message[:-1]
    return Commit(
        digest=digest,
        tree=tree,
        parents=tuple(parents),
        author=author,
        timestamp=timestamp,
        message=message,
        committer=committer,
    )


def create_commit(store, tree, parents, author, message, clock=system_clock):
    if isinstance(parents, str):
        parents = [parents]
    parents = [p for p in (parents or []) if p]
    data = serialize_commit(tree, parents, author, clock(), message)
    return store.put('commit', data)


def read_commit(store, digest) -> Commit:
    obj_type, data = store.get(digest)
    if obj_type != 'commit':
        raise WrongKind(digest, 'commit', obj_type)
    return parse_commit(digest, data)


def history(store, start) -> Iterator[Commit]:
    """Yield commits from ``start`` back to the root, following first parents."""
    digest = start
    while digest:
        commit = read_commit(store, digest)
        yield commit
        digest = commit.parent


def ancestors(store, start) -> Iterator[str]:
    """Breadth-first walk over every commit reachable from ``start``, including itself."""
    seen = {start}
    queue = deque([start])
    while queue:
        digest = queue.popleft()
        yield digest
        for parent in read_commit(store, digest).parents:
            if parent not in seen:
                seen.add(parent)
                queue.append(parent)


def is_ancestor(store, ancestor, descendant):
    return any(digest == ancestor for digest in ancestors(store, descendant))


def find_common_ancestor(store, current, target):
    """First commit in ``target``'s ancestry that is also an ancestor of ``current``.

    This matches the nearest common ancestor for linear histories; with
    several earlier merges it returns *a* common ancestor, not necessarily
    the lowest one.
    """
    current_ancestors = set(ancestors(store, current))
    for digest in ancestors(store, target):
        if digest in current_ancestors:
            return digest
    return None


def collect_reachable(store, start):
    """Every object digest reachable from commit ``start``: commits, trees and blobs."""
    reachable = set()
    trees = []
    for commit_digest in ancestors(store, start):
        reachable.add(commit_digest)
        trees.append(read_commit(store, commit_digest).tree)

    while trees:
        tree_digest = trees.pop()
        if tree_digest in reachable:
            continue
        reachable.add(tree_digest)
        for entry in read_tree(store, tree_digest):
            if entry.obj_type == 'tree':
                trees.append(entry.digest)
            else:
                reachable.add(entry.digest)
    return reachable
