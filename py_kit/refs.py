import os
import re
from typing import NamedTuple, Optional, Union

from loguru import logger

from py_kit.errors import AlreadyExists, NoCommits, InvalidRefName, BranchNotFound, RefConflict
from py_kit.lockfile import locked, write_atomic

HEADS = 'refs/heads/'
TAGS = 'refs/tags/'
CANDIDATE_DIGEST_RE = re.compile(r'^[0-9a-f]{7,64}$')
_BAD_NAME_RE = re.compile(r'(\.\.|[\s~^:?*\[\\]|@\{|//|\.lock$|^[-./]|[/.]$)')

_UNSET = object()


class Symbolic(NamedTuple):
    name: str

    @property
    def ref(self):
        return HEADS + self.name


class Detached(NamedTuple):
    digest: str


Head = Union[Symbolic, Detached]


def is_valid_ref_name(name):
    return bool(name) and name != 'HEAD' and not _BAD_NAME_RE.search(name)


def validate_ref_name(name):
    if not is_valid_ref_name(name):
        raise InvalidRefName(f"Invalid ref name: {name!r}")
    return name


class RefStore:
    """Branches, tags and HEAD, stored as small text files under the repository directory."""

    def __init__(self, repo_dir):
        self.repo_dir = repo_dir
        self.head_file = os.path.join(repo_dir, 'HEAD')
        self.refs_dir = os.path.normpath(os.path.join(repo_dir, 'refs'))

    def _ref_path(self, ref):
        path = os.path.normpath(os.path.join(self.repo_dir, *ref.split('/')))
        if os.path.commonpath([path, self.refs_dir]) != self.refs_dir:
            raise InvalidRefName(f"Ref {ref!r} points outside refs/")
        return path

    def read_ref(self, ref) -> Optional[str]:
        path = self._ref_path(ref)
        if not os.path.isfile(path):
            return None
        with open(path, 'r') as f:
            return f.read().strip() or None

    def head(self) -> Head:
        with open(self.head_file, 'r') as f:
            content = f.read().strip()
        if content.startswith('ref: '):
            ref = content[5:]
            return Symbolic(ref[len(HEADS):] if ref.startswith(HEADS) else ref)
        return Detached(content)

    def current_branch(self) -> Optional[str]:
        head = self.head()
        return head.name if isinstance(head, Symbolic) else None

    def resolve_head(self) -> Optional[str]:
        head = self.head()
        if isinstance(head, Detached):
            return head.digest
        return self.read_ref(head.ref)

    def resolve(self, name) -> Optional[str]:
        if name == 'HEAD':
            return self.resolve_head()
        if not is_valid_ref_name(name):
            return None

        branch_digest = self.read_ref(HEADS + name)
        if branch_digest:
            return branch_digest

        tag_digest = self.read_ref(TAGS + name)
        if tag_digest:
            return tag_digest

        if CANDIDATE_DIGEST_RE.match(name):
            return name
        return None

    def update(self, ref, digest, expected=_UNSET):
        """Point ``ref`` at ``digest``.

        With ``expected`` given, the write only happens if the ref still
        holds that value (``None`` meaning the ref must not exist yet);
        otherwise RefConflict is raised.
        """
        path = self._ref_path(ref)
        with locked(path):
            if expected is not _UNSET:
                actual = self.read_ref(ref)
                if actual != expected:
                    raise RefConflict(ref, expected, actual)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            write_atomic(path, f"{digest}\n".encode())
        logger.debug(f"Updated {ref} to {digest[:8]}")

    def update_head(self, digest, expected=_UNSET):
        """Advance whatever HEAD points at: the current branch, or HEAD itself when detached."""
        head = self.head()
        if isinstance(head, Symbolic):
            self.update(head.ref, digest, expected=expected)
        else:
            self.set_head_detached(digest)

    def set_head_symbolic(self, name):
        with locked(self.head_file):
            write_atomic(self.head_file, f"ref: {HEADS}{name}\n".encode())

    def set_head_detached(self, digest):
        with locked(self.head_file):
            write_atomic(self.head_file, f"{digest}\n".encode())
        logger.warning(f"HEAD detached at {digest[:8]}")

    def branch_exists(self, name):
        return os.path.isfile(self._ref_path(HEADS + name))

    def list_branches(self):
        return self._list(HEADS)

    def create_branch(self, name, at='HEAD'):
        validate_ref_name(name)
        if self.branch_exists(name):
            raise AlreadyExists(f"Branch '{name}' already exists")
        digest = self.resolve(at)
        if not digest:
            raise NoCommits("Cannot create branch: no commits yet")
        self.update(HEADS + name, digest, expected=None)
        logger.info(f"Created branch {name} at {digest[:8]}")
        return digest

    def delete_branch(self, name):
        validate_ref_name(name)
        if not self.branch_exists(name):
            raise BranchNotFound(name)
        if self.current_branch() == name:
            raise InvalidRefName(f"Cannot delete the checked out branch '{name}'")
        path = self._ref_path(HEADS + name)
        with locked(path):
            os.remove(path)
        logger.info(f"Deleted branch {name}")

    def create_tag(self, name, digest):
        validate_ref_name(name)
        if self.read_ref(TAGS + name):
            raise AlreadyExists(f"Tag '{name}' already exists")
        self.update(TAGS + name, digest, expected=None)
        logger.info(f"Tagged {digest[:8]} as {name}")

    def delete_tag(self, name):
        validate_ref_name(name)
        path = self._ref_path(TAGS + name)
        if not os.path.isfile(path):
            return False
        with locked(path):
            os.remove(path)
        return True

    def list_tags(self):
        return self._list(TAGS)

    def _list(self, prefix):
        """``{name: digest}`` for every ref under ``prefix``, including nested names like ``feature/x``."""
        base = self._ref_path(prefix.rstrip('/'))
        refs = {}
        if not os.path.isdir(base):
            return refs
        for dirpath, _, filenames in os.walk(base):
            for filename in filenames:
                if filename.endswith('.lock') or '.tmp.' in filename:
                    continue
                rel = os.path.relpath(os.path.join(dirpath, filename), base)
                name = rel.replace(os.sep, '/')
                digest = self.read_ref(prefix + name)
                if digest:
                    refs[name] = digest
        return dict(sorted(refs.items()))
