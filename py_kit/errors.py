class PyKitError(Exception):
    """Base exception for py_kit errors."""


class NotARepository(PyKitError):
    pass


class ObjectNotFound(PyKitError):
    def __init__(self, digest):
        super().__init__(f"Object not found: {digest}")
        self.digest = digest


class CorruptObject(PyKitError):
    def __init__(self, digest, reason):
        super().__init__(f"Corrupt object {digest}: {reason}")
        self.digest = digest
        self.reason = reason


class WrongKind(PyKitError):
    def __init__(self, digest, expected, actual):
        super().__init__(f"Expected {expected} object at {digest}, got {actual}")
        self.digest = digest
        self.expected = expected
        self.actual = actual


class UnexpectedKind(WrongKind):
    """A tree entry or root digest did not resolve to a tree."""


class MalformedCommit(PyKitError):
    def __init__(self, digest, reason):
        super().__init__(f"Malformed commit {digest}: {reason}")
        self.digest = digest


class InvalidPath(PyKitError):
    pass


class InvalidRefName(PyKitError):
    pass


class NothingToCommit(PyKitError):
    def __init__(self, message="Nothing to commit: staging area is empty"):
        super().__init__(message)


class NoCommits(PyKitError):
    pass


class AlreadyExists(PyKitError):
    pass


class BranchNotFound(PyKitError):
    def __init__(self, name):
        super().__init__(f"Branch '{name}' not found")
        self.name = name


class NoCommonAncestor(PyKitError):
    def __init__(self, current, target):
        super().__init__(
            f"Cannot merge: no common ancestor between {current[:8]} and {target[:8]}"
        )
        self.current = current
        self.target = target


class RefConflict(PyKitError):
    """A ref changed between being read and being updated."""

    def __init__(self, ref, expected, actual):
        super().__init__(
            f"Ref {ref} moved: expected {expected or '(none)'}, found {actual or '(none)'}"
        )
        self.ref = ref
        self.expected = expected
        self.actual = actual


class LockError(PyKitError):
    def __init__(self, path):
        super().__init__(f"Unable to lock {path}: another process holds the lock")
        self.path = path


class TransportError(PyKitError):
    pass


class UnknownRevision(PyKitError):
    def __init__(self, rev):
        super().__init__(f"Unknown revision: {rev}")
        self.rev = rev


class RevertConflict(PyKitError):
    def __init__(self, digest, conflicts):
        super().__init__(
            f"Cannot revert {digest[:8]} cleanly, conflicting paths: {', '.join(conflicts)}"
        )
        self.digest = digest
        self.conflicts = conflicts


class UncommittedChanges(PyKitError):
    def __init__(self, paths):
        super().__init__(
            f"Local changes would be overwritten: {', '.join(paths)}. Commit or stash them first."
        )
        self.paths = paths


class NoStash(PyKitError):
    def __init__(self, message="No stash entries found"):
        super().__init__(message)


class InvalidConfigKey(PyKitError):
    def __init__(self, key, reason="expected <section>.<name>"):
        super().__init__(f"Invalid config key {key!r}: {reason}")
        self.key = key
