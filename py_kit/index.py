import json
from typing import NamedTuple, Optional

from py_kit.errors import NothingToCommit
from py_kit.lockfile import locked, write_atomic
from py_kit.tree import build_tree, split_path


class IndexEntry(NamedTuple):
    digest: str
    size: int
    mtime: Optional[int]


class StagingIndex:
    """
    The proposed next commit: repository-relative path -> (blob digest, size, mtime).

    ``mtime`` is the working file's ``st_mtime_ns`` at staging time, or None
    when the entry was not staged from a file on disk. It only decides whether
    status needs to re-hash a file; the digest is what counts.
    """

    def __init__(self, index_file, store):
        self.index_file = index_file
        self.store = store
        self.entries = self._load()

    def _load(self):
        try:
            with open(self.index_file, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        return {
            path: IndexEntry(entry['digest'], entry['size'], entry.get('mtime'))
            for path, entry in data.get('entries', {}).items()
        }

    def save(self):
        data = {
            'entries': {
                path: entry._asdict()
                for path, entry in sorted(self.entries.items())
            }
        }
        with locked(self.index_file):
            write_atomic(self.index_file, json.dumps(data, indent=2).encode())

    def __contains__(self, path):
        return path in self.entries

    def __len__(self):
        return len(self.entries)

    def get(self, path) -> Optional[IndexEntry]:
        return self.entries.get(path)

    def stage(self, path, data, mtime=None):
        split_path(path)
        digest = self.store.put('blob', data)
        self.entries[path] = IndexEntry(digest, len(data), mtime)
        self.save()
        return digest

    def unstage(self, path):
        removed = self.entries.pop(path, None)
        if removed is not None:
            self.save()
        return removed is not None

    def clear(self):
        self.entries = {}
        self.save()

    def replace(self, entries):
        self.entries = dict(entries)
        self.save()

    def snapshot(self):
        return {path: entry.digest for path, entry in self.entries.items()}

    def write_tree(self):
        if not self.entries:
            raise NothingToCommit()
        return build_tree(self.store, self.snapshot())
