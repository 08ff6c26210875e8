import json
from typing import Dict, List, NamedTuple

from py_kit.errors import NoStash
from py_kit.lockfile import locked, write_atomic


class StashEntry(NamedTuple):
    message: str
    timestamp: int
    files: Dict[str, str]
    removed: List[str]


class StashStack:
    """
    Shelved working-directory changes, kept as a JSON list in ``.py_kit/stash``.

    ``files`` maps each changed path to the blob holding its content;
    ``removed`` lists committed paths that were missing from disk. The last
    element of the list is ``stash@{0}``.
    """

    def __init__(self, stash_file):
        self.stash_file = stash_file
        self.entries = self._load()

    def _load(self):
        try:
            with open(self.stash_file, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        return [
            StashEntry(e['message'], e['timestamp'], e['files'], e.get('removed', []))
            for e in data
        ]

    def save(self):
        data = [entry._asdict() for entry in self.entries]
        with locked(self.stash_file):
            write_atomic(self.stash_file, json.dumps(data, indent=2).encode())

    def __len__(self):
        return len(self.entries)

    def push(self, entry):
        self.entries.append(entry)
        self.save()

    def _position(self, index):
        if not 0 <= index < len(self.entries):
            if not self.entries:
                raise NoStash()
            raise NoStash(f"stash@{{{index}}} does not exist")
        return len(self.entries) - 1 - index

    def get(self, index=0) -> StashEntry:
        return self.entries[self._position(index)]

    def drop(self, index=0) -> StashEntry:
        entry = self.entries.pop(self._position(index))
        self.save()
        return entry

    def newest_first(self):
        return list(reversed(self.entries))
