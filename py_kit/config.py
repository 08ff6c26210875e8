import os
import json

from py_kit.errors import InvalidConfigKey
from py_kit.lockfile import locked, write_atomic

DEFAULT_AUTHOR = "Py Kit User"
DEFAULT_BRANCH = "main"
REMOTE_URL = "http://localhost:8000/api/kit"

AUTHOR_ENV = "PY_KIT_AUTHOR"
REMOTE_URL_ENV = "PY_KIT_REMOTE_URL"


class RepoConfig:
    """Per-repository settings kept as JSON in ``.py_kit/config``.

    Layout::

        {"user": {"name": "..."}, "remotes": {"origin": "http://..."}}
    """

    def __init__(self, config_file):
        self.config_file = config_file
        try:
            with open(config_file, 'r') as f:
                self.data = json.load(f)
        except FileNotFoundError:
            self.data = {}
        self.data.setdefault('user', {})
        self.data.setdefault('remotes', {})

    def save(self):
        with locked(self.config_file):
            write_atomic(self.config_file, json.dumps(self.data, indent=2).encode())

    @property
    def author(self):
        return os.environ.get(AUTHOR_ENV) or self.data['user'].get('name') or DEFAULT_AUTHOR

    def set_author(self, name):
        self.data['user']['name'] = name
        self.save()

    def remote_url(self, name='origin'):
        url = self.data['remotes'].get(name)
        if url:
            return url
        return os.environ.get(REMOTE_URL_ENV, REMOTE_URL)

    def add_remote(self, name, url):
        self.data['remotes'][name] = url.rstrip('/')
        self.save()

    def remotes(self):
        return dict(self.data['remotes'])

    def _parts(self, key):
        parts = key.split('.')
        if len(parts) < 2 or not all(parts):
            raise InvalidConfigKey(key)
        return parts

    def get(self, key):
        """Value at a dotted ``section.name`` key, or None when unset."""
        node = self.data
        for part in self._parts(key):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def set(self, key, value):
        *sections, name = self._parts(key)
        node = self.data
        for part in sections:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise InvalidConfigKey(key, f"{part!r} holds a value, not a section")
        if isinstance(node.get(name), dict):
            raise InvalidConfigKey(key, "refusing to replace a whole section")
        node[name] = value
        self.save()

    def items(self):
        """Every set value as sorted ``(dotted key, value)`` pairs."""
        result = []
        stack = [('', self.data)]
        while stack:
            prefix, node = stack.pop()
            for name, value in node.items():
                key = f"{prefix}.{name}" if prefix else name
                if isinstance(value, dict):
                    stack.append((key, value))
                else:
                    result.append((key, value))
        return sorted(result)
