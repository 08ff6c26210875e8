import os
import fnmatch

REPO_DIR = ".py_kit"
IGNORE_FILE = ".py_kitignore"
ALWAYS_IGNORED = [REPO_DIR + '/', '.git/']


def load_ignores(root):
    patterns = list(ALWAYS_IGNORED)
    try:
        with open(os.path.join(root, IGNORE_FILE), 'r') as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                patterns.append(line)
    except FileNotFoundError:
        pass
    return patterns


def is_ignored(path, ignores):
    """Match a relative path against ignore patterns; directories end with '/'."""
    norm = path.replace(os.sep, '/')
    is_dir = norm.endswith('/')
    norm = norm.rstrip('/')
    name = norm.rsplit('/', 1)[-1]
    for pattern in ignores:
        if pattern.endswith('/'):
            base = pattern.rstrip('/')
            if (is_dir and norm == base) or norm.startswith(base + '/'):
                return True
            if is_dir and fnmatch.fnmatch(name, base):
                return True
        elif fnmatch.fnmatch(norm, pattern) or fnmatch.fnmatch(name, pattern):
            return True

    return False


class WorkTree:
    """Reads and writes files of the working directory by repository-relative path."""

    def __init__(self, root):
        self.root = os.path.abspath(root)

    def abspath(self, rel_path):
        return os.path.join(self.root, *rel_path.split('/'))

    def relpath(self, path):
        rel_path = os.path.relpath(os.path.abspath(path), self.root)
        return rel_path.replace(os.sep, '/')

    def ignores(self):
        return load_ignores(self.root)

    def iter_files(self, start=None, ignores=None):
        if ignores is None:
            ignores = self.ignores()

        start = os.path.abspath(start or self.root)
        for dirpath, dirnames, filenames in os.walk(start):
            rel_dir = os.path.relpath(dirpath, self.root).replace(os.sep, '/')
            if rel_dir == '.':
                rel_dir = ''
            dirnames[:] = sorted(
                d for d in dirnames
                if not is_ignored(f"{rel_dir}/{d}/" if rel_dir else f"{d}/", ignores)
            )
            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if is_ignored(rel_path, ignores):
                    continue
                yield rel_path

    def exists(self, rel_path):
        return os.path.isfile(self.abspath(rel_path))

    def read(self, rel_path):
        with open(self.abspath(rel_path), 'rb') as f:
            return f.read()

    def mtime(self, rel_path):
        return os.stat(self.abspath(rel_path)).st_mtime_ns

    def size(self, rel_path):
        return os.stat(self.abspath(rel_path)).st_size

    def write(self, rel_path, data):
        path = self.abspath(rel_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(data)
        return os.stat(path).st_mtime_ns

    def remove(self, rel_path):
        path = self.abspath(rel_path)
        if not os.path.isfile(path):
            return False
        os.remove(path)
        # prune directories left empty, stopping at the root
        parent = os.path.dirname(path)
        while parent != self.root and not os.listdir(parent):
            os.rmdir(parent)
            parent = os.path.dirname(parent)
        return True
