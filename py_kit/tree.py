from collections import namedtuple

from py_kit.errors import InvalidPath, UnexpectedKind, CorruptObject

BLOB_MODE = '100644'
TREE_MODE = '040000'

TreeEntry = namedtuple('TreeEntry', ['mode', 'obj_type', 'digest', 'name'])


def split_path(path):
    parts = path.split('/')
    if (not path or path.startswith('/') or '\n' in path
            or any(p in ('', '.', '..') for p in parts)):
        raise InvalidPath(f"Invalid repository path: {path!r}")
    return parts


def serialize_tree(entries):
    lines = [
        f"{e.mode} {e.obj_type} {e.digest} {e.name}"
        for e in sorted(entries, key=lambda e: e.name)
    ]
    content = "\n".join(lines) + ("\n" if lines else "")
    return content.encode()


def parse_tree(digest, data):
    entries = []
    for line in data.decode().split('\n'):
        if not line:
            continue
        try:
            mode, obj_type, entry_digest, name = line.split(' ', 3)
        except ValueError:
            raise CorruptObject(digest, f"bad tree entry {line!r}") from None
        entries.append(TreeEntry(mode, obj_type, entry_digest, name))
    return entries


def read_tree(store, digest):
    obj_type, data = store.get(digest)
    if obj_type != 'tree':
        raise UnexpectedKind(digest, 'tree', obj_type)
    return parse_tree(digest, data)


def _nest(mapping):
    root = {}
    for path, digest in mapping.items():
        parts = split_path(path)
        current = root
        for part in parts[:-1]:
            current = current.setdefault(part, {})
            if not isinstance(current, dict):
                raise InvalidPath(f"{path!r} is nested under a file")
        if isinstance(current.get(parts[-1]), dict):
            raise InvalidPath(f"{path!r} is both a file and a directory")
        current[parts[-1]] = digest
    return root


def build_tree(store, mapping):
    """Write the tree objects for a flat ``{path: blob_digest}`` mapping.

    Subtrees are written before their parents, using an explicit stack so
    deep directory structures do not hit the recursion limit.
    Returns the root tree digest.
    """
    root = _nest(mapping)
    written = {}
    stack = [(root, False)]
    while stack:
        node, children_done = stack.pop()
        if not children_done:
            stack.append((node, True))
            for child in node.values():
                if isinstance(child, dict):
                    stack.append((child, False))
            continue
        entries = []
        for name, child in node.items():
            if isinstance(child, dict):
                entries.append(TreeEntry(TREE_MODE, 'tree', written[id(child)], name))
            else:
                entries.append(TreeEntry(BLOB_MODE, 'blob', child, name))
        written[id(node)] = store.put('tree', serialize_tree(entries))
    return written[id(root)]


def flatten_tree(store, digest):
    result = {}
    queue = [('', digest)]
    while queue:
        prefix, tree_digest = queue.pop()
        for entry in read_tree(store, tree_digest):
            full_path = f"{prefix}/{entry.name}" if prefix else entry.name
            if entry.obj_type == 'tree':
                queue.append((full_path, entry.digest))
            else:
                result[full_path] = entry.digest
    return result
