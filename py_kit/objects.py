import os
import re
import hashlib
import zlib

from loguru import logger

from py_kit.errors import ObjectNotFound, CorruptObject
from py_kit.lockfile import write_atomic

OBJECT_TYPES = ('blob', 'tree', 'commit')
DIGEST_LENGTH = 64
DIGEST_RE = re.compile(r'^[0-9a-f]{64}$')


def frame_object(obj_type, data):
    header = f"{obj_type} {len(data)}\0".encode()
    return header + data


def hash_object(obj_type, data):
    """Digest of an object without storing it."""
    return hashlib.sha256(frame_object(obj_type, data)).hexdigest()


def parse_object(digest, full_data):
    null_index = full_data.find(b'\0')
    if null_index < 0:
        raise CorruptObject(digest, "missing header terminator")
    try:
        header = full_data[:null_index].decode()
        obj_type, size = header.split(' ')
        size = int(size)
    except ValueError:
        raise CorruptObject(digest, "malformed header") from None
    if obj_type not in OBJECT_TYPES:
        raise CorruptObject(digest, f"unknown object type {obj_type!r}")
    body = full_data[null_index + 1:]
    if len(body) != size:
        raise CorruptObject(digest, f"declared size {size}, found {len(body)}")
    return obj_type, body


class ObjectStore:
    """Content-addressed store of zlib-compressed objects, sharded by digest prefix."""

    def __init__(self, objects_dir):
        self.objects_dir = objects_dir

    def _path(self, digest):
        return os.path.join(self.objects_dir, digest[:2], digest[2:])

    def exists(self, digest):
        return os.path.isfile(self._path(digest))

    def put(self, obj_type, data):
        if obj_type not in OBJECT_TYPES:
            raise ValueError(f"Unknown object type: {obj_type}")
        full_data = frame_object(obj_type, data)
        digest = hashlib.sha256(full_data).hexdigest()

        path = self._path(digest)
        if not os.path.exists(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            write_atomic(path, zlib.compress(full_data))
            logger.bind(size=len(data)).debug(f"Stored {obj_type} {digest[:8]}")
        return digest

    def get(self, digest):
        raw = self.read_raw(digest)
        try:
            full_data = zlib.decompress(raw)
        except zlib.error as e:
            raise CorruptObject(digest, f"decompression failed ({e})") from None
        return parse_object(digest, full_data)

    def read_raw(self, digest):
        path = self._path(digest)
        if not DIGEST_RE.match(digest) or not os.path.isfile(path):
            raise ObjectNotFound(digest)
        with open(path, 'rb') as f:
            return f.read()

    def write_raw(self, digest, raw):
        """Store compressed bytes received from elsewhere after verifying them."""
        try:
            full_data = zlib.decompress(raw)
        except zlib.error as e:
            raise CorruptObject(digest, f"decompression failed ({e})") from None
        parse_object(digest, full_data)
        actual = hashlib.sha256(full_data).hexdigest()
        if actual != digest:
            raise CorruptObject(digest, f"content hashes to {actual}")

        path = self._path(digest)
        if os.path.exists(path):
            return False
        os.makedirs(os.path.dirname(path), exist_ok=True)
        write_atomic(path, raw)
        return True

    def __iter__(self):
        if not os.path.isdir(self.objects_dir):
            return
        for dir_prefix in sorted(os.listdir(self.objects_dir)):
            dir_path = os.path.join(self.objects_dir, dir_prefix)
            if len(dir_prefix) != 2 or not os.path.isdir(dir_path):
                continue
            for file_name in sorted(os.listdir(dir_path)):
                digest = dir_prefix + file_name
                if DIGEST_RE.match(digest):
                    yield digest

    def expand_prefix(self, prefix):
        """Full digest for an abbreviated hex prefix, or None when absent or ambiguous."""
        if len(prefix) < 2:
            return None
        dir_path = os.path.join(self.objects_dir, prefix[:2])
        if not os.path.isdir(dir_path):
            return None
        matches = [prefix[:2] + name for name in os.listdir(dir_path)
                   if name.startswith(prefix[2:]) and not name.startswith('.')
                   and '.tmp.' not in name]
        if len(matches) != 1:
            return None
        return matches[0]
