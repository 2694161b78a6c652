"""On-disk embedding cache for the evaluation harness.

One table keyed by the SHA-256 hex of the model tag and text. Embeddings
are stored as little-endian float32 blobs so the file is portable across
architectures.
"""

from __future__ import annotations

import hashlib
import os
import sqlite3
import struct
import threading
import time
from collections.abc import Iterable, Sequence
from pathlib import Path

_SCHEMA = """
CREATE TABLE IF NOT EXISTS embed_cache (
    key        TEXT PRIMARY KEY,
    emb        BLOB NOT NULL,
    created_ts INTEGER NOT NULL
)
"""

# Stay well under SQLite's bound-parameter limit.
_LOOKUP_BATCH = 500


class Cache:
    """A persistent map from cache key to embedding vector."""

    def __init__(self, path=None) -> None:
        path = Path(path) if path is not None else cache_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        with self._conn:
            self._conn.execute(_SCHEMA)

    def __enter__(self) -> Cache:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def get_many(self, keys: Sequence[str]) -> dict[str, list[float]]:
        """Embeddings for the keys present; missing keys are simply absent."""
        out: dict[str, list[float]] = {}
        keys = list(keys)
        with self._lock:
            for start in range(0, len(keys), _LOOKUP_BATCH):
                batch = keys[start:start + _LOOKUP_BATCH]
                placeholders = ",".join("?" * len(batch))
                rows = self._conn.execute(
                    f"SELECT key, emb FROM embed_cache WHERE key IN ({placeholders})",
                    batch,
                )
                for key, blob in rows:
                    out[key] = bytes_to_f32_vec(blob)
        return out

    def put_many(self, entries: Iterable[tuple[str, Sequence[float]]]) -> None:
        """Store embeddings; keys already present keep their old value."""
        now = int(time.time())
        rows = [(key, f32_vec_to_bytes(emb), now) for key, emb in entries]
        if not rows:
            return
        with self._lock, self._conn:
            self._conn.executemany(
                "INSERT OR IGNORE INTO embed_cache(key, emb, created_ts) VALUES (?, ?, ?)",
                rows,
            )

    def count(self) -> int:
        """Number of stored entries."""
        with self._lock:
            (n,) = self._conn.execute("SELECT COUNT(*) FROM embed_cache").fetchone()
        return n

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def hash_text(text: str, model_tag: str) -> str:
    """Cache key for ``text``, namespaced by the embedding model's tag."""
    h = hashlib.sha256()
    h.update(model_tag.encode("utf-8"))
    h.update(b":")
    h.update(text.encode("utf-8"))
    return h.hexdigest()


def cache_path() -> Path:
    """``$MEMORIZE_EVAL_CACHE`` if set, else ``~/.memorize/eval-cache.db``."""
    override = os.environ.get("MEMORIZE_EVAL_CACHE")
    if override:
        return Path(override)
    home = os.environ.get("HOME", ".")
    return Path(home) / ".memorize" / "eval-cache.db"


def f32_vec_to_bytes(values: Sequence[float]) -> bytes:
    """Pack floats as little-endian float32, four bytes each."""
    return struct.pack(f"<{len(values)}f", *values)


def bytes_to_f32_vec(data: bytes) -> list[float]:
    """Inverse of :func:`f32_vec_to_bytes`."""
    if len(data) % 4 != 0:
        raise ValueError(f"cache blob length {len(data)} is not a multiple of 4")
    return list(struct.unpack(f"<{len(data) // 4}f", data))