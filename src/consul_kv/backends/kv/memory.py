"""In-memory Consul-style key-value transport."""

import threading
from dataclasses import replace
from typing import Any

from consul_kv.config import QueryOptions, WriteOptions
from consul_kv.protocols import KVPair, QueryMeta, WriteMeta


class MemoryKVTransport:
    """In-memory KV transport with Consul's indexing and CAS rules.

    Suitable for development and testing. Data is lost on restart.
    Each datacenter gets its own keyspace; the modify index is a single
    counter bumped on every mutation.
    """

    def __init__(self, **kwargs: Any) -> None:
        """Initialize memory KV transport.

        Args:
            **kwargs: Ignored (for compatibility with other transports)
        """
        self._data: dict[str | None, dict[str, KVPair]] = {}
        self._index = 0
        self._failure: Exception | None = None
        self._lock = threading.Lock()

    def _space(self, datacenter: str | None) -> dict[str, KVPair]:
        return self._data.setdefault(datacenter, {})

    def _check_failure(self) -> None:
        if self._failure is not None:
            raise self._failure

    def _query_meta(self) -> QueryMeta:
        return QueryMeta(last_index=self._index, known_leader=True)

    def _write(self, space: dict[str, KVPair], pair: KVPair) -> None:
        self._index += 1
        existing = space.get(pair.key)
        space[pair.key] = KVPair(
            key=pair.key,
            value=pair.value,
            flags=pair.flags,
            modify_index=self._index,
            create_index=existing.create_index if existing else self._index,
        )

    def get(self, key: str, options: QueryOptions) -> tuple[KVPair | None, QueryMeta]:
        """Get a single entry."""
        with self._lock:
            self._check_failure()
            pair = self._space(options.datacenter).get(key)
            return (replace(pair) if pair else None), self._query_meta()

    def list(self, prefix: str, options: QueryOptions) -> tuple[list[KVPair], QueryMeta]:
        """List entries under a prefix, ordered by key."""
        with self._lock:
            self._check_failure()
            space = self._space(options.datacenter)
            pairs = [replace(space[k]) for k in sorted(space) if k.startswith(prefix)]
            return pairs, self._query_meta()

    def put(self, pair: KVPair, options: WriteOptions) -> WriteMeta:
        """Write an entry unconditionally."""
        with self._lock:
            self._check_failure()
            self._write(self._space(options.datacenter), pair)
            return WriteMeta()

    def cas(self, pair: KVPair, options: WriteOptions) -> tuple[bool, WriteMeta]:
        """Write an entry if its index still matches."""
        with self._lock:
            self._check_failure()
            space = self._space(options.datacenter)
            existing = space.get(pair.key)
            if pair.modify_index == 0:
                applied = existing is None
            else:
                applied = existing is not None and existing.modify_index == pair.modify_index
            if applied:
                self._write(space, pair)
            return applied, WriteMeta()

    def delete_cas(self, pair: KVPair, options: WriteOptions) -> tuple[bool, WriteMeta]:
        """Delete an entry if its index still matches."""
        with self._lock:
            self._check_failure()
            space = self._space(options.datacenter)
            existing = space.get(pair.key)
            # An absent key has nothing to guard, so the delete counts as applied
            if existing is None:
                return True, WriteMeta()
            if existing.modify_index != pair.modify_index:
                return False, WriteMeta()
            self._index += 1
            del space[pair.key]
            return True, WriteMeta()

    def delete(self, key: str, options: WriteOptions) -> WriteMeta:
        """Delete a key."""
        with self._lock:
            self._check_failure()
            if self._space(options.datacenter).pop(key, None) is not None:
                self._index += 1
            return WriteMeta()

    def delete_tree(self, prefix: str, options: WriteOptions) -> WriteMeta:
        """Delete every key under a prefix."""
        with self._lock:
            self._check_failure()
            space = self._space(options.datacenter)
            doomed = [k for k in space if k.startswith(prefix)]
            for k in doomed:
                del space[k]
            if doomed:
                self._index += 1
            return WriteMeta()

    def fail_with(self, error: Exception) -> None:
        """Make every following call raise error. Useful for testing."""
        with self._lock:
            self._failure = error

    def clear_failure(self) -> None:
        """Stop injecting failures."""
        with self._lock:
            self._failure = None

    def clear(self) -> None:
        """Clear all data. Useful for testing."""
        with self._lock:
            self._data.clear()
