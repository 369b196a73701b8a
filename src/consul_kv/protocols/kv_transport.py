"""KVTransport protocol for Consul-compatible key-value backends."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from consul_kv.config import QueryOptions, WriteOptions


@dataclass
class KVPair:
    """A single key/value entry as stored by Consul."""

    key: str
    value: bytes | None = None
    flags: int = 0
    modify_index: int = 0
    create_index: int = 0
    lock_index: int = 0
    session: str | None = None


@dataclass
class QueryMeta:
    """Metadata returned alongside a read."""

    last_index: int = 0
    known_leader: bool = False
    last_contact_ms: int = 0
    request_time_ms: float = 0.0


@dataclass
class WriteMeta:
    """Metadata returned alongside a write."""

    request_time_ms: float = 0.0


@runtime_checkable
class KVTransport(Protocol):
    """Protocol for the KV API a KeyClient drives.

    Implementations raise TransportError (or a subclass) when the call
    itself fails. A missing key is never a failure.
    """

    def get(self, key: str, options: "QueryOptions") -> tuple[KVPair | None, QueryMeta]:
        """Get a single entry. Returns None if the key does not exist."""
        ...

    def list(self, prefix: str, options: "QueryOptions") -> tuple[list[KVPair], QueryMeta]:
        """List every entry whose key starts with prefix."""
        ...

    def put(self, pair: KVPair, options: "WriteOptions") -> WriteMeta:
        """Write an entry unconditionally."""
        ...

    def cas(self, pair: KVPair, options: "WriteOptions") -> tuple[bool, WriteMeta]:
        """Write an entry only if pair.modify_index matches the stored index."""
        ...

    def delete_cas(self, pair: KVPair, options: "WriteOptions") -> tuple[bool, WriteMeta]:
        """Delete an entry only if pair.modify_index matches the stored index."""
        ...

    def delete(self, key: str, options: "WriteOptions") -> WriteMeta:
        """Delete a single key. No-op if the key doesn't exist."""
        ...

    def delete_tree(self, prefix: str, options: "WriteOptions") -> WriteMeta:
        """Delete every key starting with prefix."""
        ...
