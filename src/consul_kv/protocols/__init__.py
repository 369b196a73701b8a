"""Protocol interfaces for pluggable KV transports."""

from consul_kv.protocols.kv_transport import KVPair, KVTransport, QueryMeta, WriteMeta

__all__ = [
    "KVPair",
    "KVTransport",
    "QueryMeta",
    "WriteMeta",
]
