"""Consul KV - A key client for resource-style manipulation of the Consul KV store."""

from consul_kv.backends.kv.consul_http import ConsulKVTransport
from consul_kv.backends.kv.memory import MemoryKVTransport
from consul_kv.config import ProviderConfig, QueryOptions, TLSConfig, WriteOptions
from consul_kv.exceptions import (
    ConfigError,
    ConsulAPIError,
    ConsulKVError,
    KeyOperationError,
    RemoteReadError,
    RemoteWriteError,
    TransportError,
)
from consul_kv.key_client import KeyClient
from consul_kv.observability import LogLevel, configure_logging, get_logger
from consul_kv.protocols import KVPair, KVTransport, QueryMeta, WriteMeta

__version__ = "0.1.0"
__all__ = [
    # Core
    "KeyClient",
    "KVPair",
    "KVTransport",
    "QueryMeta",
    "WriteMeta",
    # Transports
    "ConsulKVTransport",
    "MemoryKVTransport",
    # Config
    "ProviderConfig",
    "QueryOptions",
    "TLSConfig",
    "WriteOptions",
    # Errors
    "ConfigError",
    "ConsulAPIError",
    "ConsulKVError",
    "KeyOperationError",
    "RemoteReadError",
    "RemoteWriteError",
    "TransportError",
    # Observability
    "LogLevel",
    "configure_logging",
    "get_logger",
]
