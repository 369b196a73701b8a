"""Key client specialized for resource-style manipulation of the Consul KV store."""

from typing import Any

from consul_kv.backends.kv.consul_http import ConsulKVTransport
from consul_kv.config import ProviderConfig, QueryOptions, WriteOptions
from consul_kv.exceptions import RemoteReadError, RemoteWriteError, TransportError
from consul_kv.observability import get_logger
from consul_kv.protocols import KVPair, KVTransport

logger = get_logger(__name__)


class KeyClient:
    """Wrapper around a KV transport bound to one pair of read/write options.

    Every method is a single round trip. A missing key is never an error:
    reads return zero values and deletes are no-ops. Check-and-set
    rejections come back as False rather than raising.
    """

    def __init__(
        self,
        transport: KVTransport,
        query_options: QueryOptions,
        write_options: WriteOptions,
    ) -> None:
        """Initialize key client.

        Args:
            transport: KV transport (HTTP or in-memory)
            query_options: Options applied to every read
            write_options: Options applied to every write and delete
        """
        self.transport = transport
        self.query_options = query_options
        self.write_options = write_options

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        datacenter: str | None = None,
        token: str | None = None,
    ) -> "KeyClient":
        """Create a client talking HTTP to the agent described by config.

        The client owns its HTTP connection pool; close it, or use it as a
        context manager, once the resource operation is done.

        Args:
            config: Provider-level connection settings
            datacenter: Resource-level datacenter override
            token: Resource-level ACL token override
        """
        return cls(
            ConsulKVTransport(config),
            config.query_options(datacenter=datacenter, token=token),
            config.write_options(datacenter=datacenter, token=token),
        )

    def close(self) -> None:
        """Release the transport's connections, if it holds any."""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "KeyClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get_entry(self, path: str) -> KVPair | None:
        """Fetch the entry at path, or None if the key does not exist."""
        datacenter = self.query_options.datacenter
        logger.debug(
            f"Reading key '{path}' in {datacenter}",
            context={"key": path, "datacenter": datacenter},
        )
        try:
            pair, _ = self.transport.get(path, self.query_options)
        except TransportError as e:
            raise RemoteReadError("read Consul key", path, datacenter, e) from e
        return pair

    def get(self, path: str) -> tuple[str, int, int]:
        """Fetch the entry at path.

        Returns:
            Tuple of (value, flags, modify_index); ("", 0, 0) if the key
            does not exist
        """
        pair = self.get_entry(path)
        if pair is None:
            return "", 0, 0
        value = pair.value.decode("utf-8", errors="replace") if pair.value is not None else ""
        return value, pair.flags, pair.modify_index

    def get_under_prefix(self, path_prefix: str) -> list[KVPair]:
        """List every entry whose key starts with path_prefix."""
        datacenter = self.query_options.datacenter
        logger.debug(
            f"Listing keys under '{path_prefix}' in {datacenter}",
            context={"prefix": path_prefix, "datacenter": datacenter},
        )
        try:
            pairs, _ = self.transport.list(path_prefix, self.query_options)
        except TransportError as e:
            raise RemoteReadError(
                "list Consul keys under prefix", path_prefix, datacenter, e
            ) from e
        return pairs

    def put(self, path: str, value: str, flags: int = 0) -> None:
        """Write value and flags to path, creating or overwriting the key."""
        datacenter = self.write_options.datacenter
        logger.debug(
            f"Setting key '{path}' in {datacenter}",
            context={"key": path, "datacenter": datacenter},
        )
        pair = KVPair(key=path, value=value.encode("utf-8"), flags=flags)
        try:
            self.transport.put(pair, self.write_options)
        except TransportError as e:
            raise RemoteWriteError("write Consul key", path, datacenter, e) from e

    def cas(self, path: str, value: str, flags: int, cas: int) -> bool:
        """Write value and flags to path only if its modify index equals cas.

        A cas of 0 only succeeds when the key does not exist yet.

        Returns:
            True if the write was applied, False if the index did not match
        """
        datacenter = self.write_options.datacenter
        logger.debug(
            f"Setting key '{path}' with cas {cas} in {datacenter}",
            context={"key": path, "cas": cas, "datacenter": datacenter},
        )
        pair = KVPair(key=path, value=value.encode("utf-8"), flags=flags, modify_index=cas)
        try:
            written, _ = self.transport.cas(pair, self.write_options)
        except TransportError as e:
            raise RemoteWriteError("write Consul key", path, datacenter, e) from e
        return written

    def delete_cas(self, path: str, cas: int) -> bool:
        """Delete path only if its modify index equals cas.

        Returns:
            True if the delete was applied, False if the index did not match
        """
        datacenter = self.write_options.datacenter
        logger.debug(
            f"Deleting key '{path}' in {datacenter} with cas {cas}",
            context={"key": path, "cas": cas, "datacenter": datacenter},
        )
        pair = KVPair(key=path, modify_index=cas)
        try:
            written, _ = self.transport.delete_cas(pair, self.write_options)
        except TransportError as e:
            raise RemoteWriteError("delete Consul key", path, datacenter, e) from e
        return written

    def delete(self, path: str) -> None:
        """Delete the key at path. Deleting a missing key is a no-op."""
        datacenter = self.write_options.datacenter
        logger.debug(
            f"Deleting key '{path}' in {datacenter}",
            context={"key": path, "datacenter": datacenter},
        )
        try:
            self.transport.delete(path, self.write_options)
        except TransportError as e:
            raise RemoteWriteError("delete Consul key", path, datacenter, e) from e

    def delete_under_prefix(self, path_prefix: str) -> None:
        """Delete every key starting with path_prefix."""
        datacenter = self.write_options.datacenter
        logger.debug(
            f"Deleting all keys under prefix '{path_prefix}' in {datacenter}",
            context={"prefix": path_prefix, "datacenter": datacenter},
        )
        try:
            self.transport.delete_tree(path_prefix, self.write_options)
        except TransportError as e:
            raise RemoteWriteError(
                "delete Consul keys under", path_prefix, datacenter, e
            ) from e
