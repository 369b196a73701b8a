"""Consul KV exceptions."""


class ConsulKVError(Exception):
    """Base exception for consul-kv."""

    pass


class ConfigError(ConsulKVError):
    """Configuration error."""

    pass


class TransportError(ConsulKVError):
    """The request never produced a usable response (network, TLS, timeout)."""

    pass


class ConsulAPIError(TransportError):
    """Consul answered with an unexpected HTTP status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Unexpected response code: {status_code} ({body})")


class KeyOperationError(ConsulKVError):
    """A key operation failed against the remote store.

    Carries the attempted operation, the key or prefix, the target
    datacenter and the underlying cause so callers can inspect the
    failure without parsing the message.
    """

    def __init__(
        self,
        operation: str,
        key: str,
        datacenter: str | None,
        cause: BaseException,
    ) -> None:
        self.operation = operation
        self.key = key
        self.datacenter = datacenter
        self.cause = cause
        super().__init__(
            f"failed to {operation} '{key}' in {datacenter or 'default datacenter'}: {cause}"
        )


class RemoteReadError(KeyOperationError):
    """Reading or listing keys failed."""

    pass


class RemoteWriteError(KeyOperationError):
    """Writing or deleting keys failed."""

    pass
