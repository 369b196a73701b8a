"""Consul HTTP KV transport.

Speaks the agent's /v1/kv/ endpoints over httpx:
- GET for single reads and recursive listings
- PUT for writes, with ?cas= for check-and-set
- DELETE for single keys, ?cas= guarded deletes and ?recurse subtrees
"""

import base64
import ssl
import time
from typing import Any
from urllib.parse import quote

import httpx

from consul_kv.config import ProviderConfig, QueryOptions, WriteOptions
from consul_kv.exceptions import ConsulAPIError, TransportError
from consul_kv.protocols import KVPair, QueryMeta, WriteMeta

TOKEN_HEADER = "X-Consul-Token"


def _ssl_context(config: ProviderConfig) -> ssl.SSLContext | bool:
    """Build the httpx verify argument from TLS settings."""
    tls = config.tls
    if not (tls.ca_file or tls.cert_file or tls.insecure_https):
        return True

    context = ssl.create_default_context(cafile=tls.ca_file)
    if tls.insecure_https:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if tls.cert_file:
        context.load_cert_chain(tls.cert_file, tls.key_file)
    return context


def decode_pair(data: dict[str, Any]) -> KVPair:
    """Decode one entry of a /v1/kv/ JSON response."""
    raw = data.get("Value")
    return KVPair(
        key=data["Key"],
        value=base64.b64decode(raw, validate=True) if raw is not None else None,
        flags=int(data.get("Flags") or 0),
        modify_index=int(data.get("ModifyIndex") or 0),
        create_index=int(data.get("CreateIndex") or 0),
        lock_index=int(data.get("LockIndex") or 0),
        session=data.get("Session") or None,
    )


class ConsulKVTransport:
    """KV transport backed by a Consul agent's HTTP API.

    The underlying httpx.Client is created once and reused for every call;
    it is safe to share between threads.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Agent address, TLS and auth settings
            client: Pre-built httpx client; takes precedence over config
        """
        self.config = config or ProviderConfig()
        if client is not None:
            self._client = client
            return

        auth = None
        if self.config.http_auth:
            user, password = self.config.http_auth.split(":", 1)
            auth = httpx.BasicAuth(user, password)

        self._client = httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            verify=_ssl_context(self.config),
            auth=auth,
            headers=self.config.headers,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> "ConsulKVTransport":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @staticmethod
    def _path(key: str) -> str:
        return "/v1/kv/" + quote(key.lstrip("/"), safe="/")

    @staticmethod
    def _params(options: QueryOptions | WriteOptions) -> dict[str, str]:
        params: dict[str, str] = {}
        if options.datacenter:
            params["dc"] = options.datacenter
        if options.namespace:
            params["ns"] = options.namespace
        if options.partition:
            params["partition"] = options.partition
        if isinstance(options, QueryOptions) and options.consistency != "default":
            params[options.consistency] = ""
        return params

    @staticmethod
    def _headers(options: QueryOptions | WriteOptions) -> dict[str, str]:
        if options.token:
            return {TOKEN_HEADER: options.token}
        return {}

    def _request(
        self,
        method: str,
        key: str,
        options: QueryOptions | WriteOptions,
        params: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> tuple[httpx.Response, float]:
        query = self._params(options)
        if params:
            query.update(params)
        started = time.perf_counter()
        try:
            response = self._client.request(
                method,
                self._path(key),
                params=query,
                headers=self._headers(options),
                content=content,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {self._path(key)}: {e}") from e
        return response, (time.perf_counter() - started) * 1000

    @staticmethod
    def _require_ok(response: httpx.Response) -> None:
        if response.status_code != 200:
            raise ConsulAPIError(response.status_code, response.text.strip())

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Malformed response from Consul: {e}") from e

    @staticmethod
    def _query_meta(response: httpx.Response, elapsed_ms: float) -> QueryMeta:
        headers = response.headers
        try:
            return QueryMeta(
                last_index=int(headers.get("X-Consul-Index", 0)),
                known_leader=headers.get("X-Consul-KnownLeader", "").lower() == "true",
                last_contact_ms=int(headers.get("X-Consul-LastContact", 0)),
                request_time_ms=elapsed_ms,
            )
        except ValueError as e:
            raise TransportError(f"Malformed response headers from Consul: {e}") from e

    @staticmethod
    def _decode_entries(data: Any) -> list[KVPair]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransportError(
                f"Malformed response from Consul: expected a list, got {type(data).__name__}"
            )
        try:
            return [decode_pair(entry) for entry in data]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed entry from Consul: {e!r}") from e

    def get(self, key: str, options: QueryOptions) -> tuple[KVPair | None, QueryMeta]:
        """Get a single entry. Returns None if not found."""
        response, elapsed_ms = self._request("GET", key, options)
        meta = self._query_meta(response, elapsed_ms)
        if response.status_code == 404:
            return None, meta
        self._require_ok(response)

        entries = self._decode_entries(self._json(response))
        return (entries[0] if entries else None), meta

    def list(self, prefix: str, options: QueryOptions) -> tuple[list[KVPair], QueryMeta]:
        """List entries under a prefix."""
        response, elapsed_ms = self._request("GET", prefix, options, params={"recurse": ""})
        meta = self._query_meta(response, elapsed_ms)
        if response.status_code == 404:
            return [], meta
        self._require_ok(response)

        return self._decode_entries(self._json(response)), meta

    def _put(self, pair: KVPair, options: WriteOptions, params: dict[str, str]) -> tuple[bool, WriteMeta]:
        if pair.flags:
            params["flags"] = str(pair.flags)
        response, elapsed_ms = self._request(
            "PUT", pair.key, options, params=params, content=pair.value or b""
        )
        self._require_ok(response)
        return self._json(response) is True, WriteMeta(request_time_ms=elapsed_ms)

    def put(self, pair: KVPair, options: WriteOptions) -> WriteMeta:
        """Write an entry unconditionally."""
        _, meta = self._put(pair, options, {})
        return meta

    def cas(self, pair: KVPair, options: WriteOptions) -> tuple[bool, WriteMeta]:
        """Write an entry only if its modify index matches."""
        return self._put(pair, options, {"cas": str(pair.modify_index)})

    def delete_cas(self, pair: KVPair, options: WriteOptions) -> tuple[bool, WriteMeta]:
        """Delete an entry only if its modify index matches."""
        response, elapsed_ms = self._request(
            "DELETE", pair.key, options, params={"cas": str(pair.modify_index)}
        )
        self._require_ok(response)
        return self._json(response) is True, WriteMeta(request_time_ms=elapsed_ms)

    def delete(self, key: str, options: WriteOptions) -> WriteMeta:
        """Delete a key."""
        response, elapsed_ms = self._request("DELETE", key, options)
        self._require_ok(response)
        return WriteMeta(request_time_ms=elapsed_ms)

    def delete_tree(self, prefix: str, options: WriteOptions) -> WriteMeta:
        """Delete every key under a prefix."""
        response, elapsed_ms = self._request("DELETE", prefix, options, params={"recurse": ""})
        self._require_ok(response)
        return WriteMeta(request_time_ms=elapsed_ms)
