"""Tests for the Consul HTTP KV transport."""

import base64
import json
import ssl

import certifi
import httpx
import pytest

from consul_kv.backends.kv.consul_http import ConsulKVTransport, _ssl_context, decode_pair
from consul_kv.config import ProviderConfig, QueryOptions, TLSConfig, WriteOptions
from consul_kv.exceptions import ConsulAPIError, RemoteReadError, TransportError
from consul_kv.key_client import KeyClient
from consul_kv.protocols import KVPair


class FakeConsul:
    """Minimal stand-in for a Consul agent's /v1/kv/ endpoints."""

    def __init__(self) -> None:
        self.entries: dict[str, dict] = {}
        self.index = 0
        self.requests: list[httpx.Request] = []

    def _entry(self, key: str) -> dict:
        raw = self.entries[key]
        return {
            "Key": key,
            "Value": base64.b64encode(raw["value"]).decode() if raw["value"] else None,
            "Flags": raw["flags"],
            "ModifyIndex": raw["modify_index"],
            "CreateIndex": raw["create_index"],
            "LockIndex": 0,
        }

    def _json(self, data) -> httpx.Response:
        return httpx.Response(
            200,
            json=data,
            headers={"X-Consul-Index": str(self.index), "X-Consul-KnownLeader": "true"},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = request.url.path.removeprefix("/v1/kv/")
        params = request.url.params
        recurse = "recurse" in params

        if request.method == "GET":
            if recurse:
                keys = sorted(k for k in self.entries if k.startswith(key))
                if not keys:
                    return httpx.Response(404, headers={"X-Consul-Index": str(self.index)})
                return self._json([self._entry(k) for k in keys])
            if key not in self.entries:
                return httpx.Response(404, headers={"X-Consul-Index": str(self.index)})
            return self._json([self._entry(key)])

        if request.method == "PUT":
            existing = self.entries.get(key)
            if "cas" in params:
                cas = int(params["cas"])
                current = existing["modify_index"] if existing else 0
                if cas != current:
                    return self._json(False)
            self.index += 1
            self.entries[key] = {
                "value": request.content,
                "flags": int(params.get("flags", 0)),
                "modify_index": self.index,
                "create_index": existing["create_index"] if existing else self.index,
            }
            return self._json(True)

        if request.method == "DELETE":
            if recurse:
                for k in [k for k in self.entries if k.startswith(key)]:
                    del self.entries[k]
                return self._json(True)
            if "cas" in params and key in self.entries:
                if int(params["cas"]) != self.entries[key]["modify_index"]:
                    return self._json(False)
            self.entries.pop(key, None)
            self.index += 1
            return self._json(True)

        return httpx.Response(405)


@pytest.fixture
def fake_consul() -> FakeConsul:
    return FakeConsul()


@pytest.fixture
def http_transport(fake_consul):
    client = httpx.Client(
        transport=httpx.MockTransport(fake_consul.handler),
        base_url="http://consul.test:8500",
    )
    with ConsulKVTransport(client=client) as transport:
        yield transport


def _transport_for(handler) -> ConsulKVTransport:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://consul.test")
    return ConsulKVTransport(client=client)


class TestDecodePair:
    """Tests for wire decoding."""

    def test_decodes_base64_value(self) -> None:
        pair = decode_pair({
            "Key": "app/config",
            "Value": base64.b64encode(b"v1").decode(),
            "Flags": 7,
            "ModifyIndex": 12,
            "CreateIndex": 10,
            "LockIndex": 1,
            "Session": "abc",
        })
        assert pair == KVPair(
            key="app/config",
            value=b"v1",
            flags=7,
            modify_index=12,
            create_index=10,
            lock_index=1,
            session="abc",
        )

    def test_null_value(self) -> None:
        pair = decode_pair({"Key": "app/dir/", "Value": None, "Flags": 0, "ModifyIndex": 3})
        assert pair.value is None
        assert pair.session is None


class TestRequests:
    """Tests for request construction."""

    def test_query_options_become_params_and_header(self, fake_consul, http_transport) -> None:
        options = QueryOptions(
            datacenter="dc2",
            token="secret",
            namespace="team",
            partition="part",
            consistency="stale",
        )
        http_transport.get("app/config", options)

        request = fake_consul.requests[-1]
        assert request.method == "GET"
        assert request.url.path == "/v1/kv/app/config"
        assert request.url.params["dc"] == "dc2"
        assert request.url.params["ns"] == "team"
        assert request.url.params["partition"] == "part"
        assert "stale" in request.url.params
        assert request.headers["X-Consul-Token"] == "secret"

    def test_default_options_send_no_extras(self, fake_consul, http_transport) -> None:
        http_transport.get("app/config", QueryOptions())

        request = fake_consul.requests[-1]
        assert dict(request.url.params) == {}
        assert "X-Consul-Token" not in request.headers

    def test_put_sends_raw_body_and_flags(self, fake_consul, http_transport) -> None:
        http_transport.put(KVPair(key="app/config", value=b"v1", flags=9), WriteOptions(datacenter="dc1"))

        request = fake_consul.requests[-1]
        assert request.method == "PUT"
        assert request.content == b"v1"
        assert request.url.params["flags"] == "9"
        assert request.url.params["dc"] == "dc1"

    def test_cas_sends_index(self, fake_consul, http_transport) -> None:
        http_transport.cas(KVPair(key="app/config", value=b"v1", modify_index=0), WriteOptions())
        assert fake_consul.requests[-1].url.params["cas"] == "0"

    def test_recursive_calls(self, fake_consul, http_transport) -> None:
        http_transport.list("app/", QueryOptions())
        assert "recurse" in fake_consul.requests[-1].url.params

        http_transport.delete_tree("app/", WriteOptions())
        assert fake_consul.requests[-1].method == "DELETE"
        assert "recurse" in fake_consul.requests[-1].url.params

    def test_key_is_quoted_and_leading_slash_stripped(self, fake_consul, http_transport) -> None:
        http_transport.get("/app/with space", QueryOptions())
        assert fake_consul.requests[-1].url.raw_path.startswith(b"/v1/kv/app/with%20space")


class TestResponses:
    """Tests for response handling."""

    def test_missing_key(self, http_transport) -> None:
        pair, meta = http_transport.get("missing", QueryOptions())
        assert pair is None
        assert meta.last_index == 0

    def test_missing_prefix(self, http_transport) -> None:
        pairs, _ = http_transport.list("missing/", QueryOptions())
        assert pairs == []

    def test_query_meta(self, http_transport) -> None:
        http_transport.put(KVPair(key="k", value=b"v"), WriteOptions())
        _, meta = http_transport.get("k", QueryOptions())

        assert meta.last_index == 1
        assert meta.known_leader is True

    def test_cas_rejection(self, http_transport) -> None:
        http_transport.put(KVPair(key="k", value=b"v"), WriteOptions())
        applied, _ = http_transport.cas(KVPair(key="k", value=b"v2", modify_index=99), WriteOptions())
        assert applied is False

    def test_error_status_raises_api_error(self) -> None:
        transport = _transport_for(lambda request: httpx.Response(403, text="Permission denied"))

        with pytest.raises(ConsulAPIError) as exc_info:
            transport.get("app/config", QueryOptions())

        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "Unexpected response code: 403 (Permission denied)"

    def test_404_on_write_is_an_error(self) -> None:
        transport = _transport_for(lambda request: httpx.Response(404, text="not found"))

        with pytest.raises(ConsulAPIError):
            transport.delete("app/config", WriteOptions())

    def test_network_error_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = _transport_for(handler)

        with pytest.raises(TransportError, match="connection refused") as exc_info:
            transport.put(KVPair(key="k", value=b"v"), WriteOptions())
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_malformed_body(self) -> None:
        transport = _transport_for(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(TransportError, match="Malformed"):
            transport.get("k", QueryOptions())


class TestKeyClientOverHTTP:
    """The optimistic concurrency sequence against the HTTP transport."""

    def test_scenario(self, http_transport) -> None:
        client = KeyClient(http_transport, QueryOptions(datacenter="dc1"), WriteOptions(datacenter="dc1"))

        client.put("app/config", "v1", 0)
        value, _, m1 = client.get("app/config")
        assert value == "v1"

        assert client.cas("app/config", "v2", 0, m1) is True
        value, _, m2 = client.get("app/config")
        assert value == "v2"
        assert m2 != m1

        assert client.cas("app/config", "v3", 0, m1) is False

        assert client.delete_cas("app/config", m2) is True
        assert client.get("app/config") == ("", 0, 0)

    def test_listing_and_subtree_delete(self, http_transport) -> None:
        client = KeyClient(http_transport, QueryOptions(), WriteOptions())
        client.put("app/a", "1")
        client.put("app/b", "2")
        client.put("apple", "3")

        assert [p.key for p in client.get_under_prefix("app/")] == ["app/a", "app/b"]

        client.delete_under_prefix("app/")
        assert client.get_under_prefix("app/") == []
        assert client.get("apple")[0] == "3"


class TestClientConstruction:
    """Tests for building the httpx client from configuration."""

    def test_base_url_from_config(self) -> None:
        transport = ConsulKVTransport(ProviderConfig(address="consul.internal:8501", scheme="https"))
        try:
            base_url = transport._client.base_url
            assert base_url.scheme == "https"
            assert base_url.host == "consul.internal"
            assert base_url.port == 8501
        finally:
            transport.close()

    def test_basic_auth(self) -> None:
        transport = ConsulKVTransport(ProviderConfig(http_auth="user:pa:ss"))
        try:
            assert isinstance(transport._client.auth, httpx.BasicAuth)
        finally:
            transport.close()

    def test_headers_forwarded(self) -> None:
        transport = ConsulKVTransport(ProviderConfig(headers={"X-Custom": "yes"}))
        try:
            assert transport._client.headers["X-Custom"] == "yes"
        finally:
            transport.close()


class TestMalformedResponses:
    """Garbage from the agent surfaces as TransportError, never a raw exception."""

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json=[{"Key": "k", "Value": "not base64!"}]),
            httpx.Response(200, json=[{"Value": None, "Flags": 0}]),
            httpx.Response(200, json=[{"Key": "k", "Flags": "many"}]),
            httpx.Response(200, json={"Key": "k"}),
            httpx.Response(200, json=["k"]),
            httpx.Response(200, json=[], headers={"X-Consul-Index": "abc"}),
            httpx.Response(404, headers={"X-Consul-LastContact": "soon"}),
        ],
    )
    def test_get_wraps_malformed_response(self, response) -> None:
        transport = _transport_for(lambda request: response)

        with pytest.raises(TransportError, match="Malformed"):
            transport.get("k", QueryOptions())

    def test_list_wraps_malformed_entry(self) -> None:
        transport = _transport_for(
            lambda request: httpx.Response(200, json=[{"Key": "a"}, {"Value": "eA=="}])
        )

        with pytest.raises(TransportError, match="Malformed"):
            transport.list("", QueryOptions())

    def test_key_client_reports_read_error(self) -> None:
        """A malformed read reaches callers as RemoteReadError."""
        transport = _transport_for(
            lambda request: httpx.Response(200, json=[], headers={"X-Consul-Index": "abc"})
        )
        client = KeyClient(transport, QueryOptions(datacenter="dc1"), WriteOptions(datacenter="dc1"))

        with pytest.raises(RemoteReadError) as exc_info:
            client.get("app/config")
        assert isinstance(exc_info.value.cause, TransportError)

    def test_null_body_is_empty(self) -> None:
        transport = _transport_for(lambda request: httpx.Response(200, json=None))

        assert transport.get("k", QueryOptions())[0] is None
        assert transport.list("k", QueryOptions())[0] == []


class TestRequestTiming:
    """Meta timing is measured around the call, for preloaded responses too."""

    def test_query_meta_timing(self, http_transport) -> None:
        _, meta = http_transport.get("missing", QueryOptions())
        assert meta.request_time_ms >= 0

    def test_write_meta_timing(self, http_transport) -> None:
        meta = http_transport.put(KVPair(key="k", value=b"v"), WriteOptions())
        assert meta.request_time_ms >= 0

        applied, meta = http_transport.delete_cas(KVPair(key="k", modify_index=1), WriteOptions())
        assert applied is True
        assert meta.request_time_ms >= 0


class TestSSLContext:
    """Tests for building the TLS verify argument."""

    def test_default_verifies_with_system_store(self) -> None:
        assert _ssl_context(ProviderConfig()) is True

    def test_insecure_https(self) -> None:
        context = _ssl_context(ProviderConfig(tls=TLSConfig(insecure_https=True)))

        assert isinstance(context, ssl.SSLContext)
        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE

    def test_ca_file_keeps_verification(self) -> None:
        context = _ssl_context(ProviderConfig(tls=TLSConfig(ca_file=certifi.where())))

        assert isinstance(context, ssl.SSLContext)
        assert context.check_hostname is True
        assert context.verify_mode == ssl.CERT_REQUIRED

    def test_missing_ca_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            _ssl_context(ProviderConfig(tls=TLSConfig(ca_file=str(tmp_path / "missing.pem"))))

    def test_client_certificate_loaded(self, monkeypatch) -> None:
        loaded = []
        monkeypatch.setattr(
            ssl.SSLContext,
            "load_cert_chain",
            lambda self, certfile, keyfile=None: loaded.append((certfile, keyfile)),
        )

        context = _ssl_context(
            ProviderConfig(tls=TLSConfig(cert_file="client.pem", key_file="client-key.pem"))
        )

        assert isinstance(context, ssl.SSLContext)
        assert loaded == [("client.pem", "client-key.pem")]

    def test_transport_uses_context(self) -> None:
        transport = ConsulKVTransport(
            ProviderConfig(scheme="https", tls=TLSConfig(insecure_https=True))
        )
        try:
            assert transport._client.base_url.scheme == "https"
        finally:
            transport.close()
