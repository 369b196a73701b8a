"""Pytest configuration and fixtures."""

import pytest

from consul_kv.backends.kv.memory import MemoryKVTransport
from consul_kv.config import QueryOptions, WriteOptions
from consul_kv.key_client import KeyClient


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "address": "consul.example.com:8501",
        "scheme": "https",
        "datacenter": "dc1",
        "token": "provider-token",
        "consistency": "stale",
        "timeout_seconds": 5,
        "tls": {"insecure_https": True},
    }


@pytest.fixture
def transport() -> MemoryKVTransport:
    """Create a memory KV transport."""
    return MemoryKVTransport()


@pytest.fixture
def key_client(transport) -> KeyClient:
    """Create a key client bound to dc1 over the memory transport."""
    return KeyClient(
        transport,
        QueryOptions(datacenter="dc1"),
        WriteOptions(datacenter="dc1"),
    )
