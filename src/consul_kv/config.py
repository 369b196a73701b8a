"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from consul_kv.exceptions import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

CONSISTENCY_MODES = ("default", "stale", "consistent")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


def _env_bool(name: str) -> bool | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


class QueryOptions(BaseModel):
    """Options applied to every read."""

    model_config = ConfigDict(frozen=True)

    datacenter: str | None = None
    token: str | None = None
    namespace: str | None = None
    partition: str | None = None
    consistency: str = "default"  # default | stale | consistent


class WriteOptions(BaseModel):
    """Options applied to every write or delete."""

    model_config = ConfigDict(frozen=True)

    datacenter: str | None = None
    token: str | None = None
    namespace: str | None = None
    partition: str | None = None


class TLSConfig(BaseModel):
    """TLS settings for HTTPS agents."""

    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    insecure_https: bool = False

    @model_validator(mode="after")
    def _check_key_pair(self) -> "TLSConfig":
        if self.key_file and not self.cert_file:
            raise ValueError("key_file requires cert_file")
        return self


class ProviderConfig(BaseModel):
    """Connection and default request settings for a Consul agent."""

    address: str = "localhost:8500"
    scheme: str = "http"  # http | https
    datacenter: str | None = None  # None targets the agent's own datacenter
    token: str | None = None
    namespace: str | None = None
    partition: str | None = None
    consistency: str = "default"
    http_auth: str | None = None  # user:password
    timeout_seconds: float = 30.0
    headers: dict[str, str] = Field(default_factory=dict)
    tls: TLSConfig = Field(default_factory=TLSConfig)

    @field_validator("scheme")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if value not in ("http", "https"):
            raise ValueError(f"scheme must be 'http' or 'https', got {value!r}")
        return value

    @field_validator("consistency")
    @classmethod
    def _check_consistency(cls, value: str) -> str:
        if value not in CONSISTENCY_MODES:
            raise ValueError(f"consistency must be one of {', '.join(CONSISTENCY_MODES)}")
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be positive")
        return value

    @field_validator("http_auth")
    @classmethod
    def _check_http_auth(cls, value: str | None) -> str | None:
        if value is not None and ":" not in value:
            raise ValueError("http_auth must be in the form 'user:password'")
        return value

    @property
    def base_url(self) -> str:
        """Agent URL without a trailing slash."""
        address = self.address.rstrip("/")
        if "://" in address:
            return address
        return f"{self.scheme}://{address}"

    def query_options(
        self,
        datacenter: str | None = None,
        token: str | None = None,
    ) -> QueryOptions:
        """Build read options, letting per-resource values override defaults."""
        return QueryOptions(
            datacenter=datacenter or self.datacenter,
            token=token or self.token,
            namespace=self.namespace,
            partition=self.partition,
            consistency=self.consistency,
        )

    def write_options(
        self,
        datacenter: str | None = None,
        token: str | None = None,
    ) -> WriteOptions:
        """Build write options, letting per-resource values override defaults."""
        return WriteOptions(
            datacenter=datacenter or self.datacenter,
            token=token or self.token,
            namespace=self.namespace,
            partition=self.partition,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "ProviderConfig":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderConfig":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid Consul configuration: {e}") from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "ProviderConfig":
        """Load configuration from the standard CONSUL_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        data: dict[str, Any] = {}
        tls: dict[str, Any] = {}

        address = os.environ.get("CONSUL_HTTP_ADDR")
        if address:
            if address.startswith("https://"):
                data["scheme"] = "https"
            data["address"] = address.split("://", 1)[-1]
        if _env_bool("CONSUL_HTTP_SSL"):
            data["scheme"] = "https"

        env_fields = {
            "CONSUL_HTTP_TOKEN": "token",
            "CONSUL_HTTP_AUTH": "http_auth",
            "CONSUL_DATACENTER": "datacenter",
            "CONSUL_NAMESPACE": "namespace",
            "CONSUL_PARTITION": "partition",
        }
        for env_name, field_name in env_fields.items():
            value = os.environ.get(env_name)
            if value:
                data[field_name] = value

        tls_fields = {
            "CONSUL_CACERT": "ca_file",
            "CONSUL_CLIENT_CERT": "cert_file",
            "CONSUL_CLIENT_KEY": "key_file",
        }
        for env_name, field_name in tls_fields.items():
            value = os.environ.get(env_name)
            if value:
                tls[field_name] = value
        if _env_bool("CONSUL_HTTP_SSL_VERIFY") is False:
            tls["insecure_https"] = True
        if tls:
            data["tls"] = tls

        data.update(overrides)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid Consul configuration: {e}") from e
