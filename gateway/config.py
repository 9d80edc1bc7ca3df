"""
Gateway configuration - YAML file, environment variables and defaults.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import yaml
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gateway.errors import ConfigError
from gateway.logging import get_logger

logger = get_logger(__name__)


class GatewayConfig(BaseSettings):
    bind: str = "0.0.0.0:8000"
    tls_cert: Optional[Path] = None
    tls_key: Optional[Path] = None
    api_key: Optional[str] = None
    debug: bool = False
    # Outbound client timeouts in seconds
    timeout: int = 360
    connect_timeout: int = 5
    # TCP keepalive for the outbound client, also the inbound keep-alive interval
    tcp_keepalive: Optional[int] = 90
    upstream_url: str = "https://api.openai.com"
    upstream_api_key: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("bind")
    @classmethod
    def _check_bind(cls, value: str) -> str:
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit() or int(port) > 65535:
            raise ValueError(f"bind must look like host:port, got {value!r}")
        return value

    @field_validator("api_key")
    @classmethod
    def _check_api_key(cls, value: Optional[str]) -> Optional[str]:
        # An empty key could never be presented as a bearer token
        if value is not None and not value.strip():
            raise ValueError("api_key must not be empty; omit it to disable authentication")
        return value

    @property
    def host(self) -> str:
        host = self.bind.rpartition(":")[0]
        # [::1]:8000 style IPv6 literal
        return host.strip("[]")

    @property
    def port(self) -> int:
        return int(self.bind.rpartition(":")[2])

    def tls_files(self) -> Optional[Tuple[Path, Path]]:
        """Return (cert, key) when both are configured, otherwise None."""
        if self.tls_cert is not None and self.tls_key is not None:
            return self.tls_cert, self.tls_key
        return None


def load_config(path: str | Path) -> GatewayConfig:
    """
    Load the gateway configuration from a YAML file.

    A missing file is not an error: the defaults (plus any GATEWAY_*
    environment overrides) are used instead.

    Raises:
        ConfigError: If the file is not valid YAML, is not a mapping,
                     or holds invalid values
    """
    path = Path(path)
    if not path.is_file():
        logger.info(f"Config file {path} not found, using defaults")
        return GatewayConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        config = GatewayConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e

    logger.info(f"Loaded config from {path}")
    return config
