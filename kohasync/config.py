"""Configuration loading for kohasync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8888
    allowed_origin: str = "*"


@dataclass
class StoreConfig:
    """Configuration for the record store."""

    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "~/.kohasync/sync.db"
    namespace: str = "koha-sync"


@dataclass
class ClientConfig:
    """Configuration for device-side sync commands."""

    server_url: str = ""
    max_retries: int = 3
    timeout_seconds: float = 30.0


@dataclass
class InferenceConfig:
    """Configuration for remote inference endpoints.

    Endpoints are tried in order until one answers.
    """

    token: str | None = None
    timeout_seconds: float = 60.0
    endpoints: list[str] = field(default_factory=list)


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with KOHASYNC_ prefix."""
    return os.environ.get(f"KOHASYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)
    if origin := _get_env("SERVER_ALLOWED_ORIGIN"):
        config.server.allowed_origin = origin

    # Store overrides
    if backend := _get_env("STORE_BACKEND"):
        config.store.backend = backend
    if db_path := _get_env("STORE_DB_PATH"):
        config.store.db_path = db_path
    if namespace := _get_env("STORE_NAMESPACE"):
        config.store.namespace = namespace

    # Client overrides
    if server_url := _get_env("CLIENT_SERVER_URL"):
        config.client.server_url = server_url
    if retries := _get_env("CLIENT_MAX_RETRIES"):
        config.client.max_retries = int(retries)
    if timeout := _get_env("CLIENT_TIMEOUT"):
        config.client.timeout_seconds = float(timeout)

    # Inference token: the provider's conventional variable is honoured too
    if token := _get_env("INFERENCE_TOKEN", os.environ.get("HF_TOKEN")):
        config.inference.token = token
    if endpoints := _get_env("INFERENCE_ENDPOINTS"):
        config.inference.endpoints = [e.strip() for e in endpoints.split(",") if e.strip()]

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                    allowed_origin=server_data.get(
                        "allowed_origin", config.server.allowed_origin
                    ),
                )

            # Parse store config
            if "store" in data:
                store_data = data["store"]
                config.store = StoreConfig(
                    backend=store_data.get("backend", config.store.backend),
                    db_path=store_data.get("db_path", config.store.db_path),
                    namespace=store_data.get("namespace", config.store.namespace),
                )

            # Parse client config
            if "client" in data:
                client_data = data["client"]
                config.client = ClientConfig(
                    server_url=client_data.get("server_url", config.client.server_url),
                    max_retries=client_data.get(
                        "max_retries", config.client.max_retries
                    ),
                    timeout_seconds=client_data.get(
                        "timeout_seconds", config.client.timeout_seconds
                    ),
                )

            # Parse inference config
            if "inference" in data:
                inference_data = data["inference"]
                config.inference = InferenceConfig(
                    token=inference_data.get("token"),
                    timeout_seconds=inference_data.get(
                        "timeout_seconds", config.inference.timeout_seconds
                    ),
                    endpoints=inference_data.get("endpoints", []),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
