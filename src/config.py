"""
Configuration module for the Integration Controller.

Loads configuration from environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("memory", "postgres")


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "integration_controller"
    user: str = "controller"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 5
    max_pool_size: int = 20

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "integration_controller"),
            user=os.getenv("DB_USER", "controller"),
            password=os.getenv("DB_PASSWORD", ""),
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "5")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "20")),
        )


@dataclass
class ControllerConfig:
    """Reconciliation controller configuration."""

    check_interval: float = 60  # seconds until the follow-up check
    shutdown_timeout: float = 10  # seconds to wait for in-flight work
    event_queue_size: int = 256

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            check_interval=float(os.getenv("CHECK_INTERVAL", "60")),
            shutdown_timeout=float(os.getenv("SHUTDOWN_TIMEOUT", "10")),
            event_queue_size=int(os.getenv("EVENT_QUEUE_SIZE", "256")),
        )


@dataclass
class StoreConfig:
    """Which resource store to run against."""

    backend: str = "memory"
    seed_file: Optional[str] = None

    def __post_init__(self):
        if self.backend not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown store backend '{self.backend}'. "
                f"Expected one of: {', '.join(STORE_BACKENDS)}"
            )

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            backend=os.getenv("STORE_BACKEND", "memory").lower(),
            seed_file=os.getenv("STORE_SEED_FILE") or None,
        )


@dataclass
class BackendConfig:
    """Names of the backends to load and their configuration."""

    provisioning: str = ""
    source_control: str = ""
    project_generator: str = ""

    # Backend-specific configurations keyed by backend name
    backend_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        backend_configs = {}
        if os.getenv("BACKEND_CONFIGS"):
            try:
                backend_configs = json.loads(os.getenv("BACKEND_CONFIGS"))
            except json.JSONDecodeError:
                logger.warning("Ignoring BACKEND_CONFIGS: not valid JSON")

        return cls(
            provisioning=os.getenv("PROVISIONING_BACKEND", ""),
            source_control=os.getenv("SOURCE_CONTROL_BACKEND", ""),
            project_generator=os.getenv("PROJECT_GENERATOR", ""),
            backend_configs=backend_configs,
        )

    def get_backend_config(self, name: str) -> Dict[str, Any]:
        """Get configuration for a specific backend."""
        return dict(self.backend_configs.get(name, {}))


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig
    controller: ControllerConfig
    store: StoreConfig
    backends: BackendConfig

    def __post_init__(self):
        if self.store.backend == "postgres" and not self.database.password:
            raise ValueError(
                "DB_PASSWORD environment variable must be set when "
                "STORE_BACKEND is postgres."
            )

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            controller=ControllerConfig.from_env(),
            store=StoreConfig.from_env(),
            backends=BackendConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            database=DatabaseConfig(),
            controller=ControllerConfig(),
            store=StoreConfig(),
            backends=BackendConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
