"""Configuration management for Sitch."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sitch.errors import ConfigError, PersistenceError
from sitch.store import Store, StoreType, create_store, lock_path


DEFAULT_CONFIG_PATH = "~/.sitch/config.json"
DEFAULT_DATA_PATH = "~/.sitch/data"
DEFAULT_DB_PATH = "~/.sitch/sitch.db"

# Environment variables that take precedence over stored credentials
CREDENTIAL_ENV_VARS = {
    "youtube": "YOUTUBE_API_KEY",
}


@dataclass
class Config:
    """Settings read from ~/.sitch/config.json."""

    store_type: StoreType = StoreType.FILE
    store_path: str = DEFAULT_DATA_PATH
    credentials: dict[str, str] = field(default_factory=dict)

    # Aggregation
    max_workers: int = 8
    fetch_timeout: float = 30.0
    lock_timeout: float = 10.0
    notify_wait: float = 60.0

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, path: str = DEFAULT_CONFIG_PATH) -> "Config":
        """Load config from a JSON file, or return defaults if not found.

        Raises:
            ConfigError: If the file exists but can't be parsed.
        """
        config_path = Path(path).expanduser()

        if not config_path.exists():
            return cls()

        try:
            data = json.loads(config_path.read_text())
            store_type = StoreType(data.get("store_type", "file"))
            default_path = DEFAULT_DB_PATH if store_type == StoreType.SQLITE else DEFAULT_DATA_PATH
            config = cls(
                store_type=store_type,
                store_path=data.get("store_path", default_path),
                credentials=dict(data.get("credentials", {})),
                max_workers=int(data.get("max_workers", 8)),
                fetch_timeout=float(data.get("fetch_timeout", 30.0)),
                lock_timeout=float(data.get("lock_timeout", 10.0)),
                notify_wait=float(data.get("notify_wait", 60.0)),
                extra=data.get("extra", {}),
            )
        except OSError as e:
            raise ConfigError(f"Couldn't read config file {config_path}: {e}") from e
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Malformed config file {config_path}: {e}") from e

        if config.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {config.max_workers}")
        return config

    def save(self, path: str = DEFAULT_CONFIG_PATH) -> None:
        """Write the config back, creating its directory if needed."""
        config_path = Path(path).expanduser()

        data = {
            "store_type": self.store_type.value,
            "store_path": self.store_path,
            "credentials": self.credentials,
            "max_workers": self.max_workers,
            "fetch_timeout": self.fetch_timeout,
            "lock_timeout": self.lock_timeout,
            "notify_wait": self.notify_wait,
            "extra": self.extra,
        }
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise PersistenceError(f"Couldn't write config file {config_path}: {e}") from e

    def credential(self, provider: str) -> str | None:
        """Get a provider credential. The environment wins over the config file."""
        env_var = CREDENTIAL_ENV_VARS.get(provider)
        if env_var and os.environ.get(env_var):
            return os.environ[env_var]
        return self.credentials.get(provider)

    def resolved_credentials(self) -> dict[str, str]:
        providers = set(self.credentials) | set(CREDENTIAL_ENV_VARS)
        return {p: key for p in providers if (key := self.credential(p))}

    @property
    def lock_path(self) -> Path:
        return lock_path(self.store_type, self.store_path)

    def create_store(self) -> Store:
        """Open the configured store."""
        return create_store(self.store_type, self.store_path)
