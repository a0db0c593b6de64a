# config.py
"""
Runtime configuration.

Values are read once from the environment (a local .env is honoured through
python-dotenv). The live configuration is an immutable Settings snapshot held
by a ConfigStore; the only way to change it is ConfigStore.update(), which
builds a new snapshot and swaps it in under a lock. Request handlers grab a
snapshot at the start of a request and use it for the whole request.
"""
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from url_utils import DEFAULT_BASE_URL, normalize_base_url

load_dotenv()

logger = logging.getLogger(__name__)

# Public relays, tried in this order. "{url}" is replaced with the
# percent-encoded target URL.
DEFAULT_PROXY_ENDPOINTS: Tuple[str, ...] = (
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?url={url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
)

ENV_VARS = (
    "DRAKORKITA_URL",
    "FETCH_TIMEOUT_MS",
    "FETCH_MAX_RETRIES",
    "FETCH_RETRY_DELAY_MS",
    "FETCH_PROXY_DELAY_MS",
    "FETCH_DIRECT_ENABLED",
    "FETCH_PROXY_ENABLED",
    "FETCH_PROXY_ENDPOINTS",
    "RESOLVE_DEADLINE_MS",
)


@dataclass(frozen=True)
class FetchConfig:
    timeout_ms: int = 20000
    max_retries: int = 3
    retry_delay_ms: int = 1000
    direct_enabled: bool = True
    proxy_enabled: bool = True
    proxy_endpoints: Tuple[str, ...] = DEFAULT_PROXY_ENDPOINTS
    proxy_delay_ms: int = 500

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.retry_delay_ms < 0 or self.proxy_delay_ms < 0:
            raise ValueError("delays cannot be negative")
        for template in self.proxy_endpoints:
            if "{url}" not in template:
                raise ValueError(f"Proxy endpoint {template!r} has no {{url}} placeholder")

    def to_dict(self) -> dict:
        return {
            "timeout_ms": self.timeout_ms,
            "max_retries": self.max_retries,
            "retry_delay_ms": self.retry_delay_ms,
            "direct_enabled": self.direct_enabled,
            "proxy_enabled": self.proxy_enabled,
            "proxy_endpoints": list(self.proxy_endpoints),
            "proxy_delay_ms": self.proxy_delay_ms,
        }


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    resolve_deadline_ms: int = 90000
    fetch: FetchConfig = field(default_factory=FetchConfig)

    def to_dict(self) -> dict:
        return {
            "base_url": self.base_url,
            "resolve_deadline_ms": self.resolve_deadline_ms,
            **self.fetch.to_dict(),
        }


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        number = int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default
    if number < minimum:
        logger.warning(f"Ignoring {name}={number}, must be at least {minimum}; using {default}")
        return default
    return number


def _env_proxies(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    templates = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        if "{url}" not in item:
            logger.warning(f"Ignoring proxy endpoint {item!r} in {name}, it has no {{url}} placeholder")
            continue
        templates.append(item)
    return tuple(templates)


def env_overrides() -> List[str]:
    """Names of the configuration variables set in the environment."""
    return [name for name in ENV_VARS if os.getenv(name)]


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    fetch = FetchConfig(
        timeout_ms=_env_int("FETCH_TIMEOUT_MS", 20000, minimum=1),
        max_retries=_env_int("FETCH_MAX_RETRIES", 3, minimum=1),
        retry_delay_ms=_env_int("FETCH_RETRY_DELAY_MS", 1000),
        direct_enabled=_env_bool("FETCH_DIRECT_ENABLED", True),
        proxy_enabled=_env_bool("FETCH_PROXY_ENABLED", True),
        proxy_endpoints=_env_proxies("FETCH_PROXY_ENDPOINTS", DEFAULT_PROXY_ENDPOINTS),
        proxy_delay_ms=_env_int("FETCH_PROXY_DELAY_MS", 500),
    )
    settings = Settings(
        base_url=normalize_base_url(os.getenv("DRAKORKITA_URL", "")),
        resolve_deadline_ms=_env_int("RESOLVE_DEADLINE_MS", 90000, minimum=1),
        fetch=fetch,
    )
    logger.info(f"Upstream base URL: {settings.base_url}")
    return settings


_FETCH_FIELDS = set(FetchConfig.__dataclass_fields__)


class ConfigStore:
    """Guarded reference to the current Settings snapshot."""

    def __init__(self, settings: Optional[Settings] = None):
        self._lock = threading.Lock()
        self._settings = settings or Settings()

    def snapshot(self) -> Settings:
        return self._settings

    def update(self, **changes) -> Settings:
        """
        Apply a partial update and swap in the new snapshot.

        Keys may be any FetchConfig field, `base_url` or `resolve_deadline_ms`.
        Raises ValueError for unknown keys or invalid values; on error the
        current snapshot is left untouched.
        """
        unknown = set(changes) - _FETCH_FIELDS - {"base_url", "resolve_deadline_ms"}
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        if "proxy_endpoints" in changes and changes["proxy_endpoints"] is not None:
            changes["proxy_endpoints"] = tuple(changes["proxy_endpoints"])
        if "base_url" in changes:
            changes["base_url"] = normalize_base_url(changes["base_url"])
        if changes.get("resolve_deadline_ms") is not None and changes["resolve_deadline_ms"] <= 0:
            raise ValueError("resolve_deadline_ms must be positive")

        with self._lock:
            current = self._settings
            fetch_changes = {k: v for k, v in changes.items() if k in _FETCH_FIELDS}
            top_changes = {k: v for k, v in changes.items() if k not in _FETCH_FIELDS}
            updated = replace(current, fetch=replace(current.fetch, **fetch_changes), **top_changes)
            self._settings = updated

        logger.info(f"Configuration updated: {', '.join(sorted(changes)) or 'no changes'}")
        return updated


config_store = ConfigStore(load_settings())
