# catalog_sync/config.py
import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationMissing
from .stores import Store


@dataclass(frozen=True)
class StoreConfig:
    store: Store
    domain: Optional[str]
    token: Optional[str]
    secret: Optional[str]
    location_id: Optional[str] = None

    @property
    def name(self) -> str:
        return self.store.value


@dataclass(frozen=True)
class Settings:
    store_a: StoreConfig
    store_b: StoreConfig
    base_url: Optional[str] = None
    api_version: str = "2023-10"
    database_url: str = "sqlite:///catalog_sync.db"
    retry_attempts: int = 3
    bulk_delay_sec: float = 0.5
    dedupe_ttl_sec: int = 60 * 60
    dedupe_max_entries: int = 10_000

    def store(self, store: Store) -> StoreConfig:
        return self.store_a if store is Store.STORE_A else self.store_b


def _store_from_env(store: Store, suffix: str) -> StoreConfig:
    return StoreConfig(
        store=store,
        domain=os.getenv(f"STORE_{suffix}_DOMAIN"),
        token=os.getenv(f"STORE_{suffix}_ACCESS_TOKEN"),
        secret=os.getenv(f"WEBHOOK_SECRET_{suffix}"),
        location_id=os.getenv(f"STORE_{suffix}_PRIMARY_LOCATION_ID"),
    )


def load_settings() -> Settings:
    return Settings(
        store_a=_store_from_env(Store.STORE_A, "A"),
        store_b=_store_from_env(Store.STORE_B, "B"),
        base_url=(os.getenv("WEBHOOK_BASE_URL") or "").rstrip("/") or None,
        api_version=os.getenv("API_VERSION", "2023-10"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///catalog_sync.db"),
        retry_attempts=int(os.getenv("SYNC_RETRY_ATTEMPTS", "3")),
        bulk_delay_sec=float(os.getenv("BULK_DELAY_SEC", "0.5")),
        dedupe_ttl_sec=int(os.getenv("DEDUPE_TTL_SEC", str(60 * 60))),
        dedupe_max_entries=int(os.getenv("DEDUPE_MAX_ENTRIES", "10000")),
    )


# env var name -> (settings accessor, is secret)
REQUIRED_ENV = {
    "WEBHOOK_BASE_URL": (lambda s: s.base_url, False),
    "STORE_A_DOMAIN": (lambda s: s.store_a.domain, False),
    "STORE_A_ACCESS_TOKEN": (lambda s: s.store_a.token, True),
    "STORE_B_DOMAIN": (lambda s: s.store_b.domain, False),
    "STORE_B_ACCESS_TOKEN": (lambda s: s.store_b.token, True),
    "WEBHOOK_SECRET_A": (lambda s: s.store_a.secret, True),
    "WEBHOOK_SECRET_B": (lambda s: s.store_b.secret, True),
}


def missing_config(settings: Settings, names=None) -> list[str]:
    names = names or REQUIRED_ENV.keys()
    return [n for n in names if not REQUIRED_ENV[n][0](settings)]


def validate_config(settings: Settings) -> list[str]:
    """Human readable problems, empty when the configuration is usable."""
    errors = []
    if not settings.base_url:
        errors.append("WEBHOOK_BASE_URL environment variable is required")
    for cfg, letter in ((settings.store_a, "A"), (settings.store_b, "B")):
        if not (cfg.domain and cfg.token):
            errors.append(f"Store {letter} configuration is incomplete")
        if not cfg.secret:
            errors.append(f"WEBHOOK_SECRET_{letter} environment variable is required")
    return errors


def require_config(settings: Settings, names=None) -> None:
    missing = missing_config(settings, names)
    if missing:
        raise ConfigurationMissing(missing)
