from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from advanced_cache.domain.constraints import STORAGE_KEY_PATTERN


def get_env_int(
    env_name: str,
    default_value: int,
    *,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    raw_value = os.getenv(env_name)
    if raw_value is None:
        value = default_value
    else:
        try:
            value = int(raw_value)
        except ValueError as exc:
            raise ValueError(
                f"{env_name} must be an integer, got {raw_value!r}"
            ) from exc

    if min_value is not None and value < min_value:
        raise ValueError(f"{env_name} must be >= {min_value}, got {value}")
    if max_value is not None and value > max_value:
        raise ValueError(f"{env_name} must be <= {max_value}, got {value}")
    return value


def get_env_bool(env_name: str, default_value: bool) -> bool:
    raw_value = os.getenv(env_name)
    if raw_value is None:
        return default_value

    normalized = raw_value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False

    raise ValueError(f"{env_name} must be a boolean, got {raw_value!r}")


class CacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_size: int = Field(default=100, ge=1)
    default_ttl: int = Field(default=5 * 60 * 1000, ge=0)
    enable_lru: bool = True
    enable_persistence: bool = False
    persistence_key: str = Field(default="app-cache", pattern=STORAGE_KEY_PATTERN)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_size: int = Field(ge=1)
    default_ttl_ms: int = Field(ge=0)
    enable_lru: bool
    enable_persistence: bool
    persistence_key: str = Field(pattern=STORAGE_KEY_PATTERN)
    storage_dir: str
    host: str
    port: int = Field(ge=1, le=65535)
    log_level: str
    log_format: str
    tls_enabled: bool
    tls_cert_path: str | None
    tls_key_path: str | None
    tls_require_client_auth: bool
    tls_client_ca_path: str | None

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            max_size=self.max_size,
            default_ttl=self.default_ttl_ms,
            enable_lru=self.enable_lru,
            enable_persistence=self.enable_persistence,
            persistence_key=self.persistence_key,
        )


def load_settings() -> Settings:
    return Settings(
        max_size=get_env_int("CACHE_MAX_SIZE", 100, min_value=1),
        default_ttl_ms=get_env_int("CACHE_DEFAULT_TTL_MS", 5 * 60 * 1000, min_value=0),
        enable_lru=get_env_bool("CACHE_ENABLE_LRU", True),
        enable_persistence=get_env_bool("CACHE_ENABLE_PERSISTENCE", False),
        persistence_key=os.getenv("CACHE_PERSISTENCE_KEY", "app-cache"),
        storage_dir=os.getenv("CACHE_STORAGE_DIR", ".cache-storage"),
        host=os.getenv("CACHE_HOST", "0.0.0.0"),
        port=get_env_int("CACHE_PORT", 8080, min_value=1, max_value=65535),
        log_level=os.getenv("CACHE_LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("CACHE_LOG_FORMAT", "text"),
        tls_enabled=get_env_bool("CACHE_TLS_ENABLED", False),
        tls_cert_path=os.getenv("CACHE_TLS_CERT_PATH"),
        tls_key_path=os.getenv("CACHE_TLS_KEY_PATH"),
        tls_require_client_auth=get_env_bool("CACHE_TLS_REQUIRE_CLIENT_AUTH", False),
        tls_client_ca_path=os.getenv("CACHE_TLS_CLIENT_CA_PATH"),
    )
