"""Application configuration.

Process-wide settings are loaded from environment variables using
pydantic-settings. The default keys shipped with a build (`MF_WSFT_KEY`,
`BMKG_KEY`, ...) are read once and never written back.

User-supplied keys live in a separate, per-source key/value store
(`SourceConfigStore`), so that a user key can be compared against the
build default.

## Optional Environment Variables

- USER_AGENT: User-Agent sent to sources that do not impose their own
- LANGUAGE: Preferred response language (default: en)
- REQUEST_TIMEOUT: Timeout of a single HTTP request in seconds (default: 15)
- CALL_TIMEOUT: Timeout of one dispatched call, retries included (default: 45)
- MF_WSFT_KEY: Météo-France static API key
- MF_WSFT_JWT_KEY: Météo-France HMAC key used to mint JWT tokens
- BMKG_KEY: BMKG API key (needed for warnings only)

## Example .env file

```
MF_WSFT_KEY=your-meteo-france-key
MF_WSFT_JWT_KEY=your-meteo-france-signing-key-at-least-32-bytes
BMKG_KEY=your-bmkg-key
LANGUAGE=fr
```
"""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_version: str = "0.1.0"

    # HTTP
    user_agent: str = Field(
        default="weather-aggregator/0.1.0",
        description="User-Agent for sources without a mandated one",
    )
    language: str = Field(default="en", description="Preferred response language")
    request_timeout: float = Field(default=15.0, gt=0)
    call_timeout: float = Field(default=45.0, gt=0)

    # Source keys (build defaults)
    mf_wsft_key: str = ""
    mf_wsft_jwt_key: str = ""
    bmkg_key: str = ""


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are loaded once and cached. To reload, clear the cache:
    ```python
    get_settings.cache_clear()
    ```
    """
    return Settings()


def current_language_code() -> str:
    """Language code used to pick the response language of a source."""
    return get_settings().language.lower()


class ConfigBackend(Protocol):
    """Raw string key/value storage behind `SourceConfigStore`."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryConfigBackend:
    """In-process backend, used by default and in tests."""

    def __init__(self, values: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class SourceConfigStore:
    """Key/value configuration scoped to one source id.

    Keys are stored as `<source_id>.<key>` in the shared backend.
    """

    def __init__(self, source_id: str, backend: ConfigBackend | None = None):
        self.source_id = source_id
        self._backend = backend if backend is not None else MemoryConfigBackend()

    def _scoped(self, key: str) -> str:
        return f"{self.source_id}.{key}"

    def get(self, key: str) -> str | None:
        return self._backend.get(self._scoped(key))

    def set(self, key: str, value: str) -> None:
        self._backend.set(self._scoped(key), value)
