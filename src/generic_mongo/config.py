"""
# Configuration Management Module

Configuration for the generic MongoDB data-access layer, built on **Pydantic Settings**.

## Loading Hierarchy

Higher layers override lower layers:

1. **Environment variables** (highest priority)
2. **`GENERIC_MONGO_CONFIG_PATH`**: explicit config file path
3. **`.env.local`** in the project root
4. **`.env`** in the project root
5. **Defaults** declared on `Settings` (lowest priority)

If no configuration file is found the module falls back to environment-only mode.

## Connection Pool

The pool parameters are fixed constants and are **not** configurable per call or per
environment:

- `MONGODB_MAX_POOL_SIZE` = 10
- `MONGODB_MIN_POOL_SIZE` = 5
- `MONGODB_MAX_IDLE_TIME_MS` = 30000
- `MONGODB_CONNECT_TIMEOUT_MS` = 5000

## Usage

```python
from generic_mongo.config import settings

uri = settings.MONGODB_URI
```

Note:
    An empty `MONGODB_URI` is accepted at import time. The `DatabaseManager` checks it
    when a connection is first requested and raises `ConfigurationError` before any
    network I/O.
"""

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
LOCAL_ENV_FILENAME: str = ".env.local"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "GENERIC_MONGO_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent

MONGODB_MAX_POOL_SIZE: int = 10
MONGODB_MIN_POOL_SIZE: int = 5
MONGODB_MAX_IDLE_TIME_MS: int = 30000
MONGODB_CONNECT_TIMEOUT_MS: int = 5000


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    1.  **Environment Variable**: `GENERIC_MONGO_CONFIG_PATH` (if set and the file exists).
    2.  **Local Config**: `.env.local` in the project root.
    3.  **Dotenv Config**: `.env` in the project root.
    4.  **Fallback**: `None`, triggering environment-variable-only mode.

    Returns:
        Optional[str]: The absolute path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    local_path: Path = PROJECT_ROOT / LOCAL_ENV_FILENAME
    if local_path.exists():
        return str(local_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Configuration Groups:**
    *   **MongoDB**: Connection URI and optional database name.
    *   **Redis**: Side key-value store used to mirror bookkeeping counters.
    *   **Logging**: Level and optional log file.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # MongoDB configuration
    MONGODB_URI: str = ""
    MONGODB_DATABASE: Optional[str] = None
    # Release memoized connections when the last in-flight operation finishes
    MONGODB_CLOSE_ON_IDLE: bool = True

    # Redis configuration (bookkeeping side store)
    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "127.0.0.1"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[SecretStr] = None
    BOOKKEEPING_SIDE_STORE_ENABLED: bool = False

    # Logging configuration
    LOG_LEVEL: str = "DEBUG"
    LOG_FILE: Optional[str] = None

    @field_validator("MONGODB_URI", mode="before")
    @classmethod
    def strip_uri(cls, v: Any) -> Any:
        """Normalize the URI so that whitespace-only values count as missing."""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: Any, info: Any) -> str:
        """
        Validates that the log level is one the logging module understands.

        Raises:
            ValueError: If the level name is unknown.
        """
        level = str(v).upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"{info.field_name} must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG")
        return level

    @property
    def redis_url(self) -> str:
        """
        Effective Redis URL.

        Precedence: explicit `REDIS_URL`, then a URL built from host/port/db and the
        optional password.
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        creds = ""
        if self.REDIS_PASSWORD:
            creds = f":{self.REDIS_PASSWORD.get_secret_value()}@"
        return f"redis://{creds}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Global settings instance
settings: Settings = Settings()
