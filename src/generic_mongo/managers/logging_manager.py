"""
# Logging Manager

Central logger factory. Every module obtains its logger through `get_logger()` so that
handlers, level and formatting are configured exactly once per process.

```python
from generic_mongo.managers.logging_manager import get_logger

logger = get_logger(prefix="[GenericGet]")
logger.debug("Fetched %d document(s) for %s", count, collection_name)
```

Handlers:
- **Console**: always attached (stderr).
- **File**: attached when `settings.LOG_FILE` is set.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

from generic_mongo.config import settings

ROOT_LOGGER_NAME = "generic_mongo"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed component prefix to each message."""

    def __init__(self, logger: logging.Logger, prefix: str = ""):
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def _configure_root(logger: logging.Logger) -> None:
    global _configured
    if _configured:
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.LOG_FILE:
        file_handler = logging.FileHandler(settings.LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(settings.LOG_LEVEL)
    logger.propagate = False
    _configured = True


def get_logger(name: Optional[str] = None, prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a configured logger for a component.

    Args:
        name: Child logger name under `generic_mongo`. Defaults to the root package logger.
        prefix: Text prepended to every message, e.g. `"[DATABASE]"`.

    Returns:
        PrefixedLoggerAdapter: Adapter supporting the standard logging methods.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    _configure_root(root)
    logger = root.getChild(name) if name else root
    return PrefixedLoggerAdapter(logger, prefix)
