import logging
import os
from logging.config import dictConfig
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Outbound HTTP libraries log every GraphQL round trip at INFO.
HTTP_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process logging.

    ``level`` falls back to ``JUDGEBOARD_LOG_LEVEL``. Upstream HTTP traffic is
    held at WARNING unless ``JUDGEBOARD_DEBUG_HTTP=1``, in which case it and
    uvicorn's access log drop to DEBUG.
    """
    root_level = (level or os.getenv("JUDGEBOARD_LOG_LEVEL", "INFO")).upper()
    debug_http = os.getenv("JUDGEBOARD_DEBUG_HTTP", "0") == "1"
    http_level = "DEBUG" if debug_http else "WARNING"

    loggers = {name: {"level": http_level} for name in HTTP_LOGGERS}
    if debug_http:
        loggers["uvicorn.access"] = {"level": "DEBUG"}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "judgeboard": {"format": DEFAULT_LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "judgeboard",
                },
            },
            "loggers": loggers,
            "root": {
                "handlers": ["console"],
                "level": root_level,
            },
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s (debug_http=%s)", root_level, debug_http)
