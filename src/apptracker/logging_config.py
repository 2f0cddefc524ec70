from __future__ import annotations

import logging

from apptracker.config import get_settings

# chatty third-party loggers kept at WARNING unless debugging
_NOISY_LOGGERS = ("urllib3", "httpx", "multipart", "watchfiles")

_LOG_CONFIGURED = False


def configure_logging() -> None:
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED:
        return

    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("apptracker").info("Logging configured env=%s level=%s", settings.app_env, settings.log_level)
    _LOG_CONFIGURED = True
