"""
Logging configuration shared by the API, UI and scripts.
"""
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once (module-level loggers inherit it)."""
    global _configured
    if _configured:
        return

    if level is None:
        from .settings import get_settings
        level = get_settings().log_level

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(str(level).upper())

    # Quiet noisy third-party loggers
    for noisy in ("urllib3", "watchdog"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True
