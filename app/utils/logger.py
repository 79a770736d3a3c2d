import logging

from config import app_settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_ROOT = "kubefacts"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    root = logging.getLogger(_ROOT)
    # leave handler setup to the host process when it already has one
    if not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    root.setLevel(app_settings.LOG_LEVEL.upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the ``kubefacts`` namespace."""
    _configure_root()
    return logging.getLogger(f"{_ROOT}.{name}")
