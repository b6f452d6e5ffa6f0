import logging
import sys

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(module)s:%(lineno)d] %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "info") -> int:
    """Install one stream handler on the package logger and return the level."""
    resolved = _LEVELS.get(level.strip().lower(), logging.INFO)
    package_logger = logging.getLogger("nostream")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_nostream_handler", False):
            package_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._nostream_handler = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    package_logger.setLevel(resolved)
    package_logger.propagate = False
    return resolved
