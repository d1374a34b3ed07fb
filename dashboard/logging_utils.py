"""Logging setup shared by the API entry point and the service modules."""

import logging

_DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Third-party loggers that are too chatty at DEBUG.
_QUIET_LOGGERS = ("urllib3", "httpx")


def configure_default_logging(level: str = "INFO") -> None:
    """Initialise the root logger once for the whole process."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=_DEFAULT_FORMAT)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
