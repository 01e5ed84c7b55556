# delivery_core/logging_config.py

# Console logging setup shared by the API process and the ingest script.
# Level names are coloured on a TTY; plain text otherwise (docker logs, CI).

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine", "uvicorn.access")

_LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[34m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


class _TtyFormatter(logging.Formatter):
    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        color = _LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}\033[0m" if color else line


def setup_logging(level="INFO") -> None:
    """Install a single stdout handler on the root logger; safe to call twice."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    formatter_cls = _TtyFormatter if sys.stdout.isatty() else logging.Formatter
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
