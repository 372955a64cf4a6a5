import sys
import logging
from typing import Iterable, Optional

# Loggers for child process output are named '<prefix><process name>'.
CHILD_LOGGER_PREFIX = "proc."
DEFAULT_FORMAT = "%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s"
QUIET_LOGGERS = ("hypercorn.error", "hypercorn.access", "watchdog")


def child_logger(process_name: str) -> logging.Logger:
    return logging.getLogger(f"{CHILD_LOGGER_PREFIX}{process_name}")


class MainFormatter(logging.Formatter):
    """Formats supervisor records; lines relayed from a child process are printed as they came."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt or DEFAULT_FORMAT, datefmt)

    def format(self, record):
        if record.name.startswith(CHILD_LOGGER_PREFIX):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO, quiet: Iterable[str] = QUIET_LOGGERS) -> None:
    """
    Installs a single console handler on the root logger.

    Calling it again replaces the previous handlers instead of stacking them.

    :param console_level: The lowest level printed to the console.
    :param quiet: Third-party loggers capped at WARNING.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
