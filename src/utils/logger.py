import logging
import os

from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured: set[str] = set()


class PaddedNameFormatter(logging.Formatter):
    """Pads logger names to the widest one seen so far so messages line up."""

    widest_name = 12

    def format(self, record):
        PaddedNameFormatter.widest_name = max(
            PaddedNameFormatter.widest_name, len(record.name)
        )
        record.padded_name = record.name.ljust(PaddedNameFormatter.widest_name)
        return super().format(record)


def _resolve_level() -> int:
    if os.getenv("DEBUG"):
        return logging.DEBUG
    name = os.getenv("POS_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.

    While the Textual app owns the terminal, console output is swallowed, so
    setting POS_LOG_FILE additionally writes plain lines to that file.
    """
    if name is None:
        name = "till"
    logger = logging.getLogger(name)
    log_level = _resolve_level()
    logger.setLevel(log_level)

    if not logger.handlers:
        console_handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        console_handler.setFormatter(PaddedNameFormatter("[%(padded_name)s]  %(message)s"))
        console_handler.setLevel(log_level)
        logger.addHandler(console_handler)

        log_file = os.getenv("POS_LOG_FILE")
        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
            file_handler.setLevel(log_level)
            logger.addHandler(file_handler)

        logger.propagate = False
        _configured.add(name)
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger


def set_level(level_name: str) -> None:
    """Apply a configured level to every logger handed out so far."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name}")
    for name in _configured:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
