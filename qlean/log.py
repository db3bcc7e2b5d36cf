# qlean/log.py
import logging
import sys

from colorama import Fore, Style, init

LOGGER_NAME = "qlean"

LEVEL_COLORS = {
    logging.DEBUG: Style.DIM + Fore.WHITE,
    logging.INFO: Fore.CYAN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Style.BRIGHT + Fore.RED,
}


class ColorFormatter(logging.Formatter):
    """Colors the whole record by level, the way the CLI prints status lines."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno, "")
        return f"{color}{message}{Style.RESET_ALL}"


def setup_logging(level="INFO", stream=None) -> logging.Logger:
    """Attach a single colored stderr handler to the package logger."""
    init()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_qlean_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(ColorFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    handler._qlean_handler = True
    logger.addHandler(handler)
    logger.propagate = False
    return logger
