import logging

from .config import LOG_LEVEL

RESET = "\x1b[0m"
DIM = "\x1b[90m"
NAME = "\x1b[36m"

LEVEL_COLORS = {
    logging.DEBUG: "\x1b[34m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}

QUIET_LOGGERS = ("aiohttp", "websockets", "aiosqlite")


def _paint(color: str, text: str) -> str:
    return f"{color}{text}{RESET}" if color else text


class ColorFormatter(logging.Formatter):
    """`HH:MM:SS | LEVEL | logger | message`, level colored by severity."""

    def format(self, rec: logging.LogRecord) -> str:
        stamp = _paint(DIM, self.formatTime(rec, "%H:%M:%S"))
        level = _paint(LEVEL_COLORS.get(rec.levelno, ""), rec.levelname)
        return f"{stamp} | {level} | {_paint(NAME, rec.name)} | {super().format(rec)}"


def setup_logging(level: str = LOG_LEVEL) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ColorFormatter("%(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
