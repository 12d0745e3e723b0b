import logging
import os
from collections import deque

__all__ = ["LOG_PATH", "RecentLogHandler", "logger", "recent_logs"]

LOG_PATH = os.getenv("FOCUSWARDEN_LOG_PATH", "./log/focuswarden.log")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class RecentLogHandler(logging.Handler):
    """Keep the last few formatted records in memory for the status API."""

    def __init__(self, buffer: deque[str]) -> None:
        super().__init__()
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(self.format(record))
        except Exception:  # noqa: BLE001
            self.handleError(record)


recent_logs: deque[str] = deque(maxlen=100)

logger = logging.getLogger("focuswarden")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    _formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    try:
        os.makedirs(os.path.dirname(LOG_PATH) or ".", exist_ok=True)
        _fh = logging.FileHandler(LOG_PATH, encoding="utf-8")
    except OSError:
        # read-only working directory; memory buffer still works
        _fh = None
    if _fh is not None:
        _fh.setFormatter(_formatter)
        logger.addHandler(_fh)
    _rh = RecentLogHandler(recent_logs)
    _rh.setFormatter(logging.Formatter(fmt="%(asctime)s %(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(_rh)
