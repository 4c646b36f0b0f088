import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE,
                  max_bytes: int = 10_000_000, backup_count: int = 5):
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    # called again on reload; don't stack handlers
    if not any(getattr(h, "_habit_tracker", False) for h in root.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        stream._habit_tracker = True
        root.addHandler(stream)

        if log_file:
            Path(log_file).parent.mkdir(exist_ok=True, parents=True)
            handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
            handler.setFormatter(formatter)
            handler._habit_tracker = True
            root.addHandler(handler)
    return root
