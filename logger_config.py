import logging
import logging.handlers
import os
import sys

from config import LOG_DIR, LOG_LEVEL

LOG_FILE = os.path.join(LOG_DIR, "storycodex.log")


def setup_logging(level: str | None = None, *, to_file: bool = True) -> None:
    """
    Configure the root logger: console output plus a rotating log file.
    Safe to call more than once; existing handlers are replaced.
    """
    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )

    # avoid duplicate output when called twice
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.root.setLevel((level or LOG_LEVEL).upper())

    if to_file:
        os.makedirs(LOG_DIR, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            LOG_FILE,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logging.root.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logging.root.addHandler(console_handler)

    logging.captureWarnings(True)
