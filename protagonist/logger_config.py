import logging
import logging.handlers
import os
import sys
from typing import Optional

LOG_FILE_NAME = "protagonist.log"


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None):
    """
    Configure the root logger for the process.

    Output goes to stdout and to a rotating file under ``log_dir``.
    """
    log_dir = log_dir or os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )

    # drop handlers installed by earlier basicConfig() calls
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE_NAME),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    logging.root.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logging.root.addHandler(console_handler)

    logging.captureWarnings(True)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
