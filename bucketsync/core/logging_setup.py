from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"

# boto stays at WARNING unless the run itself is at DEBUG.
_NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def setup_logging(level: str, logfile: str | None = None, quiet: bool = False):
    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)

    # Clear existing handlers to avoid duplicates across repeated CLI calls.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(LOG_FORMAT)

    if logfile:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile, encoding="utf-8")
        fh.setLevel(log_level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(logging.WARNING if quiet else log_level)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(
            logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
        )

    root.debug("logging initialized")
