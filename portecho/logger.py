import logging
import os
from logging.handlers import RotatingFileHandler

from portecho.config import log_dir, log_level


def get_listener_logger(name: str):
    logger = logging.getLogger(f"portecho.listener.{name}")
    if logger.handlers:
        return logger
    logger.setLevel(log_level())
    logger.propagate = False
    fmt = logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
    # stdout carries the echoed payload, so log lines only ever go to stderr
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    base = log_dir()
    if base:
        logs_dir = os.path.join(base, name, "logs")
        os.makedirs(logs_dir, exist_ok=True)
        fh = RotatingFileHandler(os.path.join(logs_dir, "run.log"), maxBytes=5_000_000, backupCount=3)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger
