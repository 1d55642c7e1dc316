# catalog_sync/utils/logger.py
import logging
import os
import sys

LEVELS = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10, "NONE": 100}

_logger = logging.getLogger("catalog_sync")


def configure(level: str = None) -> logging.Logger:
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    _logger.setLevel(LEVELS.get(level, 20))
    if not any(getattr(h, "_catalog_sync", False) for h in _logger.handlers):
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s] %(message)s", "%H:%M:%S"))
        sh._catalog_sync = True
        _logger.addHandler(sh)
    return _logger


def get_logger() -> logging.Logger:
    return _logger


def debug(msg): _logger.debug(msg)
def info(msg):  _logger.info(msg)
def warn(msg):  _logger.warning(msg)
def error(msg): _logger.error(msg)
