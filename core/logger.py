import logging
import sys

from core.config import LOG_LEVEL

FORMAT = "[%(levelname)s %(name)s %(module)s:%(lineno)s - %(funcName)s() - %(asctime)s] %(message)s"
TIME_FORMAT = "%d.%m.%Y %I:%M:%S %p"


def get_logger(name: str) -> logging.Logger:
    logger_instance = logging.getLogger(name)

    if not logger_instance.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(FORMAT, datefmt=TIME_FORMAT))
        logger_instance.addHandler(handler)
        logger_instance.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    return logger_instance
