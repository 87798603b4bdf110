import logging
import os

from pythonjsonlogger import jsonlogger

HANDLER_NAME = "knn-json"


def get_logger(name: str) -> logging.Logger:
    """JSON logs on stderr, level from LOG_LEVEL. Safe to call repeatedly."""
    logger = logging.getLogger(name)
    if not any(h.get_name() == HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))
    return logger
