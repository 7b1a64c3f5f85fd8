from __future__ import annotations

import logging

from consignment_ledger.config import settings

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'
_ROOT_LOGGER_NAME = 'consignment_ledger'


def configure_logging(level: str | None = None) -> logging.Logger:
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    logger.setLevel((level or settings.log_level).upper())
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
