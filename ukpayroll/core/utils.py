import logging
import os
from decimal import Decimal, ROUND_HALF_UP
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

from ukpayroll.core.config import settings

Number = Union[int, Decimal]


def mkdir_safe(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)


def setup_logging(scope: str = None, *, log_level: str = None):
    """Configure the package logger (or a child of it) with a rotating log file.

    Calling it twice for the same scope returns the already configured logger.
    """
    logger_name = settings.APP_NAME if not scope else f"{settings.APP_NAME}.{scope}"
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger
    level = log_level or settings.LOG_LEVEL
    logger.setLevel(getattr(logging, level.upper()))
    mkdir_safe(settings.AUDIT_LOG_PATH)
    logfile = Path(settings.AUDIT_LOG_PATH) / f"{scope or 'system'}.log"
    handler = RotatingFileHandler(str(logfile), maxBytes=10_000_000, backupCount=5)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    if os.getenv("DEV", "").lower() in ("1", "true", "yes"):
        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    logger.propagate = False
    return logger


# Money helpers. Amounts are integer pence; rates are Decimals so that
# half-penny results round the same way on every platform.

def round_half_up(value: Number) -> int:
    """Round to the nearest whole penny, halves away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_rate(amount_pence: int, rate: Decimal) -> int:
    return round_half_up(Decimal(amount_pence) * Decimal(rate))


def prorate(amount_pence: int, numerator: int, denominator: int) -> int:
    """amount * numerator / denominator, rounded to the penny."""
    return round_half_up(Decimal(amount_pence) * numerator / Decimal(denominator))
