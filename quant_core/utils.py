"""
Common utilities and helper functions for the quant_core engines.

This module provides centralized helper functions for logging and for
rendering fixed-point values in log output.
"""

import logging
from decimal import Decimal
from typing import Union

from .constants import BPS_DENOMINATOR, WAD


# Formatting utilities (log output only, never used in calculations)
def format_wad(value: int, places: int = 6) -> str:
    """Render a WAD integer as a human-readable decimal string."""
    quantum = Decimal(1).scaleb(-places)
    return str((Decimal(value) / Decimal(WAD)).quantize(quantum))


def format_bps(bps: int) -> str:
    """Render basis points as a percentage string (30 -> '0.30%')."""
    return f"{Decimal(bps) * 100 / BPS_DENOMINATOR:.2f}%"


# Logging utilities
def get_logger(name: str, level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Get a structured logger with consistent formatting.

    Args:
        name: Logger name (typically __name__)
        level: Logging level, applied only if the logger has none yet

    Returns:
        Configured logger with structured output
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
