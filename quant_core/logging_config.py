"""
Logging configuration for applications embedding the engines.

Usage:
    from quant_core import logging_config
    logging_config.setup()
"""

import logging
import sys


def setup(level=logging.INFO):
    """
    Configure root logging for readable engine output.

    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    - Keeps engine loggers at the requested level
    """
    root = logging.getLogger()
    root.setLevel(level)

    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    logging.getLogger("quant_core").setLevel(level)


def setup_minimal():
    """
    Only warnings and errors: TWAP rejections, resets, invariant failures.
    """
    setup(level=logging.WARNING)


def setup_debug():
    """
    Verbose logging for debugging.
    Shows every swap simulation and fee computation.
    """
    setup(level=logging.DEBUG)
