"""Version information for the quant_core engines."""

__version__ = "0.1.0"
