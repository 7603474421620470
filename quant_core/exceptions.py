"""
Exception hierarchy for the quant_core calculation engines.

Provides specific exception types for each error category so callers can
tell a recoverable pricing condition (re-quote, retry with a wider
tolerance) from a configuration mistake or an arithmetic fault.
"""

from typing import Optional, Dict, Any


class QuantCoreError(Exception):
    """Base exception for all quant_core related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


# === ARITHMETIC ===


class MathError(QuantCoreError):
    """Raised by the fixed-point kernel. Always fatal to the call."""

    pass


class ArithmeticOverflow(MathError):
    """Raised when a result leaves the unsigned 256-bit range."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation


class DivisionByZero(MathError):
    """Raised when a divisor is zero."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation


# === PRICING ===


class PricingError(QuantCoreError):
    """Raised when the AMM cannot price a request. Caller should re-quote or abort."""

    pass


class InsufficientLiquidity(PricingError):
    """Raised when a reserve is empty or cannot cover the requested amount."""

    pass


class InsufficientInput(PricingError):
    """Raised when an input amount is zero."""

    pass


class InsufficientOutput(PricingError):
    """Raised when an output amount is zero."""

    pass


class SlippageExceeded(PricingError):
    """Raised when realized output falls below the caller's minimum."""

    def __init__(
        self,
        message: str,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.expected = expected
        self.actual = actual


class InvariantViolation(PricingError):
    """Raised when a pool mutation would decrease the constant product."""

    def __init__(
        self,
        message: str,
        k_before: Optional[int] = None,
        k_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.k_before = k_before
        self.k_after = k_after


# === CONFIGURATION / VALIDATION ===


class ConfigurationError(QuantCoreError):
    """Raised when there are configuration-related issues."""

    pass


class InvalidBasisPoints(ConfigurationError):
    """Raised when a basis-point parameter is outside [0, 10000]."""

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        value: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.parameter = parameter
        self.value = value


class InvalidPercentage(InvalidBasisPoints):
    """Raised by percentage application when bps exceeds 10000."""

    pass


class InvalidTierConfig(ConfigurationError):
    """Raised when a fee tier table is malformed."""

    pass


class ValidationError(QuantCoreError):
    """Raised when validation of inputs or state transitions fails."""

    pass


# === PRICE FEED ===


class StaleOrManipulatedPrice(QuantCoreError):
    """Raised when a price observation is rejected by the TWAP gate."""

    def __init__(
        self,
        message: str,
        price: Optional[int] = None,
        reference: Optional[int] = None,
        deviation_bps: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.price = price
        self.reference = reference
        self.deviation_bps = deviation_bps


_USER_MESSAGES = (
    (SlippageExceeded, "price moved beyond your slippage tolerance"),
    (StaleOrManipulatedPrice, "price feed stale"),
    (InsufficientLiquidity, "not enough liquidity for this trade"),
    (InsufficientInput, "trade amount too small"),
    (InsufficientOutput, "trade amount too small"),
    (MathError, "trade no longer profitable"),
    (ConfigurationError, "engine misconfigured"),
)


def to_user_message(error: Exception) -> str:
    """
    Translate an engine error into a domain message for end users.

    Raw arithmetic details never reach the user.
    """
    for error_type, message in _USER_MESSAGES:
        if isinstance(error, error_type):
            return message
    return "request could not be processed"
