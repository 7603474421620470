"""Tests for the exceptions module."""

import pytest
from quant_core.exceptions import (
    QuantCoreError,
    MathError,
    ArithmeticOverflow,
    DivisionByZero,
    PricingError,
    InsufficientLiquidity,
    InsufficientInput,
    InsufficientOutput,
    SlippageExceeded,
    InvariantViolation,
    ConfigurationError,
    InvalidBasisPoints,
    InvalidPercentage,
    InvalidTierConfig,
    ValidationError,
    StaleOrManipulatedPrice,
    to_user_message,
)


def test_base_exception():
    """Test the base exception class."""
    error = QuantCoreError("Test error")
    assert str(error) == "Test error"
    assert error.details == {}

    error_with_details = QuantCoreError("Test error", {"key": "value"})
    assert error_with_details.details == {"key": "value"}


def test_arithmetic_errors():
    overflow = ArithmeticOverflow("too big", operation="mul")
    assert overflow.operation == "mul"
    assert isinstance(overflow, MathError)

    zero = DivisionByZero("div by zero", operation="wdiv")
    assert zero.operation == "wdiv"
    assert isinstance(zero, MathError)
    assert isinstance(zero, QuantCoreError)


def test_pricing_errors():
    """Test pricing error hierarchy."""
    for error_type in (InsufficientLiquidity, InsufficientInput, InsufficientOutput):
        error = error_type("pricing failed")
        assert isinstance(error, PricingError)
        assert isinstance(error, QuantCoreError)


def test_slippage_exceeded():
    error = SlippageExceeded("Slippage too high", expected=100, actual=95)
    assert str(error) == "Slippage too high"
    assert error.expected == 100
    assert error.actual == 95
    assert isinstance(error, PricingError)


def test_invariant_violation():
    error = InvariantViolation("k decreased", k_before=100, k_after=99)
    assert error.k_before == 100
    assert error.k_after == 99


def test_basis_point_errors():
    """Test configuration error subclasses."""
    error = InvalidBasisPoints("bad bps", parameter="fee_bps", value=10001)
    assert error.parameter == "fee_bps"
    assert error.value == 10001
    assert isinstance(error, ConfigurationError)

    percentage = InvalidPercentage("bad percent", parameter="bps", value=20000)
    assert isinstance(percentage, InvalidBasisPoints)
    assert isinstance(InvalidTierConfig("bad tiers"), ConfigurationError)


def test_stale_or_manipulated_price():
    error = StaleOrManipulatedPrice(
        "rejected", price=200, reference=100, deviation_bps=10000
    )
    assert error.price == 200
    assert error.reference == 100
    assert error.deviation_bps == 10000
    assert not isinstance(error, PricingError)


def test_validation_error():
    """Test validation error."""
    error = ValidationError("Validation failed")
    assert str(error) == "Validation failed"
    assert isinstance(error, QuantCoreError)


@pytest.mark.parametrize(
    "error,message",
    [
        (ArithmeticOverflow("mul: result exceeds uint256"), "trade no longer profitable"),
        (DivisionByZero("wdiv: division by zero"), "trade no longer profitable"),
        (StaleOrManipulatedPrice("rejected"), "price feed stale"),
        (SlippageExceeded("slippage"), "price moved beyond your slippage tolerance"),
        (InsufficientLiquidity("empty"), "not enough liquidity for this trade"),
        (InvalidTierConfig("tiers"), "engine misconfigured"),
        (RuntimeError("boom"), "request could not be processed"),
    ],
)
def test_to_user_message(error, message):
    assert to_user_message(error) == message


def test_user_message_hides_arithmetic_details():
    error = ArithmeticOverflow("mul: result exceeds uint256", operation="mul")
    assert "uint256" not in to_user_message(error)
