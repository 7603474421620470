"""
Fixed-point arithmetic kernel.

All quantities are Python ints scaled by WAD (10**18) or RAY (10**27) and
confined to the unsigned 256-bit range. Every operation checks its operands
and its result: leaving the range raises ArithmeticOverflow and a zero
divisor raises DivisionByZero. There is no floating point anywhere in this
module, so identical inputs produce identical outputs on every platform.

Rounding rules:
    wmul / wdiv / rmul / rdiv   round half up at the scale boundary
    mul_div / percent           floor
    mul_div_up / div_up         ceiling
    sqrt                        floor (exact for perfect squares)
"""

from .constants import (
    BPS_DENOMINATOR,
    HALF_RAY,
    HALF_WAD,
    MAX_BPS,
    MAX_UINT256,
    RAY,
    WAD,
    WAD_TO_RAY,
)
from .exceptions import (
    ArithmeticOverflow,
    DivisionByZero,
    InvalidBasisPoints,
    InvalidPercentage,
)


def _require_uint(value: int, name: str, operation: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{operation}: {name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ArithmeticOverflow(
            f"{operation}: {name} is negative ({value})",
            operation=operation,
            details={name: value},
        )
    if value > MAX_UINT256:
        raise ArithmeticOverflow(
            f"{operation}: {name} exceeds uint256",
            operation=operation,
            details={name: value},
        )


def _checked(result: int, operation: str) -> int:
    if result < 0:
        raise ArithmeticOverflow(
            f"{operation}: result underflows ({result})", operation=operation
        )
    if result > MAX_UINT256:
        raise ArithmeticOverflow(
            f"{operation}: result exceeds uint256", operation=operation
        )
    return result


def _require_divisor(divisor: int, operation: str) -> None:
    if divisor == 0:
        raise DivisionByZero(f"{operation}: division by zero", operation=operation)


# Basic checked operations


def add(a: int, b: int) -> int:
    _require_uint(a, "a", "add")
    _require_uint(b, "b", "add")
    return _checked(a + b, "add")


def sub(a: int, b: int) -> int:
    _require_uint(a, "a", "sub")
    _require_uint(b, "b", "sub")
    return _checked(a - b, "sub")


def mul(a: int, b: int) -> int:
    _require_uint(a, "a", "mul")
    _require_uint(b, "b", "mul")
    return _checked(a * b, "mul")


def div(a: int, b: int) -> int:
    """Floor division."""
    _require_uint(a, "a", "div")
    _require_uint(b, "b", "div")
    _require_divisor(b, "div")
    return a // b


def div_up(a: int, b: int) -> int:
    """Ceiling division."""
    _require_uint(a, "a", "div_up")
    _require_uint(b, "b", "div_up")
    _require_divisor(b, "div_up")
    return -(-a // b)


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with the intermediate product range-checked."""
    _require_uint(denominator, "denominator", "mul_div")
    _require_divisor(denominator, "mul_div")
    return mul(a, b) // denominator


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator) with the intermediate product range-checked."""
    _require_uint(denominator, "denominator", "mul_div_up")
    _require_divisor(denominator, "mul_div_up")
    return -(-mul(a, b) // denominator)


# WAD / RAY arithmetic


def wmul(x: int, y: int) -> int:
    """Multiply two WADs, rounding half up."""
    return add(mul(x, y), HALF_WAD) // WAD


def wdiv(x: int, y: int) -> int:
    """Divide two WADs, rounding half up."""
    _require_uint(y, "y", "wdiv")
    _require_divisor(y, "wdiv")
    return add(mul(x, WAD), y // 2) // y


def rmul(x: int, y: int) -> int:
    """Multiply two RAYs, rounding half up."""
    return add(mul(x, y), HALF_RAY) // RAY


def rdiv(x: int, y: int) -> int:
    """Divide two RAYs, rounding half up."""
    _require_uint(y, "y", "rdiv")
    _require_divisor(y, "rdiv")
    return add(mul(x, RAY), y // 2) // y


def wad_to_ray(x: int) -> int:
    return mul(x, WAD_TO_RAY)


def ray_to_wad(x: int) -> int:
    """Convert RAY to WAD, rounding half up."""
    return add(x, WAD_TO_RAY // 2) // WAD_TO_RAY


def to_wad(units: int) -> int:
    """Scale a whole-unit amount to WAD."""
    return mul(units, WAD)


def sqrt(x: int) -> int:
    """
    Integer square root by Babylonian iteration.

    Returns floor(sqrt(x)); exact when x is a perfect square.
    """
    _require_uint(x, "x", "sqrt")
    if x > 3:
        z = x
        guess = x // 2 + 1
        while guess < z:
            z = guess
            guess = (x // guess + guess) // 2
        return z
    if x != 0:
        return 1
    return 0


# Basis points


def is_valid_bps(value: int) -> bool:
    """Check if value is a valid basis point integer (0-10000)."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= MAX_BPS
    )


def validate_bps(value: int, name: str = "bps") -> int:
    """Raise InvalidBasisPoints unless value lies in [0, 10000]."""
    if not is_valid_bps(value):
        raise InvalidBasisPoints(
            f"{name} must be within [0, {MAX_BPS}], got {value}",
            parameter=name,
            value=value,
        )
    return value


def percent(amount: int, bps: int) -> int:
    """
    Apply a basis-point rate to an amount, rounding down.

    Examples:
        >>> percent(10_000, 30)
        30
        >>> percent(101, 5_000)
        50
    """
    if not is_valid_bps(bps):
        raise InvalidPercentage(
            f"percentage must be within [0, {MAX_BPS}] bps, got {bps}",
            parameter="bps",
            value=bps,
        )
    return mul_div(amount, bps, BPS_DENOMINATOR)


def bps_of(part: int, whole: int) -> int:
    """Express part as basis points of whole, rounding down."""
    return mul_div(part, BPS_DENOMINATOR, whole)


# Comparisons


def wmin(a: int, b: int) -> int:
    _require_uint(a, "a", "min")
    _require_uint(b, "b", "min")
    return a if a < b else b


def wmax(a: int, b: int) -> int:
    _require_uint(a, "a", "max")
    _require_uint(b, "b", "max")
    return a if a > b else b


def average(a: int, b: int) -> int:
    """Floor average computed without forming a + b."""
    _require_uint(a, "a", "average")
    _require_uint(b, "b", "average")
    return (a & b) + ((a ^ b) >> 1)


def abs_diff(a: int, b: int) -> int:
    """|a - b| for two unsigned values."""
    _require_uint(a, "a", "abs_diff")
    _require_uint(b, "b", "abs_diff")
    return a - b if a >= b else b - a


def signed_abs(x: int) -> int:
    """Magnitude of a signed value; fails if it does not fit in uint256."""
    if isinstance(x, bool) or not isinstance(x, int):
        raise TypeError(f"abs: x must be an int, got {type(x).__name__}")
    return _checked(-x if x < 0 else x, "abs")
