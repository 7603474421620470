"""
Constants and enums for the quant_core engines.

Centralizes scale factors, protocol limits and enumerations shared by the
pricing, TWAP, fee and arbitrage engines.
"""

from enum import Enum

# Fixed-point scales
WAD = 10**18
RAY = 10**27
WAD_TO_RAY = RAY // WAD
HALF_WAD = WAD // 2
HALF_RAY = RAY // 2

# Integer domain (unsigned 256-bit)
MAX_UINT256 = 2**256 - 1

# Basis points
BPS_DENOMINATOR = 10_000
MAX_BPS = 10_000

# LP shares permanently locked on the first deposit
MINIMUM_LIQUIDITY = 1_000

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Time
MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

GWEI = 10**9

# Dynamic fee tiers (highest first)
VOLUME_TIERS = (
    (100_000 * WAD, 10_000),
    (10_000 * WAD, 5_000),
    (1_000 * WAD, 2_500),
)
FREQUENCY_TIERS = (
    (5 * MINUTE, 10_000),
    (HOUR, 5_000),
    (DAY, 2_500),
)
GAS_PRICE_TIERS = (
    (200 * GWEI, 10_000),
    (100 * GWEI, 5_000),
    (50 * GWEI, 2_500),
)

# Arbitrage viability
RISK_MIDPOINT = 5_000
DEFAULT_MAX_RISK_SCORE = 5_000
DEFAULT_MIN_SUCCESS_PROBABILITY = 7_000
DEFAULT_SUCCESS_RATE = 8_000
DEFAULT_HISTORY_CAPACITY = 100

# Risk factor weights (sum to BPS_DENOMINATOR)
PRICE_IMPACT_RISK_WEIGHT = 4_000
SLIPPAGE_RISK_WEIGHT = 3_000
LIQUIDITY_RISK_WEIGHT = 3_000

# TWAP health weights (sum to BPS_DENOMINATOR)
FRESHNESS_HEALTH_WEIGHT = 6_000
OBSERVATION_HEALTH_WEIGHT = 4_000


class TWAPStatus(Enum):
    """Lifecycle of a tracked pair."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    STALE = "stale"


class TWAPEventType(Enum):
    """Events emitted by the TWAP engine."""

    INITIALIZED = "initialized"
    UPDATED = "updated"
    REJECTED = "rejected"
    RESET = "reset"


class ActionKind(Enum):
    """Price-affecting actions routed through the engine handlers."""

    SWAP = "swap"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    FLASH_LOAN = "flash_loan"
    ARBITRAGE = "arbitrage"


class RiskLevel(Enum):
    """Risk level enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        """Bucket a 0..10000 risk score."""
        if score <= 2_500:
            return cls.LOW
        if score <= 5_000:
            return cls.MEDIUM
        if score < 10_000:
            return cls.HIGH
        return cls.CRITICAL
