"""
Type definitions for the quant_core engines.

Contains the long-lived records (Pool, TWAPState), the operator-configured
parameter records and the ephemeral result records returned by the engines.
All amounts are WAD-scaled ints unless noted otherwise.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

from .constants import (
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_MAX_RISK_SCORE,
    DEFAULT_MIN_SUCCESS_PROBABILITY,
    DEFAULT_SUCCESS_RATE,
    MAX_BPS,
    ActionKind,
    RiskLevel,
    TWAPEventType,
    WAD,
)
from .exceptions import ConfigurationError, ValidationError
from .fixed_point import validate_bps


def make_pair_key(token_a: str, token_b: str) -> str:
    """Order-independent identifier for a token pair."""
    first, second = sorted((token_a.lower(), token_b.lower()))
    return f"{first}/{second}"


# === LONG-LIVED STATE ===


@dataclass
class Pool:
    """
    Constant-product liquidity pool record.

    Attributes:
        token_a: Identifier of the first token
        token_b: Identifier of the second token
        reserve_a: Reserve of token_a (WAD)
        reserve_b: Reserve of token_b (WAD)
        fee_bps: Swap fee charged on input, 0..10000
        total_liquidity: Outstanding LP shares (WAD)
    """

    token_a: str
    token_b: str
    reserve_a: int
    reserve_b: int
    fee_bps: int = 30
    total_liquidity: int = 0

    def __post_init__(self):
        validate_bps(self.fee_bps, "fee_bps")
        if self.reserve_a < 0 or self.reserve_b < 0:
            raise ValidationError(
                f"Pool reserves cannot be negative: {self.reserve_a}, {self.reserve_b}"
            )
        if self.token_a == self.token_b:
            raise ValidationError(f"Pool tokens must differ, got {self.token_a}")

    @property
    def pair_key(self) -> str:
        return make_pair_key(self.token_a, self.token_b)

    @property
    def k(self) -> int:
        return self.reserve_a * self.reserve_b

    @property
    def base_token(self) -> str:
        """Token listed first in pair_key; TWAP references price this token."""
        return min(self.token_a, self.token_b, key=lambda token: (token.lower(), token))

    def has_token(self, token: str) -> bool:
        return token in (self.token_a, self.token_b)

    def other_token(self, token: str) -> str:
        if token == self.token_a:
            return self.token_b
        if token == self.token_b:
            return self.token_a
        raise ValidationError(f"Token {token} not in pool {self.pair_key}")

    def reserves_for(self, token_in: str) -> Tuple[int, int]:
        """Return (reserve_in, reserve_out) oriented for a swap from token_in."""
        if token_in == self.token_a:
            return self.reserve_a, self.reserve_b
        if token_in == self.token_b:
            return self.reserve_b, self.reserve_a
        raise ValidationError(f"Token {token_in} not in pool {self.pair_key}")


@dataclass(frozen=True)
class Observation:
    """Cumulative snapshot taken at each accepted TWAP update."""

    timestamp: int
    cumulative_price: int  # RAY-seconds
    price: int  # WAD price in effect from this timestamp on


@dataclass
class TWAPState:
    """
    Per-pair time-weighted price accumulator.

    cumulative_price is the integral of the observed price (RAY) over time
    up to last_update_time. The observations ring buffer keeps the most
    recent snapshots for windowed averages.
    """

    pair_key: Optional[str] = None
    cumulative_price: int = 0
    last_observed_price: int = 0
    last_update_time: int = 0
    observation_count: int = 0
    first_observation_time: int = 0
    initialized: bool = False
    observations: Deque[Observation] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_HISTORY_CAPACITY)
    )


# === CONFIGURATION RECORDS ===


@dataclass(frozen=True)
class TWAPConfig:
    """TWAP tracking parameters."""

    observation_period: int = 600
    max_price_deviation_bps: int = 500
    staleness_threshold: int = 3_600
    observation_capacity: int = DEFAULT_HISTORY_CAPACITY
    min_observations: int = 10

    def __post_init__(self):
        if self.observation_period <= 0:
            raise ConfigurationError(
                f"observation_period must be positive, got {self.observation_period}"
            )
        validate_bps(self.max_price_deviation_bps, "max_price_deviation_bps")
        if self.staleness_threshold < 0:
            raise ConfigurationError("staleness_threshold cannot be negative")
        if self.observation_capacity < 2:
            raise ConfigurationError("observation_capacity must be at least 2")
        if self.min_observations < 1:
            raise ConfigurationError("min_observations must be at least 1")


@dataclass(frozen=True)
class FeeConfig:
    """Dynamic fee parameters, all in basis points."""

    base_fee_bps: int = 30
    volume_multiplier_bps: int = 20
    time_multiplier_bps: int = 10
    gas_multiplier_bps: int = 10
    max_fee_bps: int = 500
    min_fee_bps: int = 5

    def __post_init__(self):
        for name in (
            "base_fee_bps",
            "volume_multiplier_bps",
            "time_multiplier_bps",
            "gas_multiplier_bps",
            "max_fee_bps",
            "min_fee_bps",
        ):
            validate_bps(getattr(self, name), name)
        if self.min_fee_bps > self.max_fee_bps:
            raise ConfigurationError(
                f"min_fee_bps ({self.min_fee_bps}) must not exceed "
                f"max_fee_bps ({self.max_fee_bps})"
            )


@dataclass(frozen=True)
class RiskParams:
    """Risk thresholds used to normalize each risk factor to 0..10000."""

    max_slippage_bps: int = 100
    max_price_impact_bps: int = 300
    min_liquidity_ratio_bps: int = 1_000
    volatility_threshold_bps: int = 500

    def __post_init__(self):
        for name in (
            "max_slippage_bps",
            "max_price_impact_bps",
            "min_liquidity_ratio_bps",
            "volatility_threshold_bps",
        ):
            value = validate_bps(getattr(self, name), name)
            if value == 0:
                raise ConfigurationError(f"{name} must be positive")


@dataclass(frozen=True)
class ArbitrageConfig:
    """Cost and viability parameters for arbitrage projection."""

    gas_limit: int = 250_000
    gas_buffer_bps: int = 1_000
    native_token_price: int = WAD  # path-token units per native token (WAD)
    flash_fee_bps: int = 9
    flash_premium_bps: int = 0
    protocol_fee_bps: int = 100
    min_profit_threshold: int = 0
    max_risk_score: int = DEFAULT_MAX_RISK_SCORE
    min_success_probability: int = DEFAULT_MIN_SUCCESS_PROBABILITY
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    default_success_rate: int = DEFAULT_SUCCESS_RATE
    optimal_search_steps: int = 20

    def __post_init__(self):
        for name in (
            "gas_buffer_bps",
            "flash_fee_bps",
            "flash_premium_bps",
            "protocol_fee_bps",
            "max_risk_score",
            "min_success_probability",
            "default_success_rate",
        ):
            validate_bps(getattr(self, name), name)
        if self.gas_limit < 0 or self.native_token_price < 0:
            raise ConfigurationError("gas_limit and native_token_price cannot be negative")
        if self.min_profit_threshold < 0:
            raise ConfigurationError("min_profit_threshold cannot be negative")
        if self.history_capacity < 1:
            raise ConfigurationError("history_capacity must be at least 1")
        if self.optimal_search_steps < 1:
            raise ConfigurationError("optimal_search_steps must be at least 1")


# === RESULT RECORDS ===


@dataclass(frozen=True)
class SwapResult:
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    fee_bps: int
    price_impact_bps: int


@dataclass(frozen=True)
class LiquidityMintResult:
    liquidity: int
    amount_a: int
    amount_b: int
    locked_liquidity: int = 0


@dataclass(frozen=True)
class FeeDistribution:
    """
    Split of a collected fee.

    remainder is the rounding dust left after flooring each share; it stays
    with the caller and is reported so total accounting always balances.
    """

    total: int
    protocol: int
    treasury: int
    liquidity: int
    remainder: int

    @property
    def distributed(self) -> int:
        return self.protocol + self.treasury + self.liquidity


@dataclass(frozen=True)
class TotalFees:
    gas_cost: int
    flash_loan_fee: int
    protocol_fee: int

    @property
    def total(self) -> int:
        return self.gas_cost + self.flash_loan_fee + self.protocol_fee


@dataclass(frozen=True)
class RiskAssessment:
    price_impact_risk: int
    slippage_risk: int
    liquidity_risk: int
    risk_score: int
    max_price_impact_bps: int
    slippage_bps: int
    max_utilization_bps: int
    price_deviation_flagged: bool = False

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_score(self.risk_score)


@dataclass(frozen=True)
class ProfitProjection:
    gross_profit: int
    total_fees: int
    net_profit: int
    profit_margin: int  # bps of amount_in
    risk_score: int
    success_probability: int
    is_viable: bool


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """Ephemeral result of evaluating one path at one input size."""

    path: Tuple[Pool, ...]
    start_token: str
    amount_in: int
    gross_profit: int
    total_fees: int
    net_profit: int
    risk_score: int
    success_probability: int
    is_viable: bool
    amounts: Tuple[int, ...] = ()
    fee_breakdown: Optional[TotalFees] = None

    @property
    def route(self) -> List[str]:
        tokens = [self.start_token]
        for pool in self.path:
            tokens.append(pool.other_token(tokens[-1]))
        return tokens


@dataclass(frozen=True)
class ExecutionReceipt:
    opportunity: ArbitrageOpportunity
    amounts: Tuple[int, ...]
    realized_profit: int
    fees: TotalFees
    success: bool


@dataclass(frozen=True)
class TWAPStats:
    twap: int
    last_price: int
    last_update_time: int
    observation_count: int
    time_since_update: int
    is_stale: bool
    health_score: int
    status: str


@dataclass(frozen=True)
class TWAPEvent:
    event_type: TWAPEventType
    pair_key: Optional[str]
    price: int
    timestamp: int
    reference_price: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


def clamp_bps(value: int) -> int:
    """Saturate a computed score into [0, 10000]."""
    if value < 0:
        return 0
    if value > MAX_BPS:
        return MAX_BPS
    return value


# === ACTION DISPATCH ===


@dataclass(frozen=True)
class Action:
    """
    A price-affecting request routed through the engine handlers.

    Which fields matter depends on kind: swaps and liquidity changes use
    the token pair, amounts and deadline; flash loans use amount; arbitrage
    uses profit. Liquidity changes need both amount and amount_secondary
    (for removals, the liquidity burned and the minimum redeemed). Fee
    inputs (user_volume, time_since_last_tx, gas_price) feed the dynamic
    fee for swaps.
    """

    kind: ActionKind
    token_in: str = ""
    token_out: str = ""
    amount: int = 0
    amount_secondary: int = 0
    deadline: int = 0
    profit: int = 0
    user_volume: int = 0
    time_since_last_tx: Optional[int] = None
    gas_price: int = 0


@dataclass(frozen=True)
class FeeQuote:
    """Fee owed for an action. The caller applies it; the engine never does."""

    kind: ActionKind
    fee_bps: int
    fee_amount: int


@dataclass(frozen=True)
class ActionOutcome:
    action: Action
    allowed: bool
    fee: Optional[FeeQuote] = None
    reason: str = ""
