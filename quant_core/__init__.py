"""
Quant Core.

Deterministic fixed-point calculation core for constant-product pricing,
time-weighted price tracking, dynamic fees and arbitrage projection. All
amounts are integers scaled by 10**18 (WAD) and every call takes its time
from the caller, so identical inputs always give identical outputs.
"""

from quant_core.version import __version__

PROJECT_NAME = "quant-core"
VERSION = __version__

# Export main components for easier imports
from quant_core.arbitrage import ArbitrageEngine
from quant_core.constants import RAY, WAD, ActionKind, RiskLevel, TWAPEventType, TWAPStatus
from quant_core.exceptions import (
    ArithmeticOverflow,
    ConfigurationError,
    DivisionByZero,
    InsufficientInput,
    InsufficientLiquidity,
    InsufficientOutput,
    InvalidBasisPoints,
    InvalidPercentage,
    InvalidTierConfig,
    InvariantViolation,
    QuantCoreError,
    SlippageExceeded,
    StaleOrManipulatedPrice,
    ValidationError,
    to_user_message,
)
from quant_core.fees import FeeEngine
from quant_core.hooks import ActionDispatcher
from quant_core.pricing import PricingEngine
from quant_core.registry import StateArena
from quant_core.twap import TWAPEngine
from quant_core.types import (
    Action,
    ArbitrageConfig,
    ArbitrageOpportunity,
    FeeConfig,
    Pool,
    RiskParams,
    TWAPConfig,
    TWAPState,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "WAD",
    "RAY",
    "ActionKind",
    "RiskLevel",
    "TWAPEventType",
    "TWAPStatus",
    "ArbitrageEngine",
    "FeeEngine",
    "PricingEngine",
    "TWAPEngine",
    "ActionDispatcher",
    "StateArena",
    "Action",
    "ArbitrageConfig",
    "ArbitrageOpportunity",
    "FeeConfig",
    "Pool",
    "RiskParams",
    "TWAPConfig",
    "TWAPState",
    "QuantCoreError",
    "ArithmeticOverflow",
    "DivisionByZero",
    "InsufficientInput",
    "InsufficientLiquidity",
    "InsufficientOutput",
    "InvalidBasisPoints",
    "InvalidPercentage",
    "InvalidTierConfig",
    "InvariantViolation",
    "SlippageExceeded",
    "StaleOrManipulatedPrice",
    "ValidationError",
    "ConfigurationError",
    "to_user_message",
]
