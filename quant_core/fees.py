"""
Fee engine: tiered and dynamic fee rates, discounts, flash-loan and
arbitrage fees, and fee distribution.

Rates are basis points and amounts are WAD. Every fee amount is floored.
The engine only computes fees; applying them to balances is the caller's
responsibility.
"""

from typing import Optional, Sequence

from . import fixed_point as fp
from .constants import (
    BPS_DENOMINATOR,
    FREQUENCY_TIERS,
    GAS_PRICE_TIERS,
    VOLUME_TIERS,
    ActionKind,
)
from .exceptions import InvalidBasisPoints, InvalidTierConfig
from .metrics import EngineMetrics
from .types import Action, ArbitrageConfig, FeeConfig, FeeDistribution, FeeQuote
from .utils import format_bps, get_logger

logger = get_logger(__name__)


class FeeEngine:
    def __init__(
        self,
        config: Optional[FeeConfig] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.config = config or FeeConfig()
        self.metrics = metrics

    def calculate_tiered_fee(
        self, amount: int, thresholds: Sequence[int], fees: Sequence[int]
    ) -> int:
        """
        Fee of the highest tier whose threshold does not exceed amount.

        Amounts below the first threshold get the first tier's fee.

        Raises:
            InvalidTierConfig: If the tables are empty, differ in length or
                thresholds are not strictly increasing
            InvalidBasisPoints: If a tier fee exceeds 10000
        """
        try:
            self._validate_tiers(thresholds, fees)
        except InvalidTierConfig:
            if self.metrics:
                self.metrics.record_engine_error("fees", "InvalidTierConfig")
            raise

        selected = fees[0]
        for threshold, fee in zip(thresholds, fees):
            if amount < threshold:
                break
            selected = fee
        return selected

    @staticmethod
    def _validate_tiers(thresholds: Sequence[int], fees: Sequence[int]) -> None:
        if not thresholds or len(thresholds) != len(fees):
            raise InvalidTierConfig(
                f"Tier tables must be non-empty and equal length "
                f"({len(thresholds)} thresholds, {len(fees)} fees)"
            )
        for previous, current in zip(thresholds, thresholds[1:]):
            if current <= previous:
                raise InvalidTierConfig(
                    f"Tier thresholds must be strictly increasing: {previous} >= {current}",
                    details={"thresholds": list(thresholds)},
                )
        for index, fee in enumerate(fees):
            fp.validate_bps(fee, f"fees[{index}]")

    def calculate_dynamic_fee(
        self,
        base_fee: int,
        user_volume: int,
        time_since_last_tx: Optional[int],
        gas_price: int,
    ) -> int:
        """
        Base fee plus volume, frequency and gas-price increments, clamped.

        Each increment is the first matching tier's share of its configured
        multiplier. Clamping to [min_fee_bps, max_fee_bps] happens once, after
        all increments are added. time_since_last_tx of None means the user
        has no prior transaction.
        """
        fp.validate_bps(base_fee, "base_fee")
        config = self.config
        fee = base_fee

        for threshold, share_bps in VOLUME_TIERS:
            if user_volume > threshold:
                fee += fp.percent(config.volume_multiplier_bps, share_bps)
                break

        if time_since_last_tx is not None:
            for threshold, share_bps in FREQUENCY_TIERS:
                if time_since_last_tx < threshold:
                    fee += fp.percent(config.time_multiplier_bps, share_bps)
                    break

        for threshold, share_bps in GAS_PRICE_TIERS:
            if gas_price > threshold:
                fee += fp.percent(config.gas_multiplier_bps, share_bps)
                break

        clamped = min(max(fee, config.min_fee_bps), config.max_fee_bps)
        if clamped != fee:
            logger.debug(
                f"Dynamic fee {format_bps(fee)} clamped to {format_bps(clamped)}"
            )
        return clamped

    def apply_discount(self, fee_bps: int, discount_bps: int) -> int:
        """Reduce a fee rate by a percentage of itself."""
        fp.validate_bps(fee_bps, "fee_bps")
        fp.validate_bps(discount_bps, "discount_bps")
        return fee_bps - fp.percent(fee_bps, discount_bps)

    def calculate_fee_amount(self, amount: int, fee_bps: int) -> int:
        fp.validate_bps(fee_bps, "fee_bps")
        return fp.percent(amount, fee_bps)

    def calculate_arbitrage_fee(
        self, profit: int, base_rate: int, min_profit_threshold: int = 0
    ) -> int:
        """Protocol share of arbitrage profit; nothing is charged below the threshold."""
        fp.validate_bps(base_rate, "base_rate")
        if profit < min_profit_threshold:
            return 0
        return fp.percent(profit, base_rate)

    def calculate_flash_fee(
        self, amount: int, flash_fee_bps: int, premium_bps: int = 0
    ) -> int:
        fp.validate_bps(flash_fee_bps, "flash_fee_bps")
        fp.validate_bps(premium_bps, "premium_bps")
        combined = fp.validate_bps(flash_fee_bps + premium_bps, "flash_fee_bps + premium_bps")
        return fp.percent(amount, combined)

    def calculate_fee_distribution(
        self,
        total: int,
        protocol_share_bps: int,
        treasury_share_bps: int,
        liquidity_share_bps: int,
    ) -> FeeDistribution:
        """
        Split a collected fee into protocol, treasury and liquidity parts.

        Each part is floored independently, so the parts never sum to more
        than total. What is left over (shares below 100% plus rounding dust)
        is returned as remainder and stays with the caller.

        Example:
            total=101 with shares 5000/3000/2000 -> 50, 30, 20, remainder 1

        Raises:
            InvalidBasisPoints: If any share or the sum of shares exceeds 10000
        """
        fp.validate_bps(protocol_share_bps, "protocol_share_bps")
        fp.validate_bps(treasury_share_bps, "treasury_share_bps")
        fp.validate_bps(liquidity_share_bps, "liquidity_share_bps")
        share_sum = protocol_share_bps + treasury_share_bps + liquidity_share_bps
        if share_sum > BPS_DENOMINATOR:
            raise InvalidBasisPoints(
                f"Fee shares sum to {share_sum} bps, above {BPS_DENOMINATOR}",
                parameter="share_sum",
                value=share_sum,
            )

        protocol = fp.percent(total, protocol_share_bps)
        treasury = fp.percent(total, treasury_share_bps)
        liquidity = fp.percent(total, liquidity_share_bps)
        return FeeDistribution(
            total=total,
            protocol=protocol,
            treasury=treasury,
            liquidity=liquidity,
            remainder=total - protocol - treasury - liquidity,
        )

    def quote_action(
        self, action: Action, arbitrage_config: Optional[ArbitrageConfig] = None
    ) -> FeeQuote:
        """
        Fee owed for a price-affecting action.

        Swaps pay the dynamic fee, flash loans the flash fee plus premium and
        arbitrage the protocol share of profit. Liquidity changes are free.
        """
        arbitrage_config = arbitrage_config or ArbitrageConfig()

        if action.kind == ActionKind.SWAP:
            fee_bps = self.calculate_dynamic_fee(
                self.config.base_fee_bps,
                action.user_volume,
                action.time_since_last_tx,
                action.gas_price,
            )
            fee_amount = self.calculate_fee_amount(action.amount, fee_bps)
        elif action.kind == ActionKind.FLASH_LOAN:
            fee_bps = arbitrage_config.flash_fee_bps + arbitrage_config.flash_premium_bps
            fee_amount = self.calculate_flash_fee(
                action.amount,
                arbitrage_config.flash_fee_bps,
                arbitrage_config.flash_premium_bps,
            )
        elif action.kind == ActionKind.ARBITRAGE:
            fee_bps = arbitrage_config.protocol_fee_bps
            fee_amount = self.calculate_arbitrage_fee(
                action.profit,
                arbitrage_config.protocol_fee_bps,
                arbitrage_config.min_profit_threshold,
            )
        else:
            fee_bps = 0
            fee_amount = 0

        return FeeQuote(kind=action.kind, fee_bps=fee_bps, fee_amount=fee_amount)
