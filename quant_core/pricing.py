"""
Constant-product pricing engine.

Implements swap quoting with the x*y=k formula and the fee taken on input,
LP share minting and redemption, price impact, slippage bounds and
impermanent loss. Output amounts are always rounded down and required
input amounts always rounded up, so a swap can never leak value out of a
pool.

The quoting functions are pure. apply_swap, add_liquidity and
remove_liquidity mutate a caller-owned Pool record; callers must serialize
mutations to any given pool.
"""

from typing import Optional, Tuple

from . import fixed_point as fp
from .constants import (
    BPS_DENOMINATOR,
    MAX_BPS,
    MINIMUM_LIQUIDITY,
    WAD,
    ZERO_ADDRESS,
    ActionKind,
)
from .exceptions import (
    InsufficientInput,
    InsufficientLiquidity,
    InsufficientOutput,
    InvariantViolation,
    SlippageExceeded,
)
from .metrics import EngineMetrics
from .types import Action, LiquidityMintResult, Pool, SwapResult
from .utils import format_bps, format_wad, get_logger

logger = get_logger(__name__)


def _is_valid_address(token) -> bool:
    return (
        isinstance(token, str)
        and bool(token.strip())
        and token.lower() != ZERO_ADDRESS
    )


class PricingEngine:
    """Constant-product AMM math over WAD-scaled integer reserves."""

    def __init__(self, metrics: Optional[EngineMetrics] = None):
        self.metrics = metrics

    # === QUOTING ===

    def get_amount_out(
        self, amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int
    ) -> int:
        """
        Output amount for an exact input, fee deducted from the input.

        out = in*(10000-fee)*reserve_out / (reserve_in*10000 + in*(10000-fee)),
        rounded down.

        Raises:
            InsufficientInput: If amount_in is zero
            InsufficientLiquidity: If either reserve is zero
            InvalidBasisPoints: If fee_bps is outside [0, 10000]
        """
        fp.validate_bps(fee_bps, "fee_bps")
        if amount_in == 0:
            raise InsufficientInput("amount_in must be greater than zero")
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientLiquidity(
                "Pool reserves must be non-zero",
                details={"reserve_in": reserve_in, "reserve_out": reserve_out},
            )

        amount_in_with_fee = fp.mul(amount_in, BPS_DENOMINATOR - fee_bps)
        numerator = fp.mul(amount_in_with_fee, reserve_out)
        denominator = fp.add(fp.mul(reserve_in, BPS_DENOMINATOR), amount_in_with_fee)
        amount_out = numerator // denominator

        if self.metrics:
            self.metrics.record_swap_simulated("exact_in")
        return amount_out

    def get_amount_in(
        self, amount_out: int, reserve_in: int, reserve_out: int, fee_bps: int
    ) -> int:
        """
        Input required for an exact output; inverse of get_amount_out.

        Rounds up by one unit past the floored quotient, so the pool's
        product never decreases when the returned input is paid.

        Raises:
            InsufficientOutput: If amount_out is zero
            InsufficientLiquidity: If a reserve is zero or amount_out >= reserve_out
                or the fee takes the entire input
        """
        fp.validate_bps(fee_bps, "fee_bps")
        if amount_out == 0:
            raise InsufficientOutput("amount_out must be greater than zero")
        if fee_bps == MAX_BPS:
            raise InsufficientLiquidity(
                "A 100% fee leaves nothing to buy amount_out with",
                details={"fee_bps": fee_bps},
            )
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientLiquidity(
                "Pool reserves must be non-zero",
                details={"reserve_in": reserve_in, "reserve_out": reserve_out},
            )
        if amount_out >= reserve_out:
            raise InsufficientLiquidity(
                f"amount_out {amount_out} exceeds available reserve {reserve_out}",
                details={"amount_out": amount_out, "reserve_out": reserve_out},
            )

        numerator = fp.mul(fp.mul(reserve_in, amount_out), BPS_DENOMINATOR)
        denominator = fp.mul(reserve_out - amount_out, BPS_DENOMINATOR - fee_bps)
        amount_in = fp.add(fp.div(numerator, denominator), 1)

        if self.metrics:
            self.metrics.record_swap_simulated("exact_out")
        return amount_in

    def quote(self, amount_a: int, reserve_a: int, reserve_b: int) -> int:
        """Amount of B matching amount_a at the current reserve ratio."""
        if amount_a == 0:
            raise InsufficientInput("amount_a must be greater than zero")
        if reserve_a == 0 or reserve_b == 0:
            raise InsufficientLiquidity("Pool reserves must be non-zero")
        return fp.mul_div(amount_a, reserve_b, reserve_a)

    def spot_price(self, pool: Pool, base_token: str) -> int:
        """Price of base_token denominated in the other token (WAD)."""
        reserve_base, reserve_quote = pool.reserves_for(base_token)
        if reserve_base == 0:
            raise InsufficientLiquidity(f"Pool {pool.pair_key} has no {base_token}")
        return fp.mul_div(reserve_quote, WAD, reserve_base)

    # === LIQUIDITY ===

    def mint_liquidity(
        self,
        amount_a: int,
        amount_b: int,
        reserve_a: int,
        reserve_b: int,
        total_supply: int,
    ) -> LiquidityMintResult:
        """
        LP shares issued for a deposit.

        The first deposit is seeded with the geometric mean of the amounts,
        less MINIMUM_LIQUIDITY shares that are locked forever so the share
        price cannot be inflated from a dust supply. Later deposits receive
        the smaller of the two pro-rata ratios.
        """
        if amount_a == 0 or amount_b == 0:
            raise InsufficientInput("Both deposit amounts must be greater than zero")

        locked = 0
        if total_supply == 0:
            root = fp.sqrt(fp.mul(amount_a, amount_b))
            if root <= MINIMUM_LIQUIDITY:
                raise InsufficientLiquidity(
                    f"Initial deposit too small: sqrt(a*b)={root} "
                    f"<= minimum liquidity {MINIMUM_LIQUIDITY}"
                )
            liquidity = root - MINIMUM_LIQUIDITY
            locked = MINIMUM_LIQUIDITY
        else:
            if reserve_a == 0 or reserve_b == 0:
                raise InsufficientLiquidity("Pool reserves must be non-zero")
            liquidity = fp.wmin(
                fp.mul_div(amount_a, total_supply, reserve_a),
                fp.mul_div(amount_b, total_supply, reserve_b),
            )

        if liquidity == 0:
            raise InsufficientLiquidity("Deposit mints zero liquidity")

        return LiquidityMintResult(
            liquidity=liquidity,
            amount_a=amount_a,
            amount_b=amount_b,
            locked_liquidity=locked,
        )

    def burn_liquidity(
        self, liquidity: int, reserve_a: int, reserve_b: int, total_supply: int
    ) -> Tuple[int, int]:
        """Pro-rata token amounts redeemed for liquidity shares, rounded down."""
        if liquidity == 0:
            raise InsufficientInput("liquidity must be greater than zero")
        if total_supply == 0 or liquidity > total_supply:
            raise InsufficientLiquidity(
                f"Cannot burn {liquidity} of total supply {total_supply}"
            )

        amount_a = fp.mul_div(liquidity, reserve_a, total_supply)
        amount_b = fp.mul_div(liquidity, reserve_b, total_supply)
        if amount_a == 0 or amount_b == 0:
            raise InsufficientLiquidity("Burn redeems zero of one token")
        return amount_a, amount_b

    # === IMPACT / SLIPPAGE ===

    def calculate_price_impact(
        self, amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int
    ) -> int:
        """
        Shortfall of the realized output against the spot quote, in bps.

        The spot quote is amount_in at the pre-trade reserve ratio, so the
        result includes both the curve impact and the swap fee.
        """
        spot_out = self.quote(amount_in, reserve_in, reserve_out)
        realized_out = self.get_amount_out(amount_in, reserve_in, reserve_out, fee_bps)
        if spot_out == 0:
            return 0
        impact_bps = fp.mul_div(spot_out - realized_out, BPS_DENOMINATOR, spot_out)

        if self.metrics:
            self.metrics.record_swap_simulated(
                "price_impact", price_impact_bps=impact_bps
            )
        return impact_bps

    def calculate_slippage_tolerance(self, amount_out: int, tolerance_bps: int) -> int:
        """Minimum acceptable output for a quoted amount and a tolerance."""
        fp.validate_bps(tolerance_bps, "tolerance_bps")
        return fp.mul_div(amount_out, BPS_DENOMINATOR - tolerance_bps, BPS_DENOMINATOR)

    def check_slippage(self, amount_out: int, min_amount_out: int) -> None:
        """
        Raises:
            SlippageExceeded: If amount_out is below min_amount_out
        """
        if amount_out < min_amount_out:
            if self.metrics:
                self.metrics.record_slippage_rejection()
            raise SlippageExceeded(
                f"Output {amount_out} below minimum {min_amount_out}",
                expected=min_amount_out,
                actual=amount_out,
            )

    def calculate_impermanent_loss(
        self, initial_price_ratio: int, current_price_ratio: int
    ) -> int:
        """
        Impermanent loss of a 50/50 position as a WAD fraction.

        IL = 1 - 2*sqrt(r)/(1+r) where r = current/initial. Both sqrt and the
        division round down, so the result never goes negative.

        Example:
            >>> PricingEngine().calculate_impermanent_loss(WAD, 4 * WAD) == WAD // 5
            True
        """
        r = fp.wdiv(current_price_ratio, initial_price_ratio)
        sqrt_r = fp.sqrt(fp.mul(r, WAD))
        holding_ratio = fp.mul_div(fp.mul(2, sqrt_r), WAD, fp.add(WAD, r))
        return WAD - holding_ratio

    def calculate_impermanent_loss_bps(
        self, initial_price_ratio: int, current_price_ratio: int
    ) -> int:
        loss = self.calculate_impermanent_loss(initial_price_ratio, current_price_ratio)
        return fp.mul_div(loss, BPS_DENOMINATOR, WAD)

    # === VALIDATION (boolean, never raises) ===

    def validate_swap_params(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        deadline: int,
        current_time: int,
    ) -> bool:
        """Cheap pre-check before quoting or mutating a pool."""
        if not _is_valid_address(token_in) or not _is_valid_address(token_out):
            return False
        if token_in == token_out:
            return False
        if not isinstance(amount_in, int) or amount_in <= 0:
            return False
        return deadline >= current_time

    def validate_liquidity_params(
        self,
        token_a: str,
        token_b: str,
        amount_a: int,
        amount_b: int,
        deadline: int,
        current_time: int,
    ) -> bool:
        if not _is_valid_address(token_a) or not _is_valid_address(token_b):
            return False
        if token_a == token_b:
            return False
        for amount in (amount_a, amount_b):
            if not isinstance(amount, int) or amount <= 0:
                return False
        return deadline >= current_time

    def validate_action(self, action: Action, current_time: int) -> bool:
        """Typed handler for the pricing side of action dispatch."""
        if action.kind == ActionKind.SWAP:
            return self.validate_swap_params(
                action.token_in,
                action.token_out,
                action.amount,
                action.deadline,
                current_time,
            )
        if action.kind in (ActionKind.ADD_LIQUIDITY, ActionKind.REMOVE_LIQUIDITY):
            return self.validate_liquidity_params(
                action.token_in,
                action.token_out,
                action.amount,
                action.amount_secondary,
                action.deadline,
                current_time,
            )
        if action.kind == ActionKind.FLASH_LOAN:
            return action.amount > 0 and action.deadline >= current_time
        if action.kind == ActionKind.ARBITRAGE:
            return action.deadline >= current_time
        return False

    # === POOL MUTATION ===

    def apply_swap(
        self, pool: Pool, token_in: str, amount_in: int, min_amount_out: int = 0
    ) -> SwapResult:
        """
        Execute an exact-input swap against a pool record.

        Raises:
            SlippageExceeded: If the output is below min_amount_out
            InsufficientOutput: If the input is too small to buy anything
            InvariantViolation: If the product of reserves would decrease
        """
        reserve_in, reserve_out = pool.reserves_for(token_in)
        amount_out = self.get_amount_out(amount_in, reserve_in, reserve_out, pool.fee_bps)
        if amount_out == 0:
            raise InsufficientOutput(
                f"Swap of {amount_in} into {pool.pair_key} yields nothing"
            )
        self.check_slippage(amount_out, min_amount_out)

        impact_bps = self.calculate_price_impact(
            amount_in, reserve_in, reserve_out, pool.fee_bps
        )

        k_before = pool.k
        new_reserve_in = fp.add(reserve_in, amount_in)
        new_reserve_out = fp.sub(reserve_out, amount_out)
        k_after = new_reserve_in * new_reserve_out
        if k_after < k_before:
            raise InvariantViolation(
                f"Swap would decrease k on {pool.pair_key}",
                k_before=k_before,
                k_after=k_after,
            )

        token_out = pool.other_token(token_in)
        if token_in == pool.token_a:
            pool.reserve_a, pool.reserve_b = new_reserve_in, new_reserve_out
        else:
            pool.reserve_b, pool.reserve_a = new_reserve_in, new_reserve_out

        logger.debug(
            f"Swap {pool.pair_key}: {format_wad(amount_in)} {token_in} -> "
            f"{format_wad(amount_out)} {token_out} "
            f"(fee={format_bps(pool.fee_bps)}, impact={format_bps(impact_bps)})"
        )
        if self.metrics:
            self.metrics.record_swap_applied(pool.pair_key)

        return SwapResult(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            fee_bps=pool.fee_bps,
            price_impact_bps=min(impact_bps, MAX_BPS),
        )

    def add_liquidity(
        self,
        pool: Pool,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int = 0,
        amount_b_min: int = 0,
    ) -> LiquidityMintResult:
        """
        Deposit at the current ratio, using as much of each desired amount
        as the ratio allows.

        Raises:
            SlippageExceeded: If the ratio-adjusted amount is below its minimum
        """
        if pool.reserve_a == 0 and pool.reserve_b == 0:
            amount_a, amount_b = amount_a_desired, amount_b_desired
        else:
            amount_b_optimal = self.quote(amount_a_desired, pool.reserve_a, pool.reserve_b)
            if amount_b_optimal <= amount_b_desired:
                self.check_slippage(amount_b_optimal, amount_b_min)
                amount_a, amount_b = amount_a_desired, amount_b_optimal
            else:
                amount_a_optimal = self.quote(
                    amount_b_desired, pool.reserve_b, pool.reserve_a
                )
                self.check_slippage(amount_a_optimal, amount_a_min)
                amount_a, amount_b = amount_a_optimal, amount_b_desired

        minted = self.mint_liquidity(
            amount_a, amount_b, pool.reserve_a, pool.reserve_b, pool.total_liquidity
        )
        pool.reserve_a = fp.add(pool.reserve_a, amount_a)
        pool.reserve_b = fp.add(pool.reserve_b, amount_b)
        pool.total_liquidity = fp.add(
            pool.total_liquidity, minted.liquidity + minted.locked_liquidity
        )

        logger.info(
            f"Liquidity added to {pool.pair_key}: {format_wad(amount_a)} "
            f"{pool.token_a} + {format_wad(amount_b)} {pool.token_b} "
            f"-> {minted.liquidity} shares"
        )
        return LiquidityMintResult(
            liquidity=minted.liquidity,
            amount_a=amount_a,
            amount_b=amount_b,
            locked_liquidity=minted.locked_liquidity,
        )

    def remove_liquidity(
        self,
        pool: Pool,
        liquidity: int,
        amount_a_min: int = 0,
        amount_b_min: int = 0,
    ) -> Tuple[int, int]:
        """Redeem shares from a pool record."""
        amount_a, amount_b = self.burn_liquidity(
            liquidity, pool.reserve_a, pool.reserve_b, pool.total_liquidity
        )
        self.check_slippage(amount_a, amount_a_min)
        self.check_slippage(amount_b, amount_b_min)

        pool.reserve_a = fp.sub(pool.reserve_a, amount_a)
        pool.reserve_b = fp.sub(pool.reserve_b, amount_b)
        pool.total_liquidity = fp.sub(pool.total_liquidity, liquidity)

        logger.info(
            f"Liquidity removed from {pool.pair_key}: {liquidity} shares -> "
            f"{format_wad(amount_a)} {pool.token_a} + {format_wad(amount_b)} {pool.token_b}"
        )
        return amount_a, amount_b
