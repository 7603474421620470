"""
Arbitrage detection and profit projection.

An opportunity is a closed path of pools starting and ending in the same
token. The engine simulates the swaps through PricingEngine, prices gas,
flash-loan and protocol fees through FeeEngine, scores the path's risk
(optionally against TWAP reference prices) and decides viability.

Viability requires all of:
    - net profit strictly positive and at least min_profit_threshold
    - risk score at most max_risk_score
    - success probability at least min_success_probability
"""

from collections import deque
from typing import Deque, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import fixed_point as fp
from .constants import (
    BPS_DENOMINATOR,
    LIQUIDITY_RISK_WEIGHT,
    MAX_BPS,
    PRICE_IMPACT_RISK_WEIGHT,
    RISK_MIDPOINT,
    SLIPPAGE_RISK_WEIGHT,
    WAD,
    RiskLevel,
)
from .exceptions import InsufficientOutput, PricingError, SlippageExceeded, ValidationError
from .fees import FeeEngine
from .metrics import EngineMetrics
from .pricing import PricingEngine
from .twap import TWAPEngine
from .types import (
    ArbitrageConfig,
    ArbitrageOpportunity,
    ExecutionReceipt,
    Pool,
    ProfitProjection,
    RiskAssessment,
    RiskParams,
    TotalFees,
    TWAPState,
    clamp_bps,
)
from .utils import format_bps, format_wad, get_logger

logger = get_logger(__name__)

Candidate = Tuple[Sequence[Pool], int, str]


class ArbitrageEngine:
    """
    Pairwise and triangular arbitrage over constant-product pools.

    The outcome history is a ring buffer of the last history_capacity
    execution results used for the rolling success rate.
    """

    def __init__(
        self,
        pricing: Optional[PricingEngine] = None,
        fees: Optional[FeeEngine] = None,
        twap: Optional[TWAPEngine] = None,
        config: Optional[ArbitrageConfig] = None,
        risk_params: Optional[RiskParams] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.pricing = pricing or PricingEngine(metrics=metrics)
        self.fees = fees or FeeEngine(metrics=metrics)
        self.twap = twap or TWAPEngine(metrics=metrics)
        self.config = config or ArbitrageConfig()
        self.risk_params = risk_params or RiskParams()
        self.metrics = metrics
        self._history: Deque[bool] = deque(maxlen=self.config.history_capacity)

    # === PATH SIMULATION ===

    @staticmethod
    def _resolve_start(path: Sequence[Pool], start_token: Optional[str]) -> str:
        if not path:
            raise ValidationError("Arbitrage path cannot be empty")
        return start_token if start_token is not None else path[0].token_a

    @staticmethod
    def _validate_path(path: Sequence[Pool], start_token: str) -> None:
        if not path:
            raise ValidationError("Arbitrage path cannot be empty")
        if len({id(pool) for pool in path}) != len(path):
            raise ValidationError("Arbitrage path cannot use the same pool twice")

        token = start_token
        for pool in path:
            token = pool.other_token(token)
        if token != start_token:
            raise ValidationError(
                f"Path starting at {start_token} ends at {token}, not a cycle"
            )

    def simulate_path(
        self, path: Sequence[Pool], amount_in: int, start_token: Optional[str] = None
    ) -> Tuple[int, ...]:
        """
        Amounts held after each hop, beginning with amount_in.

        Raises:
            ValidationError: If the path is empty, reuses a pool or is not a cycle
            InsufficientOutput: If a hop yields nothing
        """
        start_token = self._resolve_start(path, start_token)
        self._validate_path(path, start_token)

        amounts = [amount_in]
        token = start_token
        for pool in path:
            reserve_in, reserve_out = pool.reserves_for(token)
            amount_out = self.pricing.get_amount_out(
                amounts[-1], reserve_in, reserve_out, pool.fee_bps
            )
            if amount_out == 0:
                raise InsufficientOutput(
                    f"Hop {token} -> {pool.other_token(token)} on {pool.pair_key} "
                    f"yields nothing for {amounts[-1]}"
                )
            amounts.append(amount_out)
            token = pool.other_token(token)
        return tuple(amounts)

    def calculate_gross_profit(
        self, path: Sequence[Pool], amount_in: int, start_token: Optional[str] = None
    ) -> int:
        """Final amount minus amount_in, floored at zero."""
        final_amount = self.simulate_path(path, amount_in, start_token)[-1]
        return final_amount - amount_in if final_amount > amount_in else 0

    # === COSTS ===

    def calculate_gas_cost(self, gas_price: int) -> int:
        """
        Buffered gas cost expressed in path-token units.

        gas_price is in wei; the result is rounded up.
        """
        gas_wei = fp.mul(self.config.gas_limit, gas_price)
        buffered = fp.mul_div_up(
            gas_wei, BPS_DENOMINATOR + self.config.gas_buffer_bps, BPS_DENOMINATOR
        )
        return fp.mul_div_up(buffered, self.config.native_token_price, WAD)

    def calculate_total_fees(
        self, amount_in: int, gross_profit: int, gas_price: int
    ) -> TotalFees:
        config = self.config
        return TotalFees(
            gas_cost=self.calculate_gas_cost(gas_price),
            flash_loan_fee=self.fees.calculate_flash_fee(
                amount_in, config.flash_fee_bps, config.flash_premium_bps
            ),
            protocol_fee=self.fees.calculate_arbitrage_fee(
                gross_profit, config.protocol_fee_bps, config.min_profit_threshold
            ),
        )

    # === RISK ===

    @staticmethod
    def _normalize(value: int, threshold: int) -> int:
        # Saturates at the threshold rather than extrapolating past it.
        if value >= threshold:
            return MAX_BPS
        return fp.mul_div(value, MAX_BPS, threshold)

    def assess_risk(
        self,
        path: Sequence[Pool],
        amount_in: int,
        start_token: Optional[str] = None,
        reference_states: Optional[Mapping[str, TWAPState]] = None,
        current_time: Optional[int] = None,
    ) -> RiskAssessment:
        """
        Weighted risk of executing amount_in along path, 0..10000.

        Factors, each normalized against RiskParams:
            price impact   worst per-hop shortfall against the spot quote
            slippage       curve loss of the whole path net of swap fees
            liquidity      worst per-hop share of the input reserve consumed

        reference_states maps pair keys to TWAP states tracking the price of
        the pair key's first token (Pool.base_token) in the other token, so
        pools listing the same pair in either order share one reference. If
        any pool's spot price deviates from its TWAP by more than
        volatility_threshold_bps the score is 10000.
        """
        start_token = self._resolve_start(path, start_token)
        amounts = self.simulate_path(path, amount_in, start_token)
        params = self.risk_params

        max_impact_bps = 0
        max_utilization_bps = 0
        expected = amount_in
        token = start_token
        for pool, hop_in in zip(path, amounts):
            reserve_in, reserve_out = pool.reserves_for(token)
            impact = self.pricing.calculate_price_impact(
                hop_in, reserve_in, reserve_out, pool.fee_bps
            )
            max_impact_bps = max(max_impact_bps, impact)
            utilization = fp.mul_div(hop_in, BPS_DENOMINATOR, reserve_in)
            max_utilization_bps = max(max_utilization_bps, utilization)

            expected = fp.percent(expected, BPS_DENOMINATOR - pool.fee_bps)
            expected = fp.mul_div(expected, reserve_out, reserve_in)
            token = pool.other_token(token)

        realized = amounts[-1]
        slippage_bps = 0
        if expected > realized:
            slippage_bps = fp.mul_div(expected - realized, BPS_DENOMINATOR, expected)

        price_impact_risk = self._normalize(max_impact_bps, params.max_price_impact_bps)
        slippage_risk = self._normalize(slippage_bps, params.max_slippage_bps)
        liquidity_risk = self._normalize(
            max_utilization_bps, params.min_liquidity_ratio_bps
        )
        risk_score = (
            price_impact_risk * PRICE_IMPACT_RISK_WEIGHT
            + slippage_risk * SLIPPAGE_RISK_WEIGHT
            + liquidity_risk * LIQUIDITY_RISK_WEIGHT
        ) // BPS_DENOMINATOR

        flagged = False
        if reference_states:
            flagged = self._deviates_from_twap(path, reference_states, current_time)
            if flagged:
                risk_score = MAX_BPS

        return RiskAssessment(
            price_impact_risk=price_impact_risk,
            slippage_risk=slippage_risk,
            liquidity_risk=liquidity_risk,
            risk_score=clamp_bps(risk_score),
            max_price_impact_bps=max_impact_bps,
            slippage_bps=slippage_bps,
            max_utilization_bps=max_utilization_bps,
            price_deviation_flagged=flagged,
        )

    def _deviates_from_twap(
        self,
        path: Sequence[Pool],
        reference_states: Mapping[str, TWAPState],
        current_time: Optional[int],
    ) -> bool:
        if current_time is None:
            raise ValidationError("current_time is required to check TWAP references")

        threshold = self.risk_params.volatility_threshold_bps
        for pool in path:
            state = reference_states.get(pool.pair_key)
            if state is None or not state.initialized:
                continue
            twap = self.twap.get_twap(state, current_time)
            if twap == 0:
                continue
            spot = self.pricing.spot_price(pool, pool.base_token)
            deviation_bps = fp.mul_div(fp.abs_diff(spot, twap), BPS_DENOMINATOR, twap)
            if deviation_bps > threshold:
                logger.warning(
                    f"Spot {format_wad(spot)} on {pool.pair_key} deviates "
                    f"{format_bps(deviation_bps)} from TWAP {format_wad(twap)}"
                )
                return True
        return False

    # === SUCCESS TRACKING ===

    def record_outcome(self, success: bool) -> None:
        """Append an execution result; the oldest is evicted at capacity."""
        self._history.append(bool(success))

    @property
    def history_size(self) -> int:
        return len(self._history)

    def success_rate(self) -> int:
        """Rolling success rate in bps, or the configured default without history."""
        if not self._history:
            return self.config.default_success_rate
        return sum(self._history) * MAX_BPS // len(self._history)

    def calculate_success_probability(self, risk_score: int) -> int:
        """Rolling success rate minus the risk score's excess over the midpoint."""
        fp.validate_bps(risk_score, "risk_score")
        probability = self.success_rate()
        if risk_score > RISK_MIDPOINT:
            probability -= risk_score - RISK_MIDPOINT
        return clamp_bps(probability)

    # === PROJECTION ===

    def check_viability(
        self, net_profit: int, risk_score: int, success_probability: int
    ) -> bool:
        config = self.config
        return (
            net_profit >= config.min_profit_threshold
            and risk_score <= config.max_risk_score
            and success_probability >= config.min_success_probability
        )

    def calculate_projected_profit(
        self,
        path: Sequence[Pool],
        amount_in: int,
        gas_price: int = 0,
        start_token: Optional[str] = None,
        reference_states: Optional[Mapping[str, TWAPState]] = None,
        current_time: Optional[int] = None,
    ) -> ProfitProjection:
        projection, _, _ = self._project(
            path, amount_in, gas_price, start_token, reference_states, current_time
        )
        return projection

    def _project(
        self,
        path: Sequence[Pool],
        amount_in: int,
        gas_price: int,
        start_token: Optional[str],
        reference_states: Optional[Mapping[str, TWAPState]],
        current_time: Optional[int],
    ) -> Tuple[ProfitProjection, Tuple[int, ...], TotalFees]:
        start_token = self._resolve_start(path, start_token)
        amounts = self.simulate_path(path, amount_in, start_token)
        final_amount = amounts[-1]
        gross_profit = final_amount - amount_in if final_amount > amount_in else 0

        fees = self.calculate_total_fees(amount_in, gross_profit, gas_price)
        total_fees = fees.total
        net_profit = gross_profit - total_fees if gross_profit > total_fees else 0

        risk = self.assess_risk(
            path, amount_in, start_token, reference_states, current_time
        )
        success_probability = self.calculate_success_probability(risk.risk_score)

        projection = ProfitProjection(
            gross_profit=gross_profit,
            total_fees=total_fees,
            net_profit=net_profit,
            profit_margin=fp.mul_div(net_profit, BPS_DENOMINATOR, amount_in),
            risk_score=risk.risk_score,
            success_probability=success_probability,
            is_viable=net_profit > 0
            and self.check_viability(net_profit, risk.risk_score, success_probability),
        )
        return projection, amounts, fees

    def calculate_optimal_trade_size(
        self,
        path: Sequence[Pool],
        min_amount: int,
        max_amount: int,
        steps: Optional[int] = None,
        gas_price: int = 0,
        start_token: Optional[str] = None,
    ) -> Tuple[int, int]:
        """
        Bounded linear search for the input maximizing net profit.

        Walks from min_amount towards max_amount in equal steps and stops at
        the first step where net profit declines. The result is therefore a
        local optimum: a profit curve with several peaks can hide a better
        size further out. Sizes too small to survive every hop count as
        zero gross profit.

        Returns:
            (amount_in, net_profit) of the best size seen; net_profit is
            floored at zero
        """
        if min_amount == 0 or min_amount > max_amount:
            raise ValidationError(
                f"Invalid search range [{min_amount}, {max_amount}]"
            )
        steps = steps or self.config.optimal_search_steps
        step = max((max_amount - min_amount) // steps, 1)

        best_amount = min_amount
        best_net = None
        amount = min_amount
        while amount <= max_amount:
            try:
                final_amount = self.simulate_path(path, amount, start_token)[-1]
            except InsufficientOutput:
                # Dust rounds to nothing on some hop.
                final_amount = 0
            gross_profit = final_amount - amount if final_amount > amount else 0
            # Signed on purpose: a shrinking loss still counts as improvement.
            net = gross_profit - self.calculate_total_fees(
                amount, gross_profit, gas_price
            ).total
            if best_net is not None and net < best_net:
                break
            best_amount, best_net = amount, net
            amount += step

        logger.debug(
            f"Optimal size search: {format_wad(best_amount)} "
            f"(net {best_net}) in [{format_wad(min_amount)}, {format_wad(max_amount)}]"
        )
        return best_amount, max(best_net, 0)

    # === DETECTION ===

    def evaluate_opportunity(
        self,
        path: Sequence[Pool],
        amount_in: int,
        gas_price: int = 0,
        start_token: Optional[str] = None,
        reference_states: Optional[Mapping[str, TWAPState]] = None,
        current_time: Optional[int] = None,
    ) -> ArbitrageOpportunity:
        start_token = self._resolve_start(path, start_token)
        projection, amounts, fees = self._project(
            path, amount_in, gas_price, start_token, reference_states, current_time
        )

        if self.metrics:
            self.metrics.record_opportunity(
                projection.is_viable, projection.profit_margin
            )
        logger.debug(
            f"Evaluated {' -> '.join([start_token] + [p.pair_key for p in path])}: "
            f"gross={format_wad(projection.gross_profit)} "
            f"net={format_wad(projection.net_profit)} "
            f"risk={projection.risk_score} "
            f"({RiskLevel.from_score(projection.risk_score).value}) "
            f"viable={projection.is_viable}"
        )

        return ArbitrageOpportunity(
            path=tuple(path),
            start_token=start_token,
            amount_in=amount_in,
            gross_profit=projection.gross_profit,
            total_fees=projection.total_fees,
            net_profit=projection.net_profit,
            risk_score=projection.risk_score,
            success_probability=projection.success_probability,
            is_viable=projection.is_viable,
            amounts=amounts,
            fee_breakdown=fees,
        )

    def find_pairwise_opportunity(
        self,
        pool_x: Pool,
        pool_y: Pool,
        amount_in: int,
        token: str,
        gas_price: int = 0,
    ) -> Optional[ArbitrageOpportunity]:
        """
        Buy on pool_x, sell on pool_y. Both pools must trade the same pair.

        Returns None when the round trip has no gross profit.
        """
        if pool_x.pair_key != pool_y.pair_key:
            raise ValidationError(
                f"Pairwise arbitrage needs one pair, got {pool_x.pair_key} "
                f"and {pool_y.pair_key}"
            )
        opportunity = self.evaluate_opportunity(
            (pool_x, pool_y), amount_in, gas_price, token
        )
        return opportunity if opportunity.gross_profit > 0 else None

    def find_triangular_opportunity(
        self,
        pool_ab: Pool,
        pool_bc: Pool,
        pool_ca: Pool,
        amount_in: int,
        start_token: str,
        gas_price: int = 0,
    ) -> Optional[ArbitrageOpportunity]:
        """A -> B -> C -> A through three pools; None without gross profit."""
        opportunity = self.evaluate_opportunity(
            (pool_ab, pool_bc, pool_ca), amount_in, gas_price, start_token
        )
        return opportunity if opportunity.gross_profit > 0 else None

    def detect_opportunities(
        self,
        candidates: Iterable[Candidate],
        gas_price: int = 0,
        reference_states: Optional[Mapping[str, TWAPState]] = None,
        current_time: Optional[int] = None,
    ) -> List[ArbitrageOpportunity]:
        """
        Evaluate (path, amount_in, start_token) candidates.

        Candidates that cannot be priced are skipped. Returns those with gross
        profit, best net profit first.
        """
        found = []
        for path, amount_in, start_token in candidates:
            try:
                opportunity = self.evaluate_opportunity(
                    path,
                    amount_in,
                    gas_price,
                    start_token,
                    reference_states,
                    current_time,
                )
            except PricingError as e:
                logger.debug(f"Skipping unpriceable candidate from {start_token}: {e}")
                if self.metrics:
                    self.metrics.record_engine_error("arbitrage", type(e).__name__)
                continue
            if opportunity.gross_profit > 0:
                found.append(opportunity)

        found.sort(key=lambda o: o.net_profit, reverse=True)
        if found:
            logger.info(
                f"Detected {len(found)} opportunities, "
                f"{sum(1 for o in found if o.is_viable)} viable"
            )
        return found

    # === EXECUTION ===

    def execute_opportunity(
        self,
        opportunity: ArbitrageOpportunity,
        gas_price: int = 0,
        min_amount_out: Optional[int] = None,
    ) -> ExecutionReceipt:
        """
        Re-simulate against current reserves and apply the swaps.

        min_amount_out defaults to amount_in plus the recomputed fees, so a
        trade that would no longer break even is refused. The receipt carries
        the fees owed; settling them is the caller's job.
        realized_profit is negative when a caller-supplied min_amount_out
        accepted a loss.

        Raises:
            SlippageExceeded: If the final amount is below min_amount_out
        """
        path = opportunity.path
        amount_in = opportunity.amount_in
        amounts = self.simulate_path(path, amount_in, opportunity.start_token)
        final_amount = amounts[-1]
        gross_profit = final_amount - amount_in if final_amount > amount_in else 0
        fees = self.calculate_total_fees(amount_in, gross_profit, gas_price)

        if min_amount_out is None:
            min_amount_out = amount_in + fees.total
        try:
            self.pricing.check_slippage(final_amount, min_amount_out)
        except SlippageExceeded:
            self._finish_execution(False)
            logger.warning(
                f"Execution refused: final {format_wad(final_amount)} below "
                f"minimum {format_wad(min_amount_out)}"
            )
            raise

        token = opportunity.start_token
        for pool, hop_in in zip(path, amounts):
            result = self.pricing.apply_swap(pool, token, hop_in)
            token = result.token_out

        realized_profit = final_amount - amount_in - fees.total
        self._finish_execution(True)
        logger.info(
            f"Executed arbitrage from {opportunity.start_token}: "
            f"realized {format_wad(realized_profit)}"
        )
        return ExecutionReceipt(
            opportunity=opportunity,
            amounts=amounts,
            realized_profit=realized_profit,
            fees=fees,
            success=True,
        )

    def _finish_execution(self, success: bool) -> None:
        self.record_outcome(success)
        if self.metrics:
            self.metrics.record_execution(success, self.success_rate())
