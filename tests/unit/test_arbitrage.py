"""Unit tests for arbitrage detection, risk and projection."""

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from quant_core.arbitrage import ArbitrageEngine
from quant_core.constants import GWEI, WAD, RiskLevel
from quant_core.exceptions import SlippageExceeded, ValidationError
from quant_core.metrics import EngineMetrics
from quant_core.twap import TWAPEngine
from quant_core.types import ArbitrageConfig, Pool, TWAPState

M = 1_000_000 * WAD


@pytest.fixture
def engine():
    return ArbitrageEngine()


@pytest.fixture
def cheap_pool():
    """B trades at 1.1 per A."""
    return Pool("A", "B", reserve_a=M, reserve_b=1_100_000 * WAD)


@pytest.fixture
def dear_pool():
    """A trades at 1.1 per B."""
    return Pool("A", "B", reserve_a=1_100_000 * WAD, reserve_b=M)


@pytest.fixture
def triangle():
    return (
        Pool("A", "B", reserve_a=M, reserve_b=M),
        Pool("B", "C", reserve_a=M, reserve_b=M),
        Pool("C", "A", reserve_a=M, reserve_b=1_050_000 * WAD),
    )


class TestSimulation:
    def test_simulate_triangle(self, engine, triangle):
        amounts = engine.simulate_path(triangle, 1_000 * WAD, "A")
        assert amounts == (
            1_000 * WAD,
            996006981039903216493,
            992033851673014363345,
            1037484505533070266922,
        )

    def test_gross_profit(self, engine, triangle):
        assert engine.calculate_gross_profit(triangle, 1_000 * WAD, "A") == 37484505533070266922

    def test_gross_profit_never_negative(self, engine, triangle):
        reverse = (triangle[2], triangle[1], triangle[0])
        assert engine.calculate_gross_profit(reverse, 1_000 * WAD, "A") == 0

    def test_path_must_be_cycle(self, engine, triangle):
        with pytest.raises(ValidationError):
            engine.simulate_path(triangle[:2], WAD, "A")

    def test_path_cannot_reuse_pool(self, engine, cheap_pool):
        with pytest.raises(ValidationError):
            engine.simulate_path((cheap_pool, cheap_pool), WAD, "A")

    def test_empty_path(self, engine):
        with pytest.raises(ValidationError):
            engine.simulate_path((), WAD, "A")


class TestFees:
    def test_total_fees(self, engine):
        fees = engine.calculate_total_fees(1_000 * WAD, 200 * WAD, 0)
        assert fees.gas_cost == 0
        assert fees.flash_loan_fee == WAD * 9 // 10
        assert fees.protocol_fee == 2 * WAD
        assert fees.total == fees.flash_loan_fee + fees.protocol_fee

    def test_gas_cost_buffered(self, engine):
        # 250k gas * 100 gwei * 1.1 = 0.0275 native token
        assert engine.calculate_gas_cost(100 * GWEI) == 275 * WAD // 10_000

    def test_gas_cost_in_path_token(self):
        engine = ArbitrageEngine(config=ArbitrageConfig(native_token_price=2_000 * WAD))
        assert engine.calculate_gas_cost(100 * GWEI) == 55 * WAD


class TestRisk:
    def test_assess_small_trade(self, engine, cheap_pool, dear_pool):
        risk = engine.assess_risk((cheap_pool, dear_pool), 1_000 * WAD, "A")
        assert risk.max_price_impact_bps == 40
        assert risk.slippage_bps == 20
        assert risk.max_utilization_bps == 10
        assert (risk.price_impact_risk, risk.slippage_risk, risk.liquidity_risk) == (
            1_333,
            2_000,
            100,
        )
        assert risk.risk_score == 1_163
        assert not risk.price_deviation_flagged

    def test_factor_saturates(self, engine, triangle):
        risk = engine.assess_risk(triangle, 10_000 * WAD, "A")
        assert risk.slippage_bps == 289
        assert risk.slippage_risk == 10_000
        assert risk.risk_score == 5_006

    def test_twap_deviation_saturates_score(self, engine, triangle):
        closing = triangle[2]
        state = TWAPState(pair_key=closing.pair_key)
        TWAPEngine().initialize(state, 1_020_000_000_000_000_000, 0)

        # closing pool prices A at 0.952 C, about 6.6% away from the 1.02 reference
        risk = engine.assess_risk(
            triangle,
            1_000 * WAD,
            "A",
            reference_states={closing.pair_key: state},
            current_time=100,
        )
        assert risk.price_deviation_flagged
        assert risk.risk_score == 10_000

    def test_twap_reference_within_threshold(self, engine, triangle):
        closing = triangle[2]
        state = TWAPState(pair_key=closing.pair_key)
        TWAPEngine().initialize(state, 950_000_000_000_000_000, 0)
        risk = engine.assess_risk(
            triangle,
            1_000 * WAD,
            "A",
            reference_states={closing.pair_key: state},
            current_time=100,
        )
        assert not risk.price_deviation_flagged
        assert risk.risk_score == 1_420

    def test_twap_reference_ignores_token_order(self, engine):
        forward = Pool("A", "B", reserve_a=M, reserve_b=2 * M)
        reversed_pool = Pool("B", "A", reserve_a=2 * M, reserve_b=M)
        assert forward.pair_key == reversed_pool.pair_key
        assert forward.base_token == reversed_pool.base_token == "A"

        state = TWAPState(pair_key=forward.pair_key)
        TWAPEngine().initialize(state, 2 * WAD, 0)
        risk = engine.assess_risk(
            (forward, reversed_pool),
            1_000 * WAD,
            "A",
            reference_states={forward.pair_key: state},
            current_time=10,
        )
        assert not risk.price_deviation_flagged
        assert (risk.price_impact_risk, risk.slippage_risk, risk.liquidity_risk) == (
            1_300,
            1_900,
            100,
        )
        assert risk.risk_score == 1_120

    def test_risk_level(self, engine, cheap_pool, dear_pool, triangle):
        small = engine.assess_risk((cheap_pool, dear_pool), 1_000 * WAD, "A")
        assert small.risk_level == RiskLevel.LOW
        # slippage saturates at 10k, score 5006
        large = engine.assess_risk(triangle, 10_000 * WAD, "A")
        assert large.risk_level == RiskLevel.HIGH

    def test_twap_reference_needs_time(self, engine, cheap_pool, dear_pool):
        state = TWAPState(pair_key=cheap_pool.pair_key)
        TWAPEngine().initialize(state, WAD, 0)
        with pytest.raises(ValidationError):
            engine.assess_risk(
                (cheap_pool, dear_pool), WAD, "A", reference_states={cheap_pool.pair_key: state}
            )


class TestSuccessProbability:
    def test_default_without_history(self, engine):
        assert engine.success_rate() == 8_000
        assert engine.calculate_success_probability(1_000) == 8_000

    def test_penalty_above_midpoint(self, engine):
        assert engine.calculate_success_probability(5_000) == 8_000
        assert engine.calculate_success_probability(6_500) == 6_500
        assert engine.calculate_success_probability(10_000) == 3_000

    def test_rolling_history(self, engine):
        for _ in range(3):
            engine.record_outcome(True)
        engine.record_outcome(False)
        assert engine.success_rate() == 7_500

    def test_history_evicts_oldest(self):
        engine = ArbitrageEngine(config=ArbitrageConfig(history_capacity=100))
        for _ in range(100):
            engine.record_outcome(False)
        for _ in range(100):
            engine.record_outcome(True)
        assert engine.history_size == 100
        assert engine.success_rate() == 10_000

        engine.record_outcome(False)
        assert engine.success_rate() == 9_900


class TestProjection:
    def test_viable_triangle(self, engine, triangle):
        projection = engine.calculate_projected_profit(triangle, 1_000 * WAD, 0, "A")
        assert projection.gross_profit == 37484505533070266922
        assert projection.total_fees == 900000000000000000 + 374845055330702669
        assert projection.net_profit == 36209660477739564253
        assert projection.profit_margin == 362
        assert projection.risk_score == 1_420
        assert projection.success_probability == 8_000
        assert projection.is_viable

    def test_risk_gate(self, engine, triangle):
        projection = engine.calculate_projected_profit(triangle, 10_000 * WAD, 0, "A")
        assert projection.net_profit > 0
        assert projection.risk_score == 5_006
        assert not projection.is_viable

    def test_success_probability_gate(self, engine, triangle):
        for _ in range(10):
            engine.record_outcome(False)
        projection = engine.calculate_projected_profit(triangle, 1_000 * WAD, 0, "A")
        assert projection.success_probability == 0
        assert not projection.is_viable

    def test_unprofitable_path_not_viable(self, engine, triangle):
        reverse = (triangle[2], triangle[1], triangle[0])
        projection = engine.calculate_projected_profit(reverse, 1_000 * WAD, 0, "A")
        assert projection.net_profit == 0
        assert not projection.is_viable

    def test_check_viability(self):
        engine = ArbitrageEngine(config=ArbitrageConfig(min_profit_threshold=100))
        assert not engine.check_viability(50, 1_000, 9_000)
        assert engine.check_viability(100, 5_000, 7_000)
        assert not engine.check_viability(150, 5_001, 9_000)
        assert not engine.check_viability(150, 1_000, 6_999)

    def test_optimal_trade_size(self, engine, triangle):
        amount, net = engine.calculate_optimal_trade_size(
            triangle, 1_000 * WAD, 41_000 * WAD, steps=40, start_token="A"
        )
        assert amount == 7_000 * WAD
        assert net == 127457124094408148961

    def test_optimal_trade_size_from_dust(self, engine, triangle):
        # a 1 unit input yields nothing on the first hop and scores zero
        amount, net = engine.calculate_optimal_trade_size(
            triangle, 1, 40_000 * WAD, steps=40, start_token="A"
        )
        assert amount == 7_000 * WAD - 6
        assert net == 127457124094408148962

    def test_optimal_trade_size_range(self, engine, triangle):
        with pytest.raises(ValidationError):
            engine.calculate_optimal_trade_size(triangle, 2 * WAD, WAD)


class TestDetection:
    def test_pairwise(self, engine, cheap_pool, dear_pool):
        opportunity = engine.find_pairwise_opportunity(cheap_pool, dear_pool, 1_000 * WAD, "A")
        assert opportunity is not None
        assert opportunity.gross_profit == 200241892465595184416
        assert opportunity.net_profit == 197339473540939232572
        assert opportunity.risk_score == 1_163
        assert opportunity.is_viable
        assert opportunity.route == ["A", "B", "A"]

    def test_pairwise_without_spread(self, engine):
        x = Pool("A", "B", reserve_a=M, reserve_b=M)
        y = Pool("A", "B", reserve_a=M, reserve_b=M)
        assert engine.find_pairwise_opportunity(x, y, 1_000 * WAD, "A") is None

    def test_pairwise_requires_same_pair(self, engine, cheap_pool, triangle):
        with pytest.raises(ValidationError):
            engine.find_pairwise_opportunity(cheap_pool, triangle[1], WAD, "A")

    def test_triangular(self, engine, triangle):
        opportunity = engine.find_triangular_opportunity(*triangle, 1_000 * WAD, "A")
        assert opportunity.route == ["A", "B", "C", "A"]
        assert opportunity.net_profit == 36209660477739564253

        reverse = engine.find_triangular_opportunity(
            triangle[2], triangle[1], triangle[0], 1_000 * WAD, "A"
        )
        assert reverse is None

    def test_detect_sorted_by_net_profit(self, engine, triangle, cheap_pool, dear_pool):
        empty = Pool("A", "D", reserve_a=0, reserve_b=0)
        other = Pool("A", "D", reserve_a=M, reserve_b=M)
        found = engine.detect_opportunities(
            [
                (triangle, 1_000 * WAD, "A"),
                ((cheap_pool, dear_pool), 1_000 * WAD, "A"),
                ((empty, other), 1_000 * WAD, "A"),
            ]
        )
        assert [o.net_profit for o in found] == [
            197339473540939232572,
            36209660477739564253,
        ]

    def test_metrics(self, triangle):
        metrics = EngineMetrics(CollectorRegistry())
        engine = ArbitrageEngine(metrics=metrics)
        engine.evaluate_opportunity(triangle, 1_000 * WAD, 0, "A")

        output = generate_latest(metrics.registry).decode("utf-8")
        assert 'quant_core_opportunities_evaluated_total{viable="true"} 1.0' in output


class TestExecution:
    def test_execute(self, engine, triangle):
        opportunity = engine.evaluate_opportunity(triangle, 1_000 * WAD, 0, "A")
        receipt = engine.execute_opportunity(opportunity)

        assert receipt.success
        assert receipt.amounts == opportunity.amounts
        assert receipt.realized_profit == 36209660477739564253
        assert triangle[0].reserve_a == M + 1_000 * WAD
        assert triangle[2].reserve_b == 1_050_000 * WAD - 1037484505533070266922
        assert engine.history_size == 1
        assert engine.success_rate() == 10_000

    def test_execute_refuses_on_slippage(self, engine, triangle):
        opportunity = engine.evaluate_opportunity(triangle, 1_000 * WAD, 0, "A")
        with pytest.raises(SlippageExceeded):
            engine.execute_opportunity(opportunity, min_amount_out=2_000 * WAD)

        assert triangle[0].reserve_a == M
        assert engine.success_rate() == 0

    def test_execute_after_reserves_moved(self, engine, triangle):
        opportunity = engine.evaluate_opportunity(triangle, 1_000 * WAD, 0, "A")
        triangle[2].reserve_b = M
        with pytest.raises(SlippageExceeded):
            engine.execute_opportunity(opportunity)
