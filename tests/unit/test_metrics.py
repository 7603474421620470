"""
Unit tests for Prometheus metrics
"""

import threading

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from quant_core.metrics import EngineMetrics


@pytest.fixture
def test_registry():
    """Create a test-specific registry"""
    return CollectorRegistry()


@pytest.fixture
def metrics(test_registry):
    """Create EngineMetrics instance with test registry"""
    return EngineMetrics(test_registry)


class TestEngineMetrics:
    """Test EngineMetrics functionality"""

    def test_initialization(self, metrics):
        assert metrics.registry is not None
        assert hasattr(metrics, "swaps_simulated_total")
        assert hasattr(metrics, "twap_updates_total")
        assert hasattr(metrics, "profit_margin_basis_points")

    def test_pricing_metrics(self, metrics):
        metrics.record_swap_simulated("exact_in", price_impact_bps=12)
        metrics.record_swap_applied("usdc/weth")
        metrics.record_slippage_rejection()

        output = generate_latest(metrics.registry).decode("utf-8")
        assert 'quant_core_swaps_simulated_total{direction="exact_in"} 1.0' in output
        assert 'quant_core_swaps_applied_total{pair="usdc/weth"} 1.0' in output
        assert "quant_core_slippage_rejections_total 1.0" in output
        assert "quant_core_price_impact_basis_points_count 1.0" in output

    def test_swap_without_impact_is_not_observed(self, metrics):
        metrics.record_swap_simulated("exact_out")

        output = generate_latest(metrics.registry).decode("utf-8")
        assert 'quant_core_swaps_simulated_total{direction="exact_out"} 1.0' in output
        assert "quant_core_price_impact_basis_points_count 0.0" in output

    def test_twap_metrics(self, metrics):
        metrics.record_twap_update(accepted=True)
        metrics.record_twap_update(accepted=False)
        metrics.record_twap_reset()

        output = generate_latest(metrics.registry).decode("utf-8")
        assert 'quant_core_twap_updates_total{outcome="accepted"} 1.0' in output
        assert 'quant_core_twap_updates_total{outcome="rejected"} 1.0' in output
        assert "quant_core_twap_resets_total 1.0" in output

    def test_arbitrage_metrics(self, metrics):
        metrics.record_opportunity(True, profit_margin_bps=25)
        metrics.record_opportunity(False)
        metrics.record_execution(True, success_rate_bps=9000)

        output = generate_latest(metrics.registry).decode("utf-8")
        assert 'quant_core_opportunities_evaluated_total{viable="true"} 1.0' in output
        assert 'quant_core_opportunities_evaluated_total{viable="false"} 1.0' in output
        assert 'quant_core_executions_total{result="success"} 1.0' in output
        assert "quant_core_success_rate_basis_points 9000.0" in output
        assert "quant_core_last_activity_timestamp" in output

    def test_engine_errors(self, metrics):
        metrics.record_engine_error("fees", "InvalidTierConfig")
        output = generate_latest(metrics.registry).decode("utf-8")
        assert (
            'quant_core_engine_errors_total{engine="fees",error_type="InvalidTierConfig"} 1.0'
            in output
        )

    def test_thread_safety(self, metrics):
        """Test thread-safe metric updates"""

        def update_metrics():
            for _ in range(100):
                metrics.record_twap_update(accepted=True)

        threads = [threading.Thread(target=update_metrics) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        output = generate_latest(metrics.registry).decode("utf-8")
        assert 'quant_core_twap_updates_total{outcome="accepted"} 500.0' in output
