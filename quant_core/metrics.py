"""
Prometheus metrics for the quant_core engines.

Metrics are collected into a caller-owned CollectorRegistry. The engines do
not expose them over the network; embedding applications scrape the
registry however they already serve metrics.
"""

import logging
import threading
import time
from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    REGISTRY,
)

logger = logging.getLogger(__name__)


class EngineMetrics:
    """
    Calculation metrics collection

    Provides Prometheus-compatible metrics for:
    - Swap simulations and price impact
    - TWAP updates, rejections and resets
    - Arbitrage evaluations and viability
    - Engine errors by type
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        self._lock = threading.RLock()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === PRICING METRICS ===
        self.swaps_simulated_total = Counter(
            "quant_core_swaps_simulated_total",
            "Total swap simulations computed",
            ["direction"],
            registry=self.registry,
        )

        self.swaps_applied_total = Counter(
            "quant_core_swaps_applied_total",
            "Total swaps applied to pool records",
            ["pair"],
            registry=self.registry,
        )

        self.price_impact_basis_points = Histogram(
            "quant_core_price_impact_basis_points",
            "Price impact of simulated swaps in basis points",
            buckets=[1, 5, 10, 25, 50, 100, 300, 1000, 5000],
            registry=self.registry,
        )

        self.slippage_rejections_total = Counter(
            "quant_core_slippage_rejections_total",
            "Swaps rejected for exceeding slippage tolerance",
            registry=self.registry,
        )

        # === TWAP METRICS ===
        self.twap_updates_total = Counter(
            "quant_core_twap_updates_total",
            "TWAP update attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.twap_resets_total = Counter(
            "quant_core_twap_resets_total",
            "Administrative TWAP resets",
            registry=self.registry,
        )

        # === ARBITRAGE METRICS ===
        self.opportunities_evaluated_total = Counter(
            "quant_core_opportunities_evaluated_total",
            "Arbitrage opportunities evaluated",
            ["viable"],
            registry=self.registry,
        )

        self.profit_margin_basis_points = Histogram(
            "quant_core_profit_margin_basis_points",
            "Projected net profit margin in basis points",
            buckets=[0, 5, 10, 20, 50, 100, 200, 500],
            registry=self.registry,
        )

        self.success_rate_basis_points = Gauge(
            "quant_core_success_rate_basis_points",
            "Rolling execution success rate (last 100 outcomes)",
            registry=self.registry,
        )

        self.executions_total = Counter(
            "quant_core_executions_total",
            "Opportunity executions by result",
            ["result"],
            registry=self.registry,
        )

        # === SYSTEM HEALTH METRICS ===
        self.engine_errors_total = Counter(
            "quant_core_engine_errors_total",
            "Total engine errors encountered",
            ["engine", "error_type"],
            registry=self.registry,
        )

        self.last_activity_timestamp = Gauge(
            "quant_core_last_activity_timestamp",
            "Unix timestamp of last engine activity",
            registry=self.registry,
        )

    # === METRIC RECORDING METHODS ===

    def record_swap_simulated(
        self, direction: str, price_impact_bps: Optional[int] = None
    ):
        """Record a swap simulation, with its price impact when one was computed"""
        with self._lock:
            self.swaps_simulated_total.labels(direction=direction).inc()
            if price_impact_bps is not None:
                self.price_impact_basis_points.observe(price_impact_bps)

    def record_swap_applied(self, pair: str):
        with self._lock:
            self.swaps_applied_total.labels(pair=pair).inc()
            self.last_activity_timestamp.set(time.time())

    def record_slippage_rejection(self):
        with self._lock:
            self.slippage_rejections_total.inc()

    def record_twap_update(self, accepted: bool):
        """Record a TWAP update attempt"""
        with self._lock:
            outcome = "accepted" if accepted else "rejected"
            self.twap_updates_total.labels(outcome=outcome).inc()

    def record_twap_reset(self):
        with self._lock:
            self.twap_resets_total.inc()

    def record_opportunity(self, viable: bool, profit_margin_bps: int = 0):
        """Record an arbitrage evaluation"""
        with self._lock:
            self.opportunities_evaluated_total.labels(
                viable="true" if viable else "false"
            ).inc()
            if profit_margin_bps > 0:
                self.profit_margin_basis_points.observe(profit_margin_bps)

    def record_execution(self, success: bool, success_rate_bps: int):
        with self._lock:
            self.executions_total.labels(
                result="success" if success else "failure"
            ).inc()
            self.success_rate_basis_points.set(success_rate_bps)
            self.last_activity_timestamp.set(time.time())

    def record_engine_error(self, engine: str, error_type: str):
        """Record an engine error"""
        with self._lock:
            self.engine_errors_total.labels(engine=engine, error_type=error_type).inc()

