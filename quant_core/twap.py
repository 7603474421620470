"""
Time-weighted average price tracking with manipulation resistance.

Each tracked pair owns a TWAPState record. The engine accumulates the
observed price integrated over time (RAY-seconds), rejects updates that
deviate from the current average by more than the configured tolerance and
derives windowed averages from cumulative snapshots.

Pair lifecycle:
    UNINITIALIZED --initialize--> ACTIVE --(no update past threshold)--> STALE
    STALE --update/reset_twap--> ACTIVE

The caller supplies the time for every call; nothing here reads a clock.
"""

from collections import deque
from typing import Callable, List, Optional, Tuple

from . import fixed_point as fp
from .constants import (
    BPS_DENOMINATOR,
    FRESHNESS_HEALTH_WEIGHT,
    MAX_BPS,
    OBSERVATION_HEALTH_WEIGHT,
    WAD_TO_RAY,
    TWAPEventType,
    TWAPStatus,
)
from .exceptions import StaleOrManipulatedPrice, ValidationError
from .metrics import EngineMetrics
from .types import Observation, TWAPConfig, TWAPEvent, TWAPState, TWAPStats
from .utils import format_bps, format_wad, get_logger

logger = get_logger(__name__)

TWAPListener = Callable[[TWAPEvent], None]


class TWAPEngine:
    """Manipulation-resistant reference price over caller-owned TWAPState records."""

    def __init__(
        self,
        config: Optional[TWAPConfig] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.config = config or TWAPConfig()
        self.metrics = metrics
        self._listeners: List[TWAPListener] = []

    def subscribe(self, callback: TWAPListener) -> None:
        """Register a callback receiving every TWAPEvent."""
        self._listeners.append(callback)

    def _emit(self, event: TWAPEvent) -> None:
        for callback in self._listeners:
            callback(event)

    @staticmethod
    def _require_time(state: TWAPState, time: int) -> None:
        if time < state.last_update_time:
            raise ValidationError(
                f"Time went backwards for {state.pair_key}: "
                f"{time} < last update {state.last_update_time}",
                details={"time": time, "last_update_time": state.last_update_time},
            )

    def _seed(self, state: TWAPState, price: int, time: int) -> None:
        state.cumulative_price = 0
        state.last_observed_price = price
        state.last_update_time = time
        state.first_observation_time = time
        state.observation_count = 1
        state.initialized = True
        state.observations = deque(maxlen=self.config.observation_capacity)
        state.observations.append(Observation(timestamp=time, cumulative_price=0, price=price))

    # === STATE TRANSITIONS ===

    def initialize(self, state: TWAPState, initial_price: int, time: int) -> None:
        """
        Seed an uninitialized pair.

        Raises:
            ValidationError: If the pair is already tracked or the price is zero
        """
        if state.initialized:
            raise ValidationError(
                f"TWAP for {state.pair_key} already initialized; use reset_twap"
            )
        if initial_price <= 0:
            raise ValidationError("initial_price must be greater than zero")

        self._seed(state, initial_price, time)
        logger.info(
            f"TWAP initialized for {state.pair_key} at {format_wad(initial_price)}"
        )
        self._emit(
            TWAPEvent(
                event_type=TWAPEventType.INITIALIZED,
                pair_key=state.pair_key,
                price=initial_price,
                timestamp=time,
            )
        )

    def update(self, state: TWAPState, new_price: int, time: int) -> bool:
        """
        Record a new observation if it passes the deviation gate.

        Returns False with the state untouched when the price deviates too
        far from the current average. An update on an uninitialized pair
        seeds it.

        Raises:
            ValidationError: If time is earlier than the last update
        """
        if not state.initialized:
            self.initialize(state, new_price, time)
            return True
        self._require_time(state, time)

        twap, deviation_bps = self._deviation(state, new_price, time)
        if not self.validate_against_twap(state, new_price, time):
            logger.warning(
                f"TWAP update rejected for {state.pair_key}: price "
                f"{format_wad(new_price)} vs twap {format_wad(twap)} "
                f"(deviation {format_bps(deviation_bps)})"
            )
            if self.metrics:
                self.metrics.record_twap_update(accepted=False)
            self._emit(
                TWAPEvent(
                    event_type=TWAPEventType.REJECTED,
                    pair_key=state.pair_key,
                    price=new_price,
                    timestamp=time,
                    reference_price=twap,
                    metadata={"deviation_bps": deviation_bps},
                )
            )
            return False

        elapsed = time - state.last_update_time
        state.cumulative_price = fp.add(
            state.cumulative_price,
            fp.mul(fp.mul(state.last_observed_price, elapsed), WAD_TO_RAY),
        )
        state.last_observed_price = new_price
        state.last_update_time = time
        state.observation_count += 1
        state.observations.append(
            Observation(
                timestamp=time,
                cumulative_price=state.cumulative_price,
                price=new_price,
            )
        )

        logger.debug(
            f"TWAP update {state.pair_key}: price={format_wad(new_price)} "
            f"twap={format_wad(twap)} observations={state.observation_count}"
        )
        if self.metrics:
            self.metrics.record_twap_update(accepted=True)
        self._emit(
            TWAPEvent(
                event_type=TWAPEventType.UPDATED,
                pair_key=state.pair_key,
                price=new_price,
                timestamp=time,
                reference_price=twap,
            )
        )
        return True

    def require_update(self, state: TWAPState, new_price: int, time: int) -> None:
        """
        Same as update, but a rejected observation raises.

        Raises:
            StaleOrManipulatedPrice: If the deviation gate rejects the price
        """
        if not self.update(state, new_price, time):
            twap, deviation_bps = self._deviation(state, new_price, time)
            raise StaleOrManipulatedPrice(
                f"Price {new_price} rejected for {state.pair_key}",
                price=new_price,
                reference=twap,
                deviation_bps=deviation_bps,
            )

    def reset_twap(self, state: TWAPState, price: int, time: int) -> None:
        """
        Administrative reseed. Discards the accumulator and history.

        Emits a RESET event, never UPDATED.
        """
        if price <= 0:
            raise ValidationError("reset price must be greater than zero")
        self._require_time(state, time)

        previous_price = state.last_observed_price
        self._seed(state, price, time)

        logger.warning(
            f"TWAP reset for {state.pair_key}: {format_wad(previous_price)} -> "
            f"{format_wad(price)}"
        )
        if self.metrics:
            self.metrics.record_twap_reset()
        self._emit(
            TWAPEvent(
                event_type=TWAPEventType.RESET,
                pair_key=state.pair_key,
                price=price,
                timestamp=time,
                reference_price=previous_price,
            )
        )

    # === READS ===

    def _cumulative_at(self, state: TWAPState, time: int) -> int:
        """Accumulator extended through the open segment up to time."""
        elapsed = time - state.last_update_time
        return fp.add(
            state.cumulative_price,
            fp.mul(fp.mul(state.last_observed_price, elapsed), WAD_TO_RAY),
        )

    def get_twap(self, state: TWAPState, current_time: int) -> int:
        """
        Time-weighted average since the first observation.

        Falls back to the last observed price until observation_period has
        elapsed. Pure: repeated calls with the same time return the same value.
        """
        if not state.initialized:
            raise ValidationError(f"TWAP for {state.pair_key} is not initialized")
        self._require_time(state, current_time)

        elapsed = current_time - state.first_observation_time
        if elapsed == 0 or elapsed < self.config.observation_period:
            return state.last_observed_price
        return fp.div(
            self._cumulative_at(state, current_time), fp.mul(elapsed, WAD_TO_RAY)
        )

    def _deviation(self, state: TWAPState, price: int, time: int) -> Tuple[int, int]:
        twap = self.get_twap(state, time)
        if twap == 0:
            return twap, MAX_BPS
        return twap, fp.mul_div(fp.abs_diff(price, twap), BPS_DENOMINATOR, twap)

    def validate_against_twap(
        self,
        state: TWAPState,
        new_price: int,
        time: int,
        max_deviation_bps: Optional[int] = None,
    ) -> bool:
        """True if new_price lies within max_deviation_bps of the current TWAP."""
        if max_deviation_bps is None:
            max_deviation_bps = self.config.max_price_deviation_bps
        fp.validate_bps(max_deviation_bps, "max_deviation_bps")
        if new_price <= 0:
            return False
        _, deviation_bps = self._deviation(state, new_price, time)
        return deviation_bps <= max_deviation_bps

    def get_twap_for_window(self, state: TWAPState, start: int, end: int) -> int:
        """
        Average price over [start, end] from two cumulative snapshots.

        Raises:
            ValidationError: If start >= end or start predates retained history
        """
        if not state.initialized:
            raise ValidationError(f"TWAP for {state.pair_key} is not initialized")
        if start >= end:
            raise ValidationError(f"Window start {start} must be before end {end}")
        oldest = state.observations[0].timestamp
        if start < oldest:
            raise ValidationError(
                f"Window start {start} predates retained history ({oldest})",
                details={"start": start, "oldest": oldest},
            )

        cumulative_start = self._snapshot_cumulative(state, start)
        cumulative_end = self._snapshot_cumulative(state, end)
        return fp.div(
            fp.sub(cumulative_end, cumulative_start), fp.mul(end - start, WAD_TO_RAY)
        )

    @staticmethod
    def _snapshot_cumulative(state: TWAPState, time: int) -> int:
        # Latest snapshot at or before time, extended by its price.
        anchor = state.observations[0]
        for observation in state.observations:
            if observation.timestamp > time:
                break
            anchor = observation
        elapsed = time - anchor.timestamp
        return fp.add(
            anchor.cumulative_price, fp.mul(fp.mul(anchor.price, elapsed), WAD_TO_RAY)
        )

    def is_twap_stale(self, state: TWAPState, current_time: int) -> bool:
        if not state.initialized:
            return True
        return current_time - state.last_update_time > self.config.staleness_threshold

    def get_status(self, state: TWAPState, current_time: int) -> TWAPStatus:
        if not state.initialized:
            return TWAPStatus.UNINITIALIZED
        if self.is_twap_stale(state, current_time):
            return TWAPStatus.STALE
        return TWAPStatus.ACTIVE

    def calculate_health_score(self, state: TWAPState, current_time: int) -> int:
        """
        Confidence in the reference price, 0..10000.

        Weighted blend of freshness (time left before the staleness
        threshold) and observation depth (count against min_observations).
        """
        if not state.initialized:
            return 0

        age = max(current_time - state.last_update_time, 0)
        threshold = self.config.staleness_threshold
        if age > threshold:
            freshness = 0
        elif threshold == 0:
            freshness = MAX_BPS
        else:
            freshness = fp.mul_div(threshold - age, MAX_BPS, threshold)

        min_observations = self.config.min_observations
        depth = fp.mul_div(
            min(state.observation_count, min_observations), MAX_BPS, min_observations
        )

        return (
            freshness * FRESHNESS_HEALTH_WEIGHT + depth * OBSERVATION_HEALTH_WEIGHT
        ) // BPS_DENOMINATOR

    def get_twap_stats(self, state: TWAPState, current_time: int) -> TWAPStats:
        status = self.get_status(state, current_time)
        if status == TWAPStatus.UNINITIALIZED:
            twap = 0
            time_since_update = 0
        else:
            twap = self.get_twap(state, current_time)
            time_since_update = current_time - state.last_update_time

        return TWAPStats(
            twap=twap,
            last_price=state.last_observed_price,
            last_update_time=state.last_update_time,
            observation_count=state.observation_count,
            time_since_update=time_since_update,
            is_stale=status != TWAPStatus.ACTIVE,
            health_score=self.calculate_health_score(state, current_time),
            status=status.value,
        )
