"""
Single-entry dispatch for price-affecting actions.

Every Action passes the pricing validator first; allowed actions then get a
fee quote. The dispatcher only reports the fee. Charging it is up to the
caller, which keeps fee application in exactly one place.
"""

from typing import Optional

from .constants import ActionKind
from .fees import FeeEngine
from .pricing import PricingEngine
from .types import Action, ActionOutcome, ArbitrageConfig
from .utils import format_wad, get_logger

logger = get_logger(__name__)


class ActionDispatcher:
    def __init__(
        self,
        pricing: Optional[PricingEngine] = None,
        fees: Optional[FeeEngine] = None,
        arbitrage_config: Optional[ArbitrageConfig] = None,
    ):
        self.pricing = pricing or PricingEngine()
        self.fees = fees or FeeEngine()
        self.arbitrage_config = arbitrage_config or ArbitrageConfig()

    def dispatch(self, action: Action, current_time: int) -> ActionOutcome:
        """Validate an action and quote its fee; never mutates state."""
        if not isinstance(action.kind, ActionKind):
            return ActionOutcome(
                action=action, allowed=False, reason=f"unknown action kind {action.kind}"
            )

        if not self.pricing.validate_action(action, current_time):
            logger.debug(f"Action {action.kind.value} rejected at {current_time}")
            return ActionOutcome(
                action=action,
                allowed=False,
                reason="invalid parameters or expired deadline",
            )

        quote = self.fees.quote_action(action, self.arbitrage_config)
        logger.debug(
            f"Action {action.kind.value} allowed, fee {format_wad(quote.fee_amount)} "
            f"({quote.fee_bps} bps)"
        )
        return ActionOutcome(action=action, allowed=True, fee=quote)
