"""
Patient Cost Estimation Services.

Benefit adjudication for out-of-pocket estimates: modifier pricing, plan-aware
limit arithmetic, the copay/deductible/coinsurance waterfall, copay
strategies, and the estimate entry point.
"""

from src.services.estimate.modifiers import (
    PRICING_MODIFIERS,
    ModifierResolution,
    PricingModifier,
    parse_modifier_codes,
    resolve_modifiers,
)
from src.services.estimate.limits import (
    AccumulatorState,
    plan_aware_remaining,
    remaining,
    remaining_deductible,
    remaining_oop,
)
from src.services.estimate.waterfall import (
    PricedAllowed,
    WaterfallResult,
    effective_coinsurance,
    effective_copay,
    price_allowed_amount,
    run_waterfall,
)
from src.services.estimate.copay_strategies import (
    CopayStrategy,
    HighestCopayOnlyStrategy,
    HighestCopayPlusRemainderStrategy,
    StandardWaterfallStrategy,
    get_copay_strategy,
)
from src.services.estimate.service import (
    EstimateService,
    estimate,
    get_estimate_service,
    oop_exhausted_reason,
)

__all__ = [
    # Modifiers
    "PRICING_MODIFIERS",
    "ModifierResolution",
    "PricingModifier",
    "parse_modifier_codes",
    "resolve_modifiers",
    # Limits
    "AccumulatorState",
    "plan_aware_remaining",
    "remaining",
    "remaining_deductible",
    "remaining_oop",
    # Waterfall
    "PricedAllowed",
    "WaterfallResult",
    "effective_coinsurance",
    "effective_copay",
    "price_allowed_amount",
    "run_waterfall",
    # Copay strategies
    "CopayStrategy",
    "HighestCopayOnlyStrategy",
    "HighestCopayPlusRemainderStrategy",
    "StandardWaterfallStrategy",
    "get_copay_strategy",
    # Service
    "EstimateService",
    "estimate",
    "get_estimate_service",
    "oop_exhausted_reason",
]
