"""
Core Enumerations for the Patient Cost Estimator.
Source: Benefit adjudication design, plan topologies and copay strategies
"""

from enum import Enum


# =============================================================================
# Plan Configuration Enums
# =============================================================================


class PlanType(str, Enum):
    """Plan topology deciding which deductible/OOP limits bind.

    INDIVIDUAL -> only the individual limits apply
    AGGREGATE_FAMILY -> only the family-wide limits apply
    EMBEDDED_FAMILY -> both apply, the tighter one binds
    """

    INDIVIDUAL = "Individual"
    AGGREGATE_FAMILY = "AggregateFamily"
    EMBEDDED_FAMILY = "EmbeddedFamily"

    @property
    def has_family_limits(self) -> bool:
        """Whether family accumulators participate in this topology."""
        return self is not PlanType.INDIVIDUAL


class CopayLogic(str, Enum):
    """How copays combine with the deductible/coinsurance waterfall."""

    STANDARD_WATERFALL = "standard_waterfall"  # Every copay, then ded/coins
    HIGHEST_COPAY_ONLY = "highest_copay_only"  # Highest copay is the total cost
    HIGHEST_COPAY_PLUS_REMAINDER = "highest_copay_plus_remainder"  # Highest copay, waterfall on the rest

    @classmethod
    def _missing_(cls, value):
        # Unknown strategies fall back to the standard waterfall
        return cls.STANDARD_WATERFALL


# =============================================================================
# Audit Trail Enums
# =============================================================================


class StepCategory(str, Enum):
    """Category of a calculation breakdown step."""

    MODIFIER = "modifier"  # Pricing modifier adjustment (informational)
    BILLED_CAP = "billed_cap"  # Allowed amount capped to billed
    COPAY = "copay"
    HIGHEST_COPAY = "highest_copay"
    DEDUCTIBLE = "deductible"
    COINSURANCE = "coinsurance"
    RESPONSIBILITY_CAP = "responsibility_cap"  # Safety clamp to allowed amount
    PREVENTIVE = "preventive"
    OOP_MET = "oop_met"  # Early exit, out-of-pocket exhausted


COPAY_LOGIC_DESCRIPTIONS = {
    CopayLogic.STANDARD_WATERFALL: (
        "Each service's copay was applied, followed by the standard "
        "deductible and coinsurance waterfall."
    ),
    CopayLogic.HIGHEST_COPAY_ONLY: (
        "The single highest copay was applied as the total patient cost "
        "for all services."
    ),
    CopayLogic.HIGHEST_COPAY_PLUS_REMAINDER: (
        "The highest copay was applied, and all other services were then "
        "processed against the deductible and coinsurance."
    ),
}
