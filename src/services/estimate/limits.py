"""
Deductible and Out-of-Pocket Limit Arithmetic.

Remaining capacity under a limit, resolved per plan topology:
- Individual: the individual limit binds
- Aggregate family: the family limit binds
- Embedded family: whichever of the two is tighter binds
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from src.core.enums import PlanType
from src.schemas.estimate import Accumulators, Benefits
from src.utils.money import UNLIMITED, ZERO


@dataclass(frozen=True)
class AccumulatorState:
    """Patient and family accumulators threaded through one calculation."""

    patient: Accumulators
    family: Optional[Accumulators] = None

    def apply(self, deductible: Decimal = ZERO, oop: Decimal = ZERO) -> "AccumulatorState":
        """Return a new state with the amounts applied to patient and family."""
        return AccumulatorState(
            patient=self.patient.add(deductible=deductible, oop=oop),
            family=self.family.add(deductible=deductible, oop=oop) if self.family is not None else None,
        )


def remaining(limit: Optional[Decimal], met: Decimal) -> Decimal:
    """
    Capacity left under a limit.

    An unset limit never runs out; a zero limit is already exhausted.
    """
    if limit is None:
        return UNLIMITED
    if limit == ZERO:
        return ZERO
    return max(ZERO, limit - met)


def plan_aware_remaining(
    individual_limit: Optional[Decimal],
    family_limit: Optional[Decimal],
    patient_met: Decimal,
    family_met: Optional[Decimal],
    plan_type: PlanType,
) -> Decimal:
    """
    Remaining capacity under the limit(s) the plan topology makes binding.

    Args:
        individual_limit: Individual deductible or OOP max
        family_limit: Family deductible or OOP max
        patient_met: Amount the patient has met
        family_met: Amount the family has met (None without family accumulators)
        plan_type: Plan topology

    Returns:
        Remaining amount, or UNLIMITED
    """
    individual_remaining = remaining(individual_limit, patient_met)
    family_remaining = remaining(family_limit, family_met if family_met is not None else ZERO)

    if plan_type == PlanType.INDIVIDUAL:
        return individual_remaining
    if plan_type == PlanType.AGGREGATE_FAMILY:
        return family_remaining
    return min(individual_remaining, family_remaining)


def remaining_oop(benefits: Benefits, state: AccumulatorState) -> Decimal:
    """Plan-aware out-of-pocket capacity for the current state."""
    return plan_aware_remaining(
        benefits.individual_oop_max,
        benefits.family_oop_max,
        state.patient.oop_met,
        state.family.oop_met if state.family is not None else None,
        benefits.plan_type,
    )


def remaining_deductible(benefits: Benefits, state: AccumulatorState) -> Decimal:
    """Plan-aware deductible capacity for the current state."""
    return plan_aware_remaining(
        benefits.individual_deductible,
        benefits.family_deductible,
        state.patient.deductible_met,
        state.family.deductible_met if state.family is not None else None,
        benefits.plan_type,
    )
