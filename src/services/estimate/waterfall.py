"""
Copay / Deductible / Coinsurance Waterfall.

Processes procedures in the given order, charging each one:
1. Modifier-adjusted allowed amount, capped to the billed amount
2. Copay (unless copays are charged elsewhere)
3. Deductible
4. Coinsurance on what the deductible left over
5. Safety cap at the final allowed amount

Every charge is bounded by the plan-aware out-of-pocket capacity, and the
accumulator state is threaded forward as new values, never mutated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from src.core.enums import StepCategory
from src.schemas.estimate import Benefits, CalculationStep, Procedure, ProcedureEstimate
from src.services.estimate.limits import AccumulatorState, remaining_deductible, remaining_oop
from src.services.estimate.modifiers import resolve_modifiers
from src.utils.logging import get_logger
from src.utils.money import HUNDRED, UNLIMITED, ZERO, format_money, round_money

logger = get_logger(__name__)


@dataclass(frozen=True)
class PricedAllowed:
    """Allowed amounts after modifiers and the billed-amount cap."""

    modified_allowed_amount: Decimal
    final_allowed_amount: Decimal
    steps: tuple[CalculationStep, ...] = ()


@dataclass
class WaterfallResult:
    """
    Outcome of processing a batch of procedures.

    procedure_estimates[i] always corresponds to the i-th input procedure.
    """

    procedure_estimates: list[ProcedureEstimate] = field(default_factory=list)
    total_patient_responsibility: Decimal = ZERO
    accumulators: AccumulatorState | None = None


def price_allowed_amount(procedure: Procedure) -> PricedAllowed:
    """Resolve modifiers, then cap the allowed amount to a lower billed amount."""
    resolution = resolve_modifiers(procedure.modifiers, procedure.allowed_amount)
    steps: list[CalculationStep] = [resolution.note] if resolution.note else []

    modified = resolution.allowed_amount
    billed = procedure.billed_amount if procedure.billed_amount is not None else UNLIMITED
    final = round_money(min(modified, billed))

    if final < modified:
        steps.append(
            CalculationStep(
                category=StepCategory.BILLED_CAP,
                description="Allowed capped to Billed",
                patient_owes=ZERO,
                notes=f"Allowed {format_money(modified)} > Billed {format_money(billed)}; using billed.",
            )
        )

    return PricedAllowed(
        modified_allowed_amount=modified,
        final_allowed_amount=final,
        steps=tuple(steps),
    )


def effective_copay(procedure: Procedure, benefits: Benefits) -> Decimal:
    """The procedure's own copay, else the plan default, else nothing."""
    if procedure.copay is not None:
        return procedure.copay
    if benefits.default_copay is not None:
        return benefits.default_copay
    return ZERO


def effective_coinsurance(procedure: Procedure, benefits: Benefits) -> Decimal:
    """The procedure's coinsurance override, else the plan percentage."""
    if procedure.coinsurance_percentage is not None:
        return procedure.coinsurance_percentage
    return benefits.coinsurance_percentage


def run_waterfall(
    procedures: Sequence[Procedure],
    benefits: Benefits,
    state: AccumulatorState,
    suppress_copays: bool = False,
    log_steps: bool = False,
) -> WaterfallResult:
    """
    Run the copay -> deductible -> coinsurance waterfall.

    Args:
        procedures: Non-preventive procedures in processing order
        benefits: Plan benefits
        state: Accumulators before the first procedure
        suppress_copays: Skip copays (already charged by the caller)
        log_steps: Log every breakdown step at DEBUG

    Returns:
        WaterfallResult with per-procedure estimates and the final state
    """
    estimates: list[ProcedureEstimate] = []
    total = ZERO

    for procedure in procedures:
        priced = price_allowed_amount(procedure)
        breakdown = list(priced.steps)
        amount_for_calc = priced.final_allowed_amount
        patient_portion = ZERO

        # Copay
        copay = ZERO if suppress_copays else effective_copay(procedure, benefits)
        if copay > ZERO:
            copay_due = round_money(min(copay, remaining_oop(benefits, state)))
            patient_portion = round_money(patient_portion + copay_due)
            state = state.apply(oop=copay_due)
            breakdown.append(
                CalculationStep(
                    category=StepCategory.COPAY,
                    description=f"Copay for {procedure.cpt_code}",
                    patient_owes=copay_due,
                    notes="Applied as a separate fee.",
                )
            )

        # Deductible
        deductible_left = remaining_deductible(benefits, state)
        if deductible_left > ZERO and amount_for_calc > ZERO:
            deductible_due = round_money(
                min(amount_for_calc, deductible_left, remaining_oop(benefits, state))
            )
            if deductible_due > ZERO:
                patient_portion = round_money(patient_portion + deductible_due)
                amount_for_calc = round_money(amount_for_calc - deductible_due)
                state = state.apply(deductible=deductible_due, oop=deductible_due)
                breakdown.append(
                    CalculationStep(
                        category=StepCategory.DEDUCTIBLE,
                        description="Deductible",
                        patient_owes=deductible_due,
                        notes=f"Amount left for coinsurance: {format_money(amount_for_calc)}",
                    )
                )

        # Coinsurance
        if amount_for_calc > ZERO:
            percentage = effective_coinsurance(procedure, benefits)
            share = round_money(amount_for_calc * percentage / HUNDRED)
            coinsurance_due = round_money(min(share, remaining_oop(benefits, state)))
            if coinsurance_due > ZERO:
                patient_portion = round_money(patient_portion + coinsurance_due)
                state = state.apply(oop=coinsurance_due)
                breakdown.append(
                    CalculationStep(
                        category=StepCategory.COINSURANCE,
                        description="Coinsurance",
                        patient_owes=coinsurance_due,
                        notes=f"Patient pays {percentage.normalize():f}% of {format_money(amount_for_calc)}.",
                    )
                )

        # Never more than the allowed amount
        if patient_portion > priced.final_allowed_amount:
            breakdown.append(
                CalculationStep(
                    category=StepCategory.RESPONSIBILITY_CAP,
                    description="Responsibility Capped",
                    patient_owes=ZERO,
                    notes=(
                        f"Patient portion ({format_money(patient_portion)}) capped at "
                        f"allowed amount ({format_money(priced.final_allowed_amount)})."
                    ),
                )
            )
            patient_portion = priced.final_allowed_amount

        total = round_money(total + patient_portion)

        if log_steps:
            for step in breakdown:
                logger.debug(
                    f"procedure={procedure.id} cpt={procedure.cpt_code} "
                    f"step={step.category.value} owes={step.patient_owes}"
                )

        estimates.append(
            ProcedureEstimate.from_procedure(
                procedure,
                modified_allowed_amount=priced.modified_allowed_amount,
                final_allowed_amount=priced.final_allowed_amount,
                total_patient_responsibility=patient_portion,
                calculation_breakdown=breakdown,
            )
        )

    return WaterfallResult(
        procedure_estimates=estimates,
        total_patient_responsibility=total,
        accumulators=state,
    )
