"""
Copay Strategies.

Each CopayLogic value maps to exactly one strategy in a closed registry.
Lookups for anything else get the standard waterfall.

Strategies receive standard (non-preventive) procedures already sorted in
processing order and return estimates aligned with that order.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from src.core.enums import CopayLogic, StepCategory
from src.schemas.estimate import Benefits, CalculationStep, Procedure, ProcedureEstimate
from src.services.estimate.limits import AccumulatorState, remaining_oop
from src.services.estimate.waterfall import (
    WaterfallResult,
    effective_copay,
    price_allowed_amount,
    run_waterfall,
)
from src.utils.logging import get_logger
from src.utils.money import ZERO, format_money, round_money

logger = get_logger(__name__)


class CopayStrategy(ABC):
    """Base class for copay application strategies."""

    logic: CopayLogic

    @abstractmethod
    def apply(
        self,
        procedures: Sequence[Procedure],
        benefits: Benefits,
        state: AccumulatorState,
        log_steps: bool = False,
    ) -> WaterfallResult:
        """Compute patient responsibility for the sorted standard procedures."""


class StandardWaterfallStrategy(CopayStrategy):
    """Every copay applies, each procedure runs the full waterfall."""

    logic = CopayLogic.STANDARD_WATERFALL

    def apply(self, procedures, benefits, state, log_steps=False):
        return run_waterfall(procedures, benefits, state, log_steps=log_steps)


class HighestCopayOnlyStrategy(CopayStrategy):
    """
    The single highest copay is the total cost of the visit.

    It is attributed to the first procedure in processing order; deductible
    and coinsurance never run.
    """

    logic = CopayLogic.HIGHEST_COPAY_ONLY

    def apply(self, procedures, benefits, state, log_steps=False):
        highest_copay = max((effective_copay(p, benefits) for p in procedures), default=ZERO)
        copay_due = round_money(min(highest_copay, remaining_oop(benefits, state)))
        state = state.apply(oop=copay_due)
        if log_steps:
            logger.debug(f"step={StepCategory.HIGHEST_COPAY.value} owes={copay_due}")

        estimates: list[ProcedureEstimate] = []
        for index, procedure in enumerate(procedures):
            priced = price_allowed_amount(procedure)
            if index == 0:
                responsibility = copay_due
                breakdown = [
                    CalculationStep(
                        category=StepCategory.HIGHEST_COPAY,
                        description="Highest Copay Applied",
                        patient_owes=copay_due,
                        notes=f"The highest copay of {format_money(highest_copay)} is the total cost.",
                    )
                ]
            else:
                responsibility = ZERO
                breakdown = []

            estimates.append(
                ProcedureEstimate.from_procedure(
                    procedure,
                    modified_allowed_amount=priced.modified_allowed_amount,
                    final_allowed_amount=priced.final_allowed_amount,
                    total_patient_responsibility=responsibility,
                    calculation_breakdown=breakdown,
                )
            )

        return WaterfallResult(
            procedure_estimates=estimates,
            total_patient_responsibility=copay_due,
            accumulators=state,
        )


class HighestCopayPlusRemainderStrategy(CopayStrategy):
    """
    The highest copay is charged once as a standalone fee; every other
    procedure runs the waterfall with copays suppressed.
    """

    logic = CopayLogic.HIGHEST_COPAY_PLUS_REMAINDER

    @staticmethod
    def select_highest_copay(procedures: Sequence[Procedure], benefits: Benefits) -> Optional[int]:
        """
        Index of the procedure carrying the highest positive copay.

        Ties go to the higher allowed amount, then to the earlier procedure.
        """
        selected: Optional[int] = None
        highest = ZERO
        for index, procedure in enumerate(procedures):
            copay = effective_copay(procedure, benefits)
            if copay > highest:
                selected, highest = index, copay
            elif (
                selected is not None
                and copay == highest
                and procedure.allowed_amount > procedures[selected].allowed_amount
            ):
                selected = index
        return selected

    def apply(self, procedures, benefits, state, log_steps=False):
        selected = self.select_highest_copay(procedures, benefits)
        if selected is None:
            logger.debug("No positive copay found; using standard waterfall")
            return run_waterfall(procedures, benefits, state, log_steps=log_steps)

        copay_procedure = procedures[selected]
        highest_copay = effective_copay(copay_procedure, benefits)
        copay_due = round_money(min(highest_copay, remaining_oop(benefits, state)))
        state = state.apply(oop=copay_due)
        if log_steps:
            logger.debug(f"step={StepCategory.HIGHEST_COPAY.value} owes={copay_due}")

        priced = price_allowed_amount(copay_procedure)
        copay_estimate = ProcedureEstimate.from_procedure(
            copay_procedure,
            modified_allowed_amount=priced.modified_allowed_amount,
            final_allowed_amount=priced.final_allowed_amount,
            total_patient_responsibility=copay_due,
            calculation_breakdown=[
                CalculationStep(
                    category=StepCategory.HIGHEST_COPAY,
                    description=f"Highest Copay for {copay_procedure.cpt_code}",
                    patient_owes=copay_due,
                    notes="Applied as a separate fee.",
                )
            ],
        )

        remainder = [p for index, p in enumerate(procedures) if index != selected]
        remainder_result = run_waterfall(
            remainder, benefits, state, suppress_copays=True, log_steps=log_steps
        )

        estimates = list(remainder_result.procedure_estimates)
        estimates.insert(selected, copay_estimate)

        return WaterfallResult(
            procedure_estimates=estimates,
            total_patient_responsibility=round_money(
                copay_due + remainder_result.total_patient_responsibility
            ),
            accumulators=remainder_result.accumulators,
        )


_STRATEGIES: dict[CopayLogic, CopayStrategy] = {
    strategy.logic: strategy
    for strategy in (
        StandardWaterfallStrategy(),
        HighestCopayOnlyStrategy(),
        HighestCopayPlusRemainderStrategy(),
    )
}


def get_copay_strategy(logic: CopayLogic | str | None) -> CopayStrategy:
    """Strategy for a copay logic value; unknown values get the standard waterfall."""
    if not isinstance(logic, CopayLogic):
        logic = CopayLogic(logic) if logic is not None else CopayLogic.STANDARD_WATERFALL
    return _STRATEGIES.get(logic, _STRATEGIES[CopayLogic.STANDARD_WATERFALL])
