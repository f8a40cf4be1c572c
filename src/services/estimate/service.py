"""
Patient Cost Estimate Service.

Top-level entry point of the estimator:
- Sanitizes accumulators and short-circuits when the OOP max is already met
- Carves out preventive services (covered at 100%)
- Ranks standard services by allowed amount, highest first
- Delegates to the plan's copay strategy
- Returns estimates in the caller's original procedure order
"""

from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, ValidationError

from src.core.config import EstimatorSettings, get_estimator_settings
from src.core.enums import COPAY_LOGIC_DESCRIPTIONS, PlanType, StepCategory
from src.schemas.estimate import (
    Accumulators,
    Benefits,
    CalculationStep,
    EstimateMetaData,
    EstimateRequest,
    EstimateResult,
    EstimateSummary,
    FinalAccumulators,
    Procedure,
    ProcedureEstimate,
)
from src.services.estimate.copay_strategies import get_copay_strategy
from src.services.estimate.limits import AccumulatorState, remaining
from src.services.estimate.waterfall import price_allowed_amount
from src.utils.errors import EstimateRequestError
from src.utils.logging import get_logger
from src.utils.money import UNLIMITED, ZERO, round_money

logger = get_logger(__name__)


def oop_exhausted_reason(plan_type: PlanType, individual_remaining: Decimal, family_remaining: Decimal) -> Optional[str]:
    """
    Why no cost sharing can apply, or None when OOP capacity remains.

    Embedded plans stop when either limit is exhausted.
    """
    if plan_type == PlanType.INDIVIDUAL:
        return "Individual OOP Met" if individual_remaining <= ZERO else None
    if plan_type == PlanType.AGGREGATE_FAMILY:
        return "Family OOP Met" if family_remaining <= ZERO else None
    if individual_remaining <= ZERO:
        return "Individual OOP Met"
    if family_remaining <= ZERO:
        return "Family OOP Met"
    return None


class EstimateService:
    """
    Patient out-of-pocket estimator.

    Stateless between calls: every estimate works on its own copies of the
    accumulators, so one instance can be shared freely.
    """

    def __init__(self, settings: Optional[EstimatorSettings] = None):
        """
        Initialize estimate service.

        Args:
            settings: Optional estimator settings
        """
        self.settings = settings or get_estimator_settings()

    def estimate(
        self,
        benefits: Benefits | Mapping[str, Any],
        patient_accumulators: Accumulators | Mapping[str, Any] | None,
        family_accumulators: Accumulators | Mapping[str, Any] | None,
        procedures: Sequence[Procedure | Mapping[str, Any]],
        meta_data: EstimateMetaData | Mapping[str, Any] | None = None,
    ) -> EstimateResult:
        """
        Estimate patient responsibility for a set of procedures.

        Args:
            benefits: Plan benefits
            patient_accumulators: Patient deductible/OOP met
            family_accumulators: Family deductible/OOP met (family plans)
            procedures: Procedures in display order
            meta_data: Identifiers passed through to the result

        Returns:
            EstimateResult with procedures in their original order

        Raises:
            EstimateRequestError: If a mapping input is structurally invalid
        """
        benefits = _as_model(Benefits, benefits)
        patient = _as_model(Accumulators, patient_accumulators if patient_accumulators is not None else {})
        family = _as_model(Accumulators, family_accumulators) if family_accumulators is not None else None
        procedure_models = [_as_model(Procedure, p) for p in procedures]
        meta = _as_model(EstimateMetaData, meta_data if meta_data is not None else {})

        state = AccumulatorState(
            patient=patient,
            family=(family if family is not None else Accumulators()) if benefits.plan_type.has_family_limits else None,
        )

        individual_remaining = remaining(benefits.individual_oop_max, state.patient.oop_met)
        family_remaining = (
            remaining(benefits.family_oop_max, state.family.oop_met) if state.family is not None else UNLIMITED
        )
        reason = oop_exhausted_reason(benefits.plan_type, individual_remaining, family_remaining)

        if reason:
            logger.debug(f"Out-of-pocket exhausted ({reason}); skipping cost sharing")
            estimates = [self._oop_met_estimate(p, reason) for p in procedure_models]
            total = ZERO
        else:
            estimates, total, state = self._calculate(benefits, state, procedure_models)

        preventive_count = sum(1 for p in procedure_models if p.is_preventive)
        result = EstimateResult(
            benefits=benefits,
            patient_id=meta.patient.member_id,
            procedure_estimates=estimates,
            total_patient_responsibility=total,
            final_accumulators=FinalAccumulators(patient=state.patient, family=state.family),
            summary=_summarize(
                benefits,
                estimates,
                early_exit=reason is not None,
                preventive_count=0 if reason else preventive_count,
                standard_count=0 if reason else len(procedure_models) - preventive_count,
            ),
            meta_data=meta,
        )

        logger.bind(service=self.settings.SERVICE_NAME).info(
            f"Estimate complete: plan={benefits.plan_type.value}, "
            f"copay_logic={benefits.copay_logic.value}, "
            f"procedures={len(procedure_models)}, "
            f"patient_resp={result.total_patient_responsibility}"
        )
        return result

    def estimate_request(self, request: EstimateRequest) -> EstimateResult:
        """Estimate from a validated request model."""
        return self.estimate(
            request.benefits,
            request.patient_accumulators,
            request.family_accumulators,
            request.procedures,
            request.meta_data,
        )

    def estimate_from_payload(self, payload: Mapping[str, Any]) -> EstimateResult:
        """
        Estimate from a raw dictionary (e.g. decoded form state).

        Raises:
            EstimateRequestError: If the payload is structurally invalid
        """
        try:
            request = EstimateRequest.model_validate(payload)
        except ValidationError as exc:
            error = EstimateRequestError.from_validation_error(exc)
            logger.warning(error.detail)
            raise error from exc
        return self.estimate_request(request)

    def _calculate(
        self,
        benefits: Benefits,
        state: AccumulatorState,
        procedures: list[Procedure],
    ) -> tuple[list[ProcedureEstimate], Decimal, AccumulatorState]:
        """Preventive carve-out, ranking, strategy, reassembly."""
        slots: list[Optional[ProcedureEstimate]] = [None] * len(procedures)
        standard: list[tuple[int, Procedure]] = []

        for index, procedure in enumerate(procedures):
            if procedure.is_preventive:
                slots[index] = self._preventive_estimate(procedure)
            else:
                standard.append((index, procedure))

        # Stable: equal allowed amounts keep their input order
        ranked = sorted(standard, key=lambda item: item[1].allowed_amount, reverse=True)

        total = ZERO
        if ranked:
            strategy = get_copay_strategy(benefits.copay_logic)
            logger.debug(f"Applying copay strategy {strategy.logic.value} to {len(ranked)} procedure(s)")
            outcome = strategy.apply(
                [procedure for _, procedure in ranked],
                benefits,
                state,
                log_steps=self.settings.LOG_CALCULATION_STEPS,
            )

            for rank, ((index, _), estimate) in enumerate(zip(ranked, outcome.procedure_estimates), start=1):
                slots[index] = estimate.model_copy(update={"calculation_rank": rank})

            total = outcome.total_patient_responsibility
            state = outcome.accumulators

        return [estimate for estimate in slots if estimate is not None], total, state

    @staticmethod
    def _preventive_estimate(procedure: Procedure) -> ProcedureEstimate:
        priced = price_allowed_amount(procedure)
        return ProcedureEstimate.from_procedure(
            procedure,
            modified_allowed_amount=priced.modified_allowed_amount,
            final_allowed_amount=priced.final_allowed_amount,
            total_patient_responsibility=ZERO,
            calculation_breakdown=[
                CalculationStep(
                    category=StepCategory.PREVENTIVE,
                    description="Preventive Service",
                    patient_owes=ZERO,
                    notes="This service is covered at 100% by the plan.",
                )
            ],
        )

    @staticmethod
    def _oop_met_estimate(procedure: Procedure, reason: str) -> ProcedureEstimate:
        priced = price_allowed_amount(procedure)
        return ProcedureEstimate.from_procedure(
            procedure,
            modified_allowed_amount=priced.modified_allowed_amount,
            final_allowed_amount=priced.final_allowed_amount,
            total_patient_responsibility=ZERO,
            calculation_breakdown=[
                CalculationStep(
                    category=StepCategory.OOP_MET,
                    description=reason,
                    patient_owes=ZERO,
                    notes="Patient's OOP max is met or set to $0.",
                )
            ],
        )


def _as_model(model_cls: type[BaseModel], value: Any) -> Any:
    """Validate a mapping into model_cls; models pass through untouched."""
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)
    except ValidationError as exc:
        raise EstimateRequestError.from_validation_error(exc) from exc


def _summarize(
    benefits: Benefits,
    estimates: list[ProcedureEstimate],
    early_exit: bool,
    preventive_count: int,
    standard_count: int,
) -> EstimateSummary:
    steps = [step for estimate in estimates for step in estimate.calculation_breakdown]
    applied_to_deductible = sum(
        (step.patient_owes for step in steps if step.category == StepCategory.DEDUCTIBLE), ZERO
    )
    out_of_pocket = sum((step.patient_owes for step in steps if step.patient_owes > ZERO), ZERO)

    return EstimateSummary(
        total_applied_to_deductible=round_money(applied_to_deductible),
        total_out_of_pocket=round_money(out_of_pocket),
        copay_logic_description=COPAY_LOGIC_DESCRIPTIONS[benefits.copay_logic],
        early_exit=early_exit,
        preventive_count=preventive_count,
        standard_count=standard_count,
    )


# =============================================================================
# Singleton Instance
# =============================================================================


_estimate_service: Optional[EstimateService] = None


def get_estimate_service() -> EstimateService:
    """Get singleton estimate service instance."""
    global _estimate_service
    if _estimate_service is None:
        _estimate_service = EstimateService()
    return _estimate_service


def estimate(
    benefits: Benefits | Mapping[str, Any],
    patient_accumulators: Accumulators | Mapping[str, Any] | None,
    family_accumulators: Accumulators | Mapping[str, Any] | None,
    procedures: Sequence[Procedure | Mapping[str, Any]],
    meta_data: EstimateMetaData | Mapping[str, Any] | None = None,
) -> EstimateResult:
    """Estimate patient responsibility with the shared service instance."""
    return get_estimate_service().estimate(
        benefits, patient_accumulators, family_accumulators, procedures, meta_data
    )
