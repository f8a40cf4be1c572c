"""
Pydantic Schemas for Patient Cost Estimates.
Source: Benefit adjudication design - data model

Input models sanitize loosely-typed numbers on the way in, so the
calculation path only ever sees finite, non-negative Decimals.
"""

from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.enums import CopayLogic, PlanType, StepCategory
from src.utils.money import (
    ZERO,
    clamp_percentage,
    parse_optional_amount,
    round_money,
    sanitize_amount,
    to_decimal,
)


# =============================================================================
# Plan Benefits
# =============================================================================


_PLAN_TYPE_LOOKUP = {
    member.value.lower(): member for member in PlanType
} | {
    "aggregate_family": PlanType.AGGREGATE_FAMILY,
    "embedded_family": PlanType.EMBEDDED_FAMILY,
}


class Benefits(BaseModel):
    """Plan-level cost sharing rules."""

    model_config = ConfigDict(frozen=True)

    plan_type: PlanType = Field(..., description="Plan topology")

    # None = unset (unlimited), 0 = exhausted
    individual_deductible: Optional[Decimal] = Field(None, description="Individual deductible")
    individual_oop_max: Optional[Decimal] = Field(None, description="Individual out-of-pocket maximum")
    family_deductible: Optional[Decimal] = Field(None, description="Family deductible")
    family_oop_max: Optional[Decimal] = Field(None, description="Family out-of-pocket maximum")

    coinsurance_percentage: Decimal = Field(
        default=ZERO, description="Default patient coinsurance percentage (0-100)"
    )
    copay_logic: CopayLogic = Field(
        default=CopayLogic.STANDARD_WATERFALL, description="Copay application strategy"
    )
    default_copay: Optional[Decimal] = Field(
        None, description="Plan copay used when a procedure has none of its own"
    )

    @field_validator("plan_type", mode="before")
    @classmethod
    def normalize_plan_type(cls, v: Any) -> Any:
        """Accept plan type names case-insensitively, with or without underscores."""
        if isinstance(v, str):
            return _PLAN_TYPE_LOOKUP.get(v.strip().lower(), v)
        return v

    @field_validator(
        "individual_deductible",
        "individual_oop_max",
        "family_deductible",
        "family_oop_max",
        "default_copay",
        mode="before",
    )
    @classmethod
    def parse_limit(cls, v: Any) -> Optional[Decimal]:
        """Blank or non-numeric limits are unset; negatives clamp to zero."""
        return parse_optional_amount(v)

    @field_validator("coinsurance_percentage", mode="before")
    @classmethod
    def parse_coinsurance(cls, v: Any) -> Decimal:
        """Blank means 0%; values clamp into [0, 100]."""
        number = to_decimal(v)
        if number is None:
            return ZERO
        return clamp_percentage(number)

    @field_validator("copay_logic", mode="before")
    @classmethod
    def parse_copay_logic(cls, v: Any) -> CopayLogic:
        """Unknown or blank strategies fall back to the standard waterfall."""
        if isinstance(v, CopayLogic):
            return v
        if v is None:
            return CopayLogic.STANDARD_WATERFALL
        return CopayLogic(str(v).strip())


# =============================================================================
# Accumulators
# =============================================================================


class Accumulators(BaseModel):
    """Amounts already applied toward deductible and out-of-pocket limits."""

    model_config = ConfigDict(frozen=True)

    deductible_met: Decimal = Field(default=ZERO, description="Deductible met so far")
    oop_met: Decimal = Field(default=ZERO, description="Out-of-pocket met so far")

    @field_validator("deductible_met", "oop_met", mode="before")
    @classmethod
    def sanitize(cls, v: Any) -> Decimal:
        """Negative or non-numeric values count as nothing met."""
        return sanitize_amount(v)

    def add(self, deductible: Decimal = ZERO, oop: Decimal = ZERO) -> "Accumulators":
        """Return new accumulators with the amounts applied."""
        return self.model_copy(
            update={
                "deductible_met": round_money(self.deductible_met + deductible),
                "oop_met": round_money(self.oop_met + oop),
            }
        )


class FinalAccumulators(BaseModel):
    """Accumulator state after the estimate."""

    model_config = ConfigDict(frozen=True)

    patient: Accumulators
    family: Optional[Accumulators] = None


# =============================================================================
# Procedures
# =============================================================================


class Procedure(BaseModel):
    """A single billable service to estimate."""

    model_config = ConfigDict(frozen=True)

    id: Union[int, str] = Field(..., description="Stable identity within the request")
    cpt_code: str = Field(..., description="CPT/HCPCS procedure code")
    dx_code: Optional[str] = Field(None, description="ICD-10 diagnosis code")

    billed_amount: Optional[Decimal] = Field(None, description="Provider charge (None = no cap)")
    allowed_amount: Decimal = Field(..., description="Payer-negotiated allowed amount")
    copay: Optional[Decimal] = Field(None, description="Flat copay for this service")
    coinsurance_percentage: Optional[Decimal] = Field(
        None, description="Per-procedure coinsurance override (0-100)"
    )
    modifiers: Optional[str] = Field(None, description="Comma-separated modifier codes")
    is_preventive: bool = Field(default=False, description="Preventive service, covered at 100%")

    @field_validator("billed_amount", "copay", mode="before")
    @classmethod
    def parse_optional(cls, v: Any) -> Optional[Decimal]:
        return parse_optional_amount(v)

    @field_validator("allowed_amount", mode="before")
    @classmethod
    def parse_allowed(cls, v: Any) -> Decimal:
        return sanitize_amount(v)

    @field_validator("coinsurance_percentage", mode="before")
    @classmethod
    def parse_coinsurance(cls, v: Any) -> Optional[Decimal]:
        number = to_decimal(v)
        if number is None:
            return None
        return clamp_percentage(number)

    @field_validator("modifiers", mode="before")
    @classmethod
    def join_modifiers(cls, v: Any) -> Optional[str]:
        """Accept a list of codes as well as the comma-separated form."""
        if v is None:
            return None
        if isinstance(v, (list, tuple)):
            return ",".join(str(code) for code in v)
        return str(v)


# =============================================================================
# Audit Trail
# =============================================================================


class CalculationStep(BaseModel):
    """One entry of a procedure's calculation breakdown."""

    model_config = ConfigDict(frozen=True)

    category: StepCategory
    description: str
    patient_owes: Decimal = ZERO
    notes: str = ""


class ProcedureEstimate(Procedure):
    """A procedure with its computed patient responsibility."""

    modified_allowed_amount: Optional[Decimal] = None
    final_allowed_amount: Optional[Decimal] = None
    total_patient_responsibility: Decimal = ZERO
    calculation_breakdown: list[CalculationStep] = Field(default_factory=list)
    calculation_rank: Optional[int] = None

    @classmethod
    def from_procedure(cls, procedure: Procedure, **computed: Any) -> "ProcedureEstimate":
        """Build an estimate carrying every field of the original procedure."""
        return cls(**procedure.model_dump(), **computed)


# =============================================================================
# Request Metadata (opaque pass-through)
# =============================================================================


class PatientInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None
    member_id: Optional[Union[str, int]] = None
    dob: Optional[str] = None


class InsuranceInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None


class PracticeInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None
    tax_id: Optional[Union[str, int]] = None


class ProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None
    npi: Optional[Union[str, int]] = None


class ServiceInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    date: Optional[str] = None


class EstimateMetaData(BaseModel):
    """Identifiers for presentation and reporting; never read by the calculation."""

    model_config = ConfigDict(frozen=True, extra="allow")

    patient: PatientInfo = Field(default_factory=PatientInfo)
    insurance: InsuranceInfo = Field(default_factory=InsuranceInfo)
    practice: PracticeInfo = Field(default_factory=PracticeInfo)
    provider: ProviderInfo = Field(default_factory=ProviderInfo)
    service: ServiceInfo = Field(default_factory=ServiceInfo)


# =============================================================================
# Request / Result
# =============================================================================


class EstimateRequest(BaseModel):
    """Everything the estimator needs for one calculation."""

    model_config = ConfigDict(frozen=True)

    benefits: Benefits
    patient_accumulators: Accumulators = Field(default_factory=Accumulators)
    family_accumulators: Optional[Accumulators] = None
    procedures: list[Procedure] = Field(default_factory=list)
    meta_data: EstimateMetaData = Field(default_factory=EstimateMetaData)

    @field_validator("patient_accumulators", mode="before")
    @classmethod
    def default_patient_accumulators(cls, v: Any) -> Any:
        return {} if v is None else v


class EstimateSummary(BaseModel):
    """Visit-level totals derived from the audit trail."""

    model_config = ConfigDict(frozen=True)

    total_applied_to_deductible: Decimal = ZERO
    total_out_of_pocket: Decimal = ZERO
    copay_logic_description: str = ""
    early_exit: bool = False
    preventive_count: int = 0
    standard_count: int = 0


class EstimateResult(BaseModel):
    """Complete patient cost estimate."""

    model_config = ConfigDict(frozen=True)

    benefits: Benefits
    patient_id: Optional[Union[str, int]] = None
    procedure_estimates: list[ProcedureEstimate] = Field(default_factory=list)
    total_patient_responsibility: Decimal = ZERO
    final_accumulators: FinalAccumulators
    summary: EstimateSummary = Field(default_factory=EstimateSummary)
    meta_data: EstimateMetaData = Field(default_factory=EstimateMetaData)
