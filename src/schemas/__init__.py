"""
Pydantic Schemas for the Patient Cost Estimator.

This module exports the estimate request/result schemas.
"""

from src.schemas.estimate import (
    Accumulators,
    Benefits,
    CalculationStep,
    EstimateMetaData,
    EstimateRequest,
    EstimateResult,
    EstimateSummary,
    FinalAccumulators,
    InsuranceInfo,
    PatientInfo,
    PracticeInfo,
    Procedure,
    ProcedureEstimate,
    ProviderInfo,
    ServiceInfo,
)

__all__ = [
    "Accumulators",
    "Benefits",
    "CalculationStep",
    "EstimateMetaData",
    "EstimateRequest",
    "EstimateResult",
    "EstimateSummary",
    "FinalAccumulators",
    "InsuranceInfo",
    "PatientInfo",
    "PracticeInfo",
    "Procedure",
    "ProcedureEstimate",
    "ProviderInfo",
    "ServiceInfo",
]
