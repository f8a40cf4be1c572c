"""
Services Layer for the Patient Cost Estimator.

Exports the estimate service. The module-level ``estimate`` helper lives in
``src.services.estimate`` and is not re-exported here, so that name keeps
referring to the subpackage.
"""

from src.services.estimate import (
    EstimateService,
    get_estimate_service,
)

__all__ = [
    "EstimateService",
    "get_estimate_service",
]
