"""
Pricing Modifier Resolution.

Adjusts a procedure's allowed amount for billing modifiers that change
reimbursement. Recognized modifiers compound multiplicatively; anything
else is ignored so new codes on a claim never break an estimate.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from src.core.enums import StepCategory
from src.schemas.estimate import CalculationStep
from src.utils.money import ZERO, round_money


@dataclass(frozen=True)
class PricingModifier:
    """A modifier that scales the allowed amount."""

    code: str
    factor: Decimal
    label: str


# Applied in this order regardless of the order on the claim
PRICING_MODIFIERS: tuple[PricingModifier, ...] = (
    PricingModifier(code="50", factor=Decimal("1.5"), label="+50% bilateral"),
    PricingModifier(code="62", factor=Decimal("1.25"), label="+25% co-surgeons"),
)


@dataclass(frozen=True)
class ModifierResolution:
    """Modifier-adjusted allowed amount plus its audit note, if any."""

    allowed_amount: Decimal
    factor: Decimal
    note: Optional[CalculationStep] = None


def parse_modifier_codes(modifiers: Optional[str]) -> list[str]:
    """Split a comma-separated modifier string into trimmed, uppercased codes."""
    if not modifiers:
        return []
    return [code.strip().upper() for code in modifiers.split(",") if code.strip()]


def resolve_modifiers(modifiers: Optional[str], allowed_amount: Decimal) -> ModifierResolution:
    """
    Apply pricing modifiers to a base allowed amount.

    Args:
        modifiers: Comma-separated modifier codes (e.g. "50, LT")
        allowed_amount: Base allowed amount

    Returns:
        ModifierResolution; unchanged amount and no note when no
        recognized modifier is present
    """
    codes = set(parse_modifier_codes(modifiers))

    factor = Decimal("1")
    labels: list[str] = []
    for modifier in PRICING_MODIFIERS:
        if modifier.code in codes:
            factor *= modifier.factor
            labels.append(modifier.label)

    if not labels:
        return ModifierResolution(allowed_amount=allowed_amount, factor=factor)

    note = CalculationStep(
        category=StepCategory.MODIFIER,
        description="Pricing Modifiers Applied",
        patient_owes=ZERO,
        notes=f"Factors: {', '.join(labels)}.",
    )
    return ModifierResolution(
        allowed_amount=round_money(allowed_amount * factor),
        factor=factor,
        note=note,
    )
