from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .domain import TaxCalculation, TaxSettings

DEFAULT_TAX_SETTINGS = TaxSettings(tax_rate=30.0, include_in_displays=True, include_in_exports=True)

# Input range offered by the settings form; the estimator itself accepts any rate.
TAX_RATE_INPUT_MIN = 5.0
TAX_RATE_INPUT_MAX = 50.0

SAMPLE_GROSS_EARNINGS = 1000.0


@dataclass(frozen=True, slots=True)
class TaxRatePreset:
    rate: float
    label: str


TAX_RATE_PRESETS: Tuple[TaxRatePreset, ...] = (
    TaxRatePreset(15, "Low tax state, part-time"),
    TaxRatePreset(22, "Average employed rate"),
    TaxRatePreset(30, "Freelancer national average"),
    TaxRatePreset(35, "High earner, high tax state"),
    TaxRatePreset(40, "California/NY high earner"),
)


def calculate_tax(gross_earnings: float, tax_settings: TaxSettings) -> TaxCalculation:
    """Apply the flat estimate to any earnings figure.

    Out-of-range inputs (negative earnings, rates above 100) are passed
    through arithmetically rather than clamped.
    """
    tax_amount = gross_earnings * tax_settings.tax_rate / 100
    return TaxCalculation(
        gross_earnings=gross_earnings,
        tax_amount=tax_amount,
        net_earnings=gross_earnings - tax_amount,
        tax_rate=tax_settings.tax_rate,
    )


def format_tax_rate(rate: float) -> str:
    return f"{rate:.1f}%"


def get_tax_rate_description(rate: float) -> str:
    if rate <= 15:
        return "Low tax burden"
    if rate <= 25:
        return "Moderate tax burden"
    if rate <= 35:
        return "High tax burden"
    return "Very high tax burden"


def tax_preview(gross_earnings: float, tax_settings: TaxSettings) -> Dict[str, Any]:
    calculation = calculate_tax(gross_earnings, tax_settings)
    return {
        "calculation": calculation,
        "formatted_rate": format_tax_rate(tax_settings.tax_rate),
        "description": get_tax_rate_description(tax_settings.tax_rate),
    }
