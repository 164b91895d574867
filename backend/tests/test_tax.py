from __future__ import annotations

import pytest

from ratetrack.domain import TaxSettings
from ratetrack.tax import (
    DEFAULT_TAX_SETTINGS,
    TAX_RATE_PRESETS,
    calculate_tax,
    format_tax_rate,
    get_tax_rate_description,
    tax_preview,
)


def test_default_settings_match_freelancer_average() -> None:
    assert DEFAULT_TAX_SETTINGS.tax_rate == 30
    assert DEFAULT_TAX_SETTINGS.include_in_displays is True
    assert DEFAULT_TAX_SETTINGS.include_in_exports is True

    result = calculate_tax(1000, DEFAULT_TAX_SETTINGS)
    assert result.tax_amount == pytest.approx(300.0)
    assert result.net_earnings == pytest.approx(700.0)
    assert result.tax_rate == 30


def test_design_scenario_tax_split() -> None:
    result = calculate_tax(30.0, TaxSettings(tax_rate=25))
    assert result.gross_earnings == 30.0
    assert result.tax_amount == pytest.approx(7.5)
    assert result.net_earnings == pytest.approx(22.5)


@pytest.mark.parametrize("gross", [0.0, 0.01, 30.0, 1234.567, 1e7])
@pytest.mark.parametrize("rate", [0.0, 5.0, 22.5, 50.0, 100.0, 150.0])
def test_tax_and_net_add_back_to_gross(gross: float, rate: float) -> None:
    result = calculate_tax(gross, TaxSettings(tax_rate=rate))
    assert abs(result.tax_amount + result.net_earnings - gross) <= 1e-9 * max(1.0, gross)


def test_out_of_range_values_pass_through() -> None:
    negative = calculate_tax(-100.0, TaxSettings(tax_rate=20))
    assert negative.tax_amount == pytest.approx(-20.0)
    assert negative.net_earnings == pytest.approx(-80.0)

    over = calculate_tax(100.0, TaxSettings(tax_rate=120))
    assert over.net_earnings == pytest.approx(-20.0)


def test_settings_reject_negative_rates() -> None:
    with pytest.raises(ValueError):
        TaxSettings(tax_rate=-1)


@pytest.mark.parametrize("rate", [float("inf"), float("nan")])
def test_settings_reject_non_finite_rates(rate: float) -> None:
    with pytest.raises(ValueError):
        TaxSettings(tax_rate=rate)


def test_format_tax_rate_uses_one_decimal() -> None:
    assert format_tax_rate(30) == "30.0%"
    assert format_tax_rate(22) == "22.0%"
    assert format_tax_rate(7.25) == "7.2%"


@pytest.mark.parametrize(
    ("rate", "description"),
    [
        (0, "Low tax burden"),
        (15, "Low tax burden"),
        (15.1, "Moderate tax burden"),
        (25, "Moderate tax burden"),
        (30, "High tax burden"),
        (35, "High tax burden"),
        (35.5, "Very high tax burden"),
        (50, "Very high tax burden"),
    ],
)
def test_rate_description_bands(rate: float, description: str) -> None:
    assert get_tax_rate_description(rate) == description


def test_presets_are_ordered() -> None:
    rates = [preset.rate for preset in TAX_RATE_PRESETS]
    assert rates == [15, 22, 30, 35, 40]
    assert TAX_RATE_PRESETS[2].label == "Freelancer national average"


def test_preview_bundles_description() -> None:
    preview = tax_preview(1000, TaxSettings(tax_rate=40))
    assert preview["formatted_rate"] == "40.0%"
    assert preview["description"] == "Very high tax burden"
    assert preview["calculation"].net_earnings == pytest.approx(600.0)
