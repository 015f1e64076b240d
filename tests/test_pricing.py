"""Tests for quotemaster.pricing (pure arithmetic, no database)."""

from decimal import Decimal

import pytest

from quotemaster.pricing import (
    calculate_price_metrics,
    calculate_savings,
    calculate_total_cost,
    compare_totals,
    coverage_percentage,
    effective_price,
    find_best_price,
    is_valid_period,
    previous_months,
    price_with_vat,
    to_decimal,
    variance_percentage,
    variance_trend,
)


class TestEffectivePrice:

    def test_approved_wins(self):
        assert effective_price(90, 95, 100) == Decimal("90")

    def test_negotiated_when_no_approved(self):
        assert effective_price(None, 95, 100) == Decimal("95")

    def test_initial_as_last_resort(self):
        assert effective_price(None, None, 100) == Decimal("100")

    def test_zero_is_treated_as_missing(self):
        assert effective_price(0, None, "100") == Decimal("100")

    def test_nothing_priced(self):
        assert effective_price(None, None, None) is None


class TestPriceMetrics:

    def test_totals_and_vat(self):
        metrics = calculate_price_metrics(Decimal("100"), 3, 10)
        assert metrics["has_price"] is True
        assert metrics["price_per_unit"] == Decimal("100")
        assert metrics["total_price"] == Decimal("300")
        assert metrics["vat_amount"] == Decimal("30")
        assert metrics["total_price_with_vat"] == Decimal("330")

    def test_missing_price(self):
        metrics = calculate_price_metrics(None, 3, 10)
        assert metrics["has_price"] is False
        assert metrics["total_price_with_vat"] == Decimal("0")

    def test_comma_decimal_input(self):
        assert to_decimal("12,5") == Decimal("12.5")
        assert to_decimal("abc") is None


class TestBestPrice:

    def test_lowest_positive_price(self):
        cells = {
            1: {"has_price": True, "price_per_unit": Decimal("12")},
            2: {"has_price": True, "price_per_unit": Decimal("10")},
            3: {"has_price": False, "price_per_unit": Decimal("0")},
        }
        assert find_best_price(cells) == (2, Decimal("10"))

    def test_tie_keeps_first(self):
        cells = {
            5: {"has_price": True, "price_per_unit": Decimal("10")},
            4: {"has_price": True, "price_per_unit": Decimal("10")},
        }
        assert find_best_price(cells)[0] == 5

    def test_no_candidates(self):
        assert find_best_price({}) == (None, None)


class TestVariance:

    def test_percentage(self):
        assert variance_percentage(110, 100) == Decimal("10")

    def test_no_previous(self):
        assert variance_percentage(110, None) is None
        assert variance_percentage(110, 0) is None

    @pytest.mark.parametrize("pct,trend", [(0.6, "up"), (-0.6, "down"), (0.5, "stable"), (-0.5, "stable")])
    def test_trend_threshold(self, pct, trend):
        assert variance_trend(pct, 0.5) == trend

    def test_compare_totals_zero_reference(self):
        assert compare_totals(50, 0) == {"difference": 50.0, "percentage": 0.0}


class TestMisc:

    def test_coverage_rounding(self):
        assert coverage_percentage(1, 3) == 33
        assert coverage_percentage(2, 3) == 67
        assert coverage_percentage(1, 3, places=2) == 33.33
        assert coverage_percentage(0, 0) == 0

    def test_savings(self):
        result = calculate_savings(80, 100)
        assert result["savings_amount"] == Decimal("20")
        assert result["savings_percentage"] == Decimal("20")

    def test_total_cost(self):
        result = calculate_total_cost([
            {"price": 10, "quantity": 2, "vat_rate": 10},
            {"price": 5, "quantity": 4, "vat_rate": 0},
        ])
        assert result["subtotal"] == Decimal("40")
        assert result["total_vat"] == Decimal("2")
        assert result["total"] == Decimal("42")

    def test_price_with_vat(self):
        assert price_with_vat(100, 8) == Decimal("108")


class TestPeriods:

    def test_valid_period(self):
        assert is_valid_period("2024-03-01")
        assert is_valid_period("2024-03-02")
        assert not is_valid_period("2024-13-01")
        assert not is_valid_period("2024-3-1")
        assert not is_valid_period(None)

    def test_previous_months_crosses_year(self):
        assert previous_months("2024-02-03", 3) == ["2024-01", "2023-12", "2023-11"]

    def test_previous_months_default_window(self):
        months = previous_months("2024-06-01")
        assert len(months) == 12
        assert months[0] == "2024-05"
        assert months[-1] == "2023-06"
