"""
quotemaster/pricing.py

Pure price arithmetic shared by the comparison matrix, the price list and
the approval workflow. Nothing here touches the database.

NOTE:
- All inputs are coerced to Decimal; routes convert to float only when
  building JSON payloads (utils.to_json).
- Period keys are "YYYY-MM-NN"; month arithmetic works on the "YYYY-MM" part.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Mapping

PERIOD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ZERO = Decimal("0")
HUNDRED = Decimal("100")

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"


def to_decimal(value) -> Decimal | None:
    """Coerce int/float/str/Decimal to Decimal; None and garbage become None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        return Decimal(raw)
    except (InvalidOperation, ValueError):
        return None


def round_half_up(value: Decimal, places: int = 2) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def effective_price(approved=None, negotiated=None, initial=None) -> Decimal | None:
    """approved ?? negotiated ?? initial. Zero and missing prices are skipped."""
    for value in (approved, negotiated, initial):
        price = to_decimal(value)
        if price:
            return price
    return None


def calculate_price_metrics(price, quantity=1, vat_rate=0) -> dict:
    """
    Per-cell metrics for a unit price.

    Returns price_per_unit, total_price, vat_amount, total_price_with_vat and
    has_price. A missing or non-positive price yields zeros and has_price False.
    """
    unit_price = to_decimal(price)
    qty = to_decimal(quantity) or Decimal("1")
    vat = to_decimal(vat_rate) or ZERO

    if unit_price is None or unit_price <= 0:
        return {
            "price_per_unit": ZERO,
            "total_price": ZERO,
            "vat_amount": ZERO,
            "total_price_with_vat": ZERO,
            "has_price": False,
        }

    total = unit_price * qty
    vat_amount = total * vat / HUNDRED
    return {
        "price_per_unit": unit_price,
        "total_price": total,
        "vat_amount": vat_amount,
        "total_price_with_vat": total + vat_amount,
        "has_price": True,
    }


def find_best_price(cells: Mapping[int, Mapping], key: str = "price_per_unit") -> tuple[int | None, Decimal | None]:
    """
    Lowest positive `key` among cells that have a price.

    Cells are scanned in mapping order; on ties the first one wins.
    """
    best_id = None
    best_price = None
    for cell_id, cell in cells.items():
        if not cell.get("has_price", True):
            continue
        price = to_decimal(cell.get(key))
        if price is None or price <= 0:
            continue
        if best_price is None or price < best_price:
            best_id, best_price = cell_id, price
    return best_id, best_price


def coverage_percentage(quoted: int, total: int, places: int = 0):
    """quoted / total as a percentage; 0 when there is nothing to cover."""
    if total <= 0:
        return 0 if places == 0 else 0.0
    pct = round_half_up(Decimal(quoted) * HUNDRED / Decimal(total), places)
    return int(pct) if places == 0 else float(pct)


def variance_percentage(current, previous) -> Decimal | None:
    cur = to_decimal(current)
    prev = to_decimal(previous)
    if cur is None or prev is None or prev <= 0:
        return None
    return (cur - prev) / prev * HUNDRED


def variance_trend(percentage, threshold=0.5) -> str:
    pct = to_decimal(percentage) or ZERO
    band = to_decimal(threshold) or ZERO
    if pct > band:
        return TREND_UP
    if pct < -band:
        return TREND_DOWN
    return TREND_STABLE


def compare_totals(current, reference) -> dict:
    """{difference, percentage} of current against reference; 0% when reference is 0."""
    cur = to_decimal(current) or ZERO
    ref = to_decimal(reference) or ZERO
    difference = cur - ref
    percentage = difference / ref * HUNDRED if ref > 0 else ZERO
    return {"difference": float(difference), "percentage": float(percentage)}


def calculate_savings(current_price, baseline_price) -> dict:
    current = to_decimal(current_price) or ZERO
    baseline = to_decimal(baseline_price) or ZERO
    amount = baseline - current
    percentage = amount / baseline * HUNDRED if baseline > 0 else ZERO
    return {"savings_amount": amount, "savings_percentage": percentage}


def calculate_total_cost(items: Iterable[Mapping]) -> dict:
    """Sum of price * quantity plus VAT over items with price/quantity/vat_rate keys."""
    subtotal = ZERO
    total_vat = ZERO
    for item in items:
        price = to_decimal(item.get("price")) or ZERO
        qty = to_decimal(item.get("quantity")) or ZERO
        vat = to_decimal(item.get("vat_rate")) or ZERO
        line = price * qty
        subtotal += line
        total_vat += line * vat / HUNDRED
    return {"subtotal": subtotal, "total_vat": total_vat, "total": subtotal + total_vat}


def price_with_vat(price, vat_rate) -> Decimal:
    unit = to_decimal(price) or ZERO
    vat = to_decimal(vat_rate) or ZERO
    return unit * (Decimal("1") + vat / HUNDRED)


# ---------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------
def is_valid_period(period: str | None) -> bool:
    if not period or not PERIOD_RE.match(period):
        return False
    month = int(period[5:7])
    return 1 <= month <= 12


def period_month(period: str) -> str:
    """'2024-03-01' -> '2024-03'"""
    return period[:7]


def shift_month(month_key: str, delta: int) -> str:
    year, month = int(month_key[:4]), int(month_key[5:7])
    index = year * 12 + (month - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def previous_months(period: str, count: int = 12) -> list[str]:
    """
    Month keys to search for a previous period, nearest first.

    previous_months("2024-03-01", 3) -> ["2024-02", "2024-01", "2023-12"]
    """
    month = period_month(period)
    return [shift_month(month, -offset) for offset in range(1, count + 1)]
