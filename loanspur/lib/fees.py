"""Fee calculation with min/max enforcement.

Fee structures are plain rows from the ``fee_structures`` table::

    {"id": ..., "name": "Processing fee", "calculation_type": "percentage",
     "amount": 2.5, "min_amount": 100, "max_amount": 5000, ...}
"""

from .currency import format_number

FIXED_TYPES = ("fixed", "flat")


def _limit(value):
    # null and 0 both mean "no limit" on a fee structure
    if value in (None, ""):
        return None
    value = float(value)
    return value if value else None


def clamp_fee(amount, min_amount=None, max_amount=None):
    """Clamp ``amount`` into [min_amount, max_amount].

    Returns ``(value, applied_limit)`` where applied_limit is ``"minimum"``,
    ``"maximum"`` or ``None``. Clamping an already clamped value returns it
    unchanged.
    """
    applied = None
    low = _limit(min_amount)
    high = _limit(max_amount)
    if low is not None and amount < low:
        amount = low
        applied = "minimum"
    if high is not None and amount > high:
        amount = high
        applied = "maximum"
    return amount, applied


def calculate_fee_amount(fee, base_amount=0):
    calculation_type = fee.get("calculation_type") or "fixed"
    amount = float(fee.get("amount") or 0)
    base_amount = float(base_amount or 0)

    if calculation_type == "percentage":
        calculated = base_amount * amount / 100
    else:
        calculated = amount

    calculated, applied_limit = clamp_fee(calculated, fee.get("min_amount"), fee.get("max_amount"))

    return {
        "id": fee.get("id"),
        "name": fee.get("name"),
        "calculation_type": calculation_type,
        "original_amount": amount,
        "calculated_amount": calculated,
        "applied_limit": applied_limit,
        "base_amount": base_amount,
    }


def calculate_total_fees(fees, base_amount=0):
    calculated = [calculate_fee_amount(fee, base_amount) for fee in fees]
    return {
        "total": sum(f["calculated_amount"] for f in calculated),
        "fees": calculated,
        "has_limits_applied": any(f["applied_limit"] for f in calculated),
    }


def format_fee_display(calculated_fee, currency="KES"):
    amount = format_number(calculated_fee["calculated_amount"])
    is_percentage = calculated_fee["calculation_type"] == "percentage"

    if is_percentage:
        display = f"{format_number(calculated_fee['original_amount'])}%"
    else:
        display = f"{currency} {amount}"

    if calculated_fee.get("applied_limit"):
        label = "Min" if calculated_fee["applied_limit"] == "minimum" else "Max"
        display += f" ({label} applied: {currency} {amount})"
    elif is_percentage and calculated_fee.get("base_amount"):
        display += f" = {currency} {amount}"
    return display


def get_fee_warning_message(calculated_fees):
    """Describe which fees were pushed to a limit, or None if none were."""
    min_applied = [f["name"] for f in calculated_fees if f.get("applied_limit") == "minimum"]
    max_applied = [f["name"] for f in calculated_fees if f.get("applied_limit") == "maximum"]
    if not min_applied and not max_applied:
        return None

    parts = []
    if min_applied:
        parts.append("Minimum charge limits applied to: " + ", ".join(min_applied))
    if max_applied:
        parts.append("Maximum charge limits applied to: " + ", ".join(max_applied))
    return ". ".join(parts)
