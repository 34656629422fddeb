"""Allocation of a repayment across penalties, fees, interest and principal."""

from .currency import format_amount
from .schedule import round_money

COMPONENTS = ("principal", "interest", "fees", "penalties")

STRATEGIES = {
    "penalties_fees_interest_principal": ("penalties", "fees", "interest", "principal"),
    "interest_principal_penalties_fees": ("interest", "principal", "penalties", "fees"),
    "interest_penalties_fees_principal": ("interest", "penalties", "fees", "principal"),
    "principal_interest_fees_penalties": ("principal", "interest", "fees", "penalties"),
}
DEFAULT_STRATEGY = "penalties_fees_interest_principal"

# allocation component -> key in the balances mapping
BALANCE_KEYS = {
    "principal": "outstanding_principal",
    "interest": "unpaid_interest",
    "fees": "unpaid_fees",
    "penalties": "unpaid_penalties",
}


def get_strategy_order(strategy):
    return STRATEGIES.get(strategy, STRATEGIES[DEFAULT_STRATEGY])


def _available(component, balances):
    return max(0.0, float(balances.get(BALANCE_KEYS[component]) or 0))


def allocate_repayment(payment_amount, balances, strategy=DEFAULT_STRATEGY):
    remaining = float(payment_amount)
    allocation = dict.fromkeys(COMPONENTS, 0.0)
    for component in get_strategy_order(strategy):
        if remaining <= 0:
            break
        amount = min(remaining, _available(component, balances))
        if amount > 0:
            allocation[component] = amount
            remaining -= amount
    return allocation


def validate_allocation(allocation, balances):
    errors = []
    labels = {
        "principal": "Principal allocation exceeds outstanding principal",
        "interest": "Interest allocation exceeds unpaid interest",
        "fees": "Fee allocation exceeds unpaid fees",
        "penalties": "Penalty allocation exceeds unpaid penalties",
    }
    for component in ("principal", "interest", "fees", "penalties"):
        if allocation.get(component, 0) > float(balances.get(BALANCE_KEYS[component]) or 0):
            errors.append(labels[component])
    for component, value in allocation.items():
        if value < 0:
            errors.append(f"{component} allocation cannot be negative")
    return {"is_valid": not errors, "errors": errors}


def get_total_allocation(allocation):
    return sum(allocation.get(c, 0) for c in COMPONENTS)


def format_allocation_breakdown(allocation, currency="KES"):
    parts = []
    for component, label in (("penalties", "Penalties"), ("fees", "Fees"),
                             ("interest", "Interest"), ("principal", "Principal")):
        if allocation.get(component, 0) > 0:
            parts.append(f"{label}: {format_amount(allocation[component], currency)}")
    return ", ".join(parts) if parts else "No allocation"


def balances_from_schedule(schedule):
    """Unpaid balances of a loan derived from its schedule rows."""
    balances = dict.fromkeys(BALANCE_KEYS.values(), 0.0)
    for entry in schedule:
        if (entry.get("payment_status") or "").lower() == "paid":
            continue
        total = float(entry.get("total_amount") or 0)
        paid = float(entry.get("paid_amount") or 0)
        if total <= 0:
            continue
        # paid amounts are spread over the components in proportion to the installment
        unpaid_ratio = max(0.0, total - paid) / total
        balances["outstanding_principal"] += float(entry.get("principal_amount") or 0) * unpaid_ratio
        balances["unpaid_interest"] += float(entry.get("interest_amount") or 0) * unpaid_ratio
        balances["unpaid_fees"] += float(entry.get("fee_amount") or 0) * unpaid_ratio
        balances["unpaid_penalties"] += float(entry.get("penalty_amount") or 0) * unpaid_ratio
    return {k: round(v, 2) for k, v in balances.items()}


def distribute_payment(schedule, amount):
    """Split ``amount`` over unpaid installments, oldest first.

    Returns ``[{"schedule_id", "amount"}]`` ready for
    ``recalculate_schedule_outstanding``.
    """
    remaining = round_money(amount)
    parts = []
    for entry in sorted(schedule, key=lambda e: e.get("installment_number") or 0):
        if remaining <= 0:
            break
        if (entry.get("payment_status") or "").lower() == "paid":
            continue
        due = round_money(float(entry.get("total_amount") or 0) - float(entry.get("paid_amount") or 0))
        if due <= 0:
            continue
        applied = min(remaining, due)
        parts.append({"schedule_id": entry.get("id"), "amount": applied})
        remaining = round_money(remaining - applied)
    return parts
