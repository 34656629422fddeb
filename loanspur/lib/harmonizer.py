"""Loan harmonization: reconcile stored loan figures with the schedule and payments.

Everything here is pure. The database side lives in
``loanspur.finance.services``.
"""

from datetime import date
from decimal import Decimal

from .interest import normalize_interest_rate
from .schedule import EXPECTED_DAYS_BETWEEN, round_money, to_date

BALANCE_EPSILON = 0.01


def total_scheduled_amount(schedule):
    return round_money(sum(float(e.get("total_amount") or 0) for e in schedule or []))


def total_paid_amount(payments):
    return round_money(sum(float(p.get("payment_amount") or 0) for p in payments or []))


def calculate_outstanding(total_scheduled, total_paid):
    return max(0.0, round_money(total_scheduled - total_paid))


def is_outstanding_inconsistent(calculated, stored, epsilon=BALANCE_EPSILON):
    # exact decimal difference; one cent apart is still consistent
    diff = Decimal(str(float(calculated))) - Decimal(str(float(stored or 0)))
    return abs(diff) > Decimal(str(epsilon))


def overdue_entries(schedule, today=None):
    today = today or date.today()
    overdue = []
    for entry in schedule or []:
        due = to_date(entry.get("due_date"))
        if due is None:
            continue
        if due < today and (entry.get("payment_status") or "").lower() != "paid":
            overdue.append(entry)
    return overdue


def calculate_days_in_arrears(schedule, today=None):
    today = today or date.today()
    overdue = overdue_entries(schedule, today)
    if not overdue:
        return 0
    earliest = min(to_date(e["due_date"]) for e in overdue)
    return (today - earliest).days


def validate_schedule_consistency(schedule, loan, corrected_rate):
    """Check a stored schedule still matches the loan's terms.

    Fails when the spacing of the first two installments does not match the
    product's repayment frequency (one day of tolerance) or when total interest
    exceeds three times the simple interest for the term.
    """
    if not schedule:
        return False

    product = loan.get("loan_products") or {}
    frequency = product.get("repayment_frequency") or "monthly"

    if len(schedule) >= 2:
        first = to_date(schedule[0]["due_date"])
        second = to_date(schedule[1]["due_date"])
        spacing = abs((second - first).days)
        if abs(spacing - EXPECTED_DAYS_BETWEEN.get(frequency, 30)) > 1:
            return False

    total_interest = sum(float(e.get("interest_amount") or 0) for e in schedule)
    principal = float(loan.get("principal_amount") or 0)
    term_years = float(loan.get("term_months") or 0) / 12
    ceiling = principal * (corrected_rate / 100) * term_years * 3
    return total_interest <= ceiling


def reallocate_payments(schedule, total_paid):
    """Spread ``total_paid`` over the schedule in installment order."""
    remaining = float(total_paid)
    updates = []
    for entry in schedule:
        if remaining <= 0:
            break
        total = float(entry.get("total_amount") or 0)
        paid = min(remaining, total)
        outstanding = max(0.0, round_money(total - paid))
        if outstanding <= BALANCE_EPSILON:
            status = "paid"
        elif paid > 0:
            status = "partial"
        else:
            status = "unpaid"
        updates.append({
            "id": entry.get("id"),
            "paid_amount": round_money(paid),
            "outstanding_amount": outstanding,
            "payment_status": status,
        })
        remaining -= paid
    return updates


def apply_updates(schedule, updates):
    by_id = {u["id"]: u for u in updates}
    merged = []
    for entry in schedule:
        row = dict(entry)
        row.update({k: v for k, v in by_id.get(entry.get("id"), {}).items() if k != "id"})
        merged.append(row)
    return merged


def compute_harmonization(loan, schedule, payments, today=None):
    corrected_rate = normalize_interest_rate(loan.get("interest_rate"))
    scheduled = total_scheduled_amount(schedule)
    paid = total_paid_amount(payments)
    outstanding = calculate_outstanding(scheduled, paid)
    stored = float(loan.get("outstanding_balance") or 0)
    days = calculate_days_in_arrears(schedule, today)
    return {
        "loan_id": loan.get("id"),
        "total_scheduled_amount": scheduled,
        "total_paid_amount": paid,
        "calculated_outstanding": outstanding,
        "stored_outstanding": stored,
        "corrected_interest_rate": corrected_rate,
        "days_in_arrears": days,
        "in_arrears": days > 0,
        "schedule_consistent": validate_schedule_consistency(schedule, loan, corrected_rate),
        "balance_inconsistent": is_outstanding_inconsistent(outstanding, stored),
    }
