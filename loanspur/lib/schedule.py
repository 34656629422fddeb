"""Loan repayment schedule generation."""

import calendar
import logging
import math
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

FREQUENCIES = ("daily", "weekly", "bi-weekly", "monthly", "quarterly")
CALCULATION_METHODS = ("reducing_balance", "flat_rate", "declining_balance")
AMORTIZATION_METHODS = ("equal_installments", "equal_principal")

PAYMENTS_PER_YEAR = {
    "daily": 365,
    "weekly": 52,
    "bi-weekly": 26,
    "monthly": 12,
    "quarterly": 4,
}

PERIOD_STEP = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "bi-weekly": relativedelta(weeks=2),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
}

EXPECTED_DAYS_BETWEEN = {
    "daily": 1,
    "weekly": 7,
    "bi-weekly": 14,
    "monthly": 30,
    "quarterly": 90,
}


def round_money(value):
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_date(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return isoparse(str(value)).date()


def get_payments_per_year(frequency):
    return PAYMENTS_PER_YEAR.get(frequency, 12)


def get_next_payment_date(current, frequency):
    return current + PERIOD_STEP.get(frequency, PERIOD_STEP["monthly"])


def get_days_in_year(days_in_year_type, reference):
    if str(days_in_year_type) == "360":
        return 360
    if str(days_in_year_type) == "actual":
        return 366 if calendar.isleap(reference.year) else 365
    return 365


def calculate_periodic_rate(annual_rate, frequency, days_in_year, payments_per_year):
    """Per-installment rate from an annual decimal rate."""
    if frequency == "daily":
        rate = annual_rate / days_in_year
    else:
        rate = annual_rate / payments_per_year
    if rate > 0.1:
        logger.warning("Very high periodic rate %.4f calculated, check the loan's rate format", rate)
    return rate


def calculate_installment_payment(principal, periodic_rate, total_payments):
    if periodic_rate == 0:
        return principal / total_payments
    growth = (1 + periodic_rate) ** total_payments
    return principal * periodic_rate * growth / (growth - 1)


def count_installments(term_months, frequency):
    # term is expressed in days for daily repayment
    if frequency == "daily":
        return int(term_months)
    return int(math.ceil(term_months / 12 * get_payments_per_year(frequency)))


def generate_loan_schedule(loan_id, principal, interest_rate, term_months, disbursement_date,
                           repayment_frequency="monthly", calculation_method="reducing_balance",
                           first_payment_date=None, disbursement_fees=None, installment_fees=None,
                           days_in_year_type="365", amortization_method="equal_installments"):
    """Build the installment schedule of a loan.

    ``interest_rate`` is the annual rate as a decimal (0.12 for 12%).
    """
    principal = float(principal)
    interest_rate = float(interest_rate)
    if interest_rate > 0.5:
        logger.warning("Interest rate %s looks like a percentage, expected a decimal", interest_rate)

    start = to_date(disbursement_date)
    total_payments = count_installments(term_months, repayment_frequency)
    if total_payments <= 0:
        return []

    payments_per_year = get_payments_per_year(repayment_frequency)
    days_in_year = get_days_in_year(days_in_year_type, start)
    periodic_rate = calculate_periodic_rate(interest_rate, repayment_frequency, days_in_year, payments_per_year)

    upfront_fees = sum(float(f.get("amount") or 0) for f in (disbursement_fees or []))
    recurring_fees = sum(float(f.get("amount") or 0) for f in (installment_fees or []))

    due = to_date(first_payment_date) or get_next_payment_date(start, repayment_frequency)
    installment = calculate_installment_payment(principal, periodic_rate, total_payments)
    remaining = principal
    schedule = []

    for number in range(1, total_payments + 1):
        if calculation_method == "flat_rate":
            principal_part = principal / total_payments
            interest_part = principal * periodic_rate
        elif periodic_rate <= 0:
            principal_part = principal / total_payments
            interest_part = 0.0
        else:
            interest_part = remaining * periodic_rate
            if amortization_method == "equal_principal":
                principal_part = principal / total_payments
            else:
                principal_part = installment - interest_part

        if number == total_payments or principal_part > remaining:
            principal_part = remaining
            if calculation_method != "flat_rate":
                interest_part = remaining * periodic_rate

        principal_part = round_money(principal_part)
        interest_part = round_money(interest_part)

        fee_part = recurring_fees + (upfront_fees if number == 1 else 0)
        fee_part = round_money(fee_part)
        total = round_money(principal_part + interest_part + fee_part)
        remaining = max(0.0, round_money(remaining - principal_part))

        schedule.append({
            "loan_id": loan_id,
            "installment_number": number,
            "due_date": due.isoformat(),
            "principal_amount": principal_part,
            "interest_amount": interest_part,
            "fee_amount": fee_part,
            "total_amount": total,
            "paid_amount": 0.0,
            "outstanding_amount": total,
            "payment_status": "unpaid",
        })
        due = get_next_payment_date(due, repayment_frequency)

    return schedule


def summarize_schedule(schedule):
    return {
        "installments": len(schedule),
        "total_principal": round_money(sum(e["principal_amount"] for e in schedule)),
        "total_interest": round_money(sum(e["interest_amount"] for e in schedule)),
        "total_fees": round_money(sum(e["fee_amount"] for e in schedule)),
        "total_amount": round_money(sum(e["total_amount"] for e in schedule)),
        "maturity_date": schedule[-1]["due_date"] if schedule else None,
    }


def recalculate_schedule_outstanding(schedule, payments):
    """Apply payments (with a ``schedule_id``) to schedule rows by id.

    A payment counts its ``amount`` when present, otherwise the sum of its
    principal, interest and fee parts.
    """
    updated = [dict(entry) for entry in schedule]
    by_id = {entry.get("id"): entry for entry in updated if entry.get("id") is not None}
    for payment in payments:
        entry = by_id.get(payment.get("schedule_id"))
        if entry is None:
            continue
        if payment.get("amount") is not None:
            paid = float(payment["amount"])
        else:
            paid = sum(float(payment.get(k) or 0) for k in ("principal_amount", "interest_amount", "fee_amount"))
        entry["paid_amount"] = round_money(float(entry.get("paid_amount") or 0) + paid)
        entry["outstanding_amount"] = max(0.0, round_money(float(entry["total_amount"]) - entry["paid_amount"]))
        if entry["outstanding_amount"] == 0:
            entry["payment_status"] = "paid"
        elif entry["paid_amount"] > 0:
            entry["payment_status"] = "partial"
        else:
            entry["payment_status"] = "unpaid"
    return updated
