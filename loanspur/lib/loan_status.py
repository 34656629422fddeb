from datetime import date

from .schedule import to_date

# loans that were never disbursed have no balance to derive from
APPLICATION_STATES = ("pending", "pending_approval", "approved", "rejected", "withdrawn")


def get_derived_loan_status(loan, today=None):
    """Status to show for a loan, derived from its payments and schedule."""
    if not loan:
        return {"status": "unknown"}

    today = today or date.today()
    raw_status = (loan.get("status") or "").lower()
    if raw_status in APPLICATION_STATES:
        return {"status": raw_status}

    payments = loan.get("loan_payments") or loan.get("payments") or []
    schedules = loan.get("loan_schedules") or loan.get("schedules") or []

    total_payments = sum(float(p.get("payment_amount") or 0) for p in payments)
    total_loan = sum(float(s.get("total_amount") or 0) for s in schedules) or float(loan.get("principal_amount") or 0)
    stored = loan.get("outstanding_balance")
    if stored is None:
        stored = loan.get("outstanding", 0)
    stored = float(stored or 0)

    if total_payments > 0 and total_payments > total_loan:
        # overpaid is not a valid database status
        return {"status": "active", "overpaid_amount": round(total_payments - total_loan, 2)}

    if (total_payments > 0 and total_payments >= total_loan) or total_loan - total_payments <= 0:
        return {"status": "closed"}

    if stored == 0:
        return {"status": "closed"}

    if stored < 0:
        return {"status": "active", "overpaid_amount": abs(stored)}

    # an installment due today is already one day in arrears
    overdue = [
        to_date(s["due_date"]) for s in schedules
        if s.get("due_date") and to_date(s["due_date"]) <= today
        and (s.get("payment_status") or "").lower() != "paid"
    ]
    if overdue:
        return {"status": "in_arrears", "days_in_arrears": max(1, (today - min(overdue)).days)}

    if raw_status == "overdue":
        return {"status": "overdue"}
    if raw_status in ("disbursed", "overpaid"):
        return {"status": "active"}
    return {"status": raw_status or "unknown"}
