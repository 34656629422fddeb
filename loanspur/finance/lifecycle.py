"""Loan lifecycle writes: application review, disbursement and repayments."""

import logging
from datetime import date, datetime, timezone

from .services import HARMONIZABLE_STATUSES, fetch_payments, fetch_schedule, replace_schedule
from ..errors import AppError
from ..lib.harmonizer import BALANCE_EPSILON, calculate_outstanding, total_paid_amount, total_scheduled_amount
from ..lib.interest import normalize_interest_rate
from ..lib.repayment import allocate_repayment, balances_from_schedule, distribute_payment
from ..lib.schedule import generate_loan_schedule, recalculate_schedule_outstanding, round_money, summarize_schedule
from ..savings.utils import record_transaction

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = {
    "approve": "pending_disbursement",
    "reject": "rejected",
    "review": "under_review",
}
REVIEWABLE_STATUSES = ("pending", "under_review")
DISBURSABLE_STATUSES = ("approved", "pending_disbursement")


def _now():
    return datetime.now(timezone.utc)


def _number_stamp(prefix):
    return f"{prefix}-{int(_now().timestamp() * 1000)}"


def get_application(client, application_id, tenant_id):
    resp = (client.table("loan_applications").select("*")
            .eq("id", application_id).eq("tenant_id", tenant_id).limit(1).execute())
    if not resp.data:
        raise AppError("Loan application not found", "NOT_FOUND", 404)
    return resp.data[0]


def create_application(client, tenant_id, data, submitted_by=None):
    row = {
        "tenant_id": tenant_id,
        "client_id": data["client_id"],
        "loan_product_id": data["loan_product_id"],
        "application_number": _number_stamp("LA"),
        "requested_amount": float(data["requested_amount"]),
        "requested_term": int(data["requested_term"]),
        "purpose": data.get("purpose"),
        "status": "pending",
        "submitted_by": submitted_by,
        "submitted_at": _now().isoformat(),
    }
    return client.table("loan_applications").insert(row).execute().data[0]


def review_application(client, application, action, reviewer_id, data=None):
    """Record an approval decision and move the application on.

    Approving also creates the loan in ``pending_disbursement``.
    """
    data = data or {}
    if action not in REVIEW_ACTIONS:
        raise AppError(f"Unknown review action: {action}", "VALIDATION_ERROR", 400)
    if application.get("status") not in REVIEWABLE_STATUSES:
        raise AppError(f"Application is already {application.get('status')}", "INVALID_STATUS", 400)

    amount = float(data.get("approved_amount") or application.get("requested_amount") or 0)
    term = int(data.get("approved_term") or application.get("requested_term") or 0)
    rate = data.get("approved_interest_rate")
    if action == "approve" and rate in (None, ""):
        raise AppError("approved_interest_rate is required to approve", "VALIDATION_ERROR", 400)

    now = _now().isoformat()
    status = REVIEW_ACTIONS[action]
    approval = client.table("loan_approvals").insert({
        "tenant_id": application["tenant_id"],
        "loan_application_id": application["id"],
        "approver_id": reviewer_id,
        "action": action,
        "status": "approved" if action == "approve" else status,
        "comments": data.get("comments"),
        "approved_amount": amount if action == "approve" else None,
        "approved_term": term if action == "approve" else None,
        "approved_interest_rate": rate if action == "approve" else None,
    }).execute().data[0]

    application_update = {
        "status": status,
        "reviewed_by": reviewer_id,
        "reviewed_at": now,
        "approval_notes": data.get("comments"),
    }
    loan = None
    if action == "approve":
        application_update.update(final_approved_amount=amount, final_approved_term=term,
                                  final_approved_interest_rate=rate)
        loan = client.table("loans").insert({
            "tenant_id": application["tenant_id"],
            "client_id": application.get("client_id"),
            "loan_product_id": application.get("loan_product_id"),
            "application_id": application["id"],
            "loan_number": _number_stamp("LN"),
            "principal_amount": amount,
            "interest_rate": normalize_interest_rate(rate) / 100,
            "term_months": term,
            "outstanding_balance": amount,
            "status": "pending_disbursement",
            "loan_officer_id": reviewer_id,
            "created_at": now,
        }).execute().data[0]
    client.table("loan_applications").update(application_update).eq("id", application["id"]).execute()

    logger.info("Loan application %s %s by %s", application["id"], status, reviewer_id)
    return {"approval": approval, "application_status": status, "loan": loan}


def disburse_loan(client, loan, disbursed_by, disbursement_date=None, method="cash", first_payment_date=None,
                  reference_number=None, savings_account=None):
    """Disburse an approved loan: build and store its schedule, then activate it."""
    if client.table("loan_disbursements").select("id").eq("loan_id", loan["id"]).limit(1).execute().data:
        raise AppError("Loan has already been disbursed", "DUPLICATE_ENTRY", 409)
    if loan.get("status") not in DISBURSABLE_STATUSES:
        raise AppError(f"Loan is {loan.get('status')}, not awaiting disbursement", "INVALID_STATUS", 400)
    if method == "transfer_to_savings" and not savings_account:
        raise AppError("A savings account is required for transfer_to_savings", "VALIDATION_ERROR", 400)

    product = loan.get("loan_products") or {}
    principal = float(loan.get("principal_amount") or 0)
    disbursement_date = disbursement_date or date.today().isoformat()
    schedule = generate_loan_schedule(
        loan["id"],
        principal,
        normalize_interest_rate(loan.get("interest_rate")) / 100,
        int(loan.get("term_months") or 0),
        disbursement_date,
        repayment_frequency=product.get("repayment_frequency") or "monthly",
        calculation_method=product.get("interest_calculation_method") or "reducing_balance",
        first_payment_date=first_payment_date,
    )
    if not schedule:
        raise AppError("Loan terms produce an empty schedule", "VALIDATION_ERROR", 400)
    stored = replace_schedule(client, loan["id"], schedule)

    if savings_account:
        record_transaction(client, savings_account, "deposit", principal, processed_by=disbursed_by,
                           transaction_date=disbursement_date,
                           description=f"Loan disbursement - {loan.get('loan_number')}")

    disbursement = client.table("loan_disbursements").insert({
        "tenant_id": loan.get("tenant_id"),
        "loan_id": loan["id"],
        "loan_application_id": loan.get("application_id"),
        "disbursed_amount": principal,
        "disbursement_date": disbursement_date,
        "disbursement_method": method,
        "reference_number": reference_number,
        "savings_account_id": savings_account["id"] if savings_account else None,
        "disbursed_by": disbursed_by,
        "status": "completed",
    }).execute().data[0]

    updates = {
        "status": "active",
        "disbursement_date": disbursement_date,
        "outstanding_balance": total_scheduled_amount(stored),
        "updated_at": _now().isoformat(),
    }
    client.table("loans").update(updates).eq("id", loan["id"]).execute()
    if loan.get("application_id"):
        client.table("loan_applications").update({"status": "disbursed"}).eq("id", loan["application_id"]).execute()

    logger.info("Loan %s disbursed: %.2f via %s", loan["id"], principal, method)
    return {"loan": {**loan, **updates}, "disbursement": disbursement, "summary": summarize_schedule(stored)}


def record_repayment(client, loan, amount, strategy, processed_by=None, payment_date=None, payment_method=None,
                     reference_number=None):
    """Post a repayment: store the payment, pay installments oldest first, update the loan balance."""
    if loan.get("status") not in HARMONIZABLE_STATUSES:
        raise AppError(f"Loan is {loan.get('status')}, repayments are not accepted", "INVALID_STATUS", 400)

    schedule = fetch_schedule(client, loan["id"])
    scheduled = total_scheduled_amount(schedule)
    paid = total_paid_amount(fetch_payments(client, loan["id"]))
    outstanding = calculate_outstanding(scheduled, paid)
    if outstanding <= 0:
        raise AppError("Loan has no outstanding balance", "VALIDATION_ERROR", 400)
    if amount - outstanding > BALANCE_EPSILON:
        raise AppError(f"Payment exceeds the outstanding balance of {outstanding:.2f}", "OVERPAYMENT", 400)

    allocation = allocate_repayment(amount, balances_from_schedule(schedule), strategy)
    payment = client.table("loan_payments").insert({
        "tenant_id": loan.get("tenant_id"),
        "loan_id": loan["id"],
        "payment_amount": round_money(amount),
        "principal_amount": round_money(allocation["principal"]),
        "interest_amount": round_money(allocation["interest"]),
        "fee_amount": round_money(allocation["fees"]),
        "penalty_amount": round_money(allocation["penalties"]),
        "payment_date": payment_date or date.today().isoformat(),
        "payment_method": payment_method,
        "reference_number": reference_number,
        "processed_by": processed_by,
    }).execute().data[0]

    parts = distribute_payment(schedule, amount)
    touched = {part["schedule_id"] for part in parts}
    for row in recalculate_schedule_outstanding(schedule, parts):
        if row.get("id") not in touched:
            continue
        (client.table("loan_schedules").update({
            "paid_amount": row["paid_amount"],
            "outstanding_amount": row["outstanding_amount"],
            "payment_status": row["payment_status"],
        }).eq("id", row["id"]).execute())

    new_outstanding = calculate_outstanding(scheduled, paid + amount)
    updates = {"outstanding_balance": new_outstanding, "updated_at": _now().isoformat()}
    if new_outstanding == 0:
        updates["status"] = "closed"
    client.table("loans").update(updates).eq("id", loan["id"]).execute()

    logger.info("Repayment of %.2f on loan %s, outstanding now %.2f", amount, loan["id"], new_outstanding)
    return {
        "payment": payment,
        "allocation": allocation,
        "installments_paid": len(parts),
        "outstanding_balance": new_outstanding,
        "loan_status": updates.get("status", loan.get("status")),
    }
