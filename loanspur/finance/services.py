"""Database side of loan harmonization and loan lookups."""

import logging
from datetime import date, datetime, timezone

from ..errors import AppError, handle_api_error
from ..lib.harmonizer import (
    compute_harmonization,
    reallocate_payments,
    total_paid_amount,
    validate_schedule_consistency,
)
from ..lib.interest import normalize_interest_rate
from ..lib.schedule import generate_loan_schedule

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = "id,name,repayment_frequency,interest_calculation_method,repayment_strategy"
HARMONIZABLE_STATUSES = ["disbursed", "active", "overdue", "in_arrears"]


def attach_product(client, loan):
    """Embed the loan's product row under ``loan_products``."""
    if loan.get("loan_products") or not loan.get("loan_product_id"):
        loan.setdefault("loan_products", loan.get("loan_products") or {})
        return loan
    resp = (client.table("loan_products").select(PRODUCT_COLUMNS)
            .eq("id", loan["loan_product_id"]).limit(1).execute())
    loan["loan_products"] = resp.data[0] if resp.data else {}
    return loan


def get_loan(client, loan_id, tenant_id=None):
    query = client.table("loans").select("*").eq("id", loan_id)
    if tenant_id:
        query = query.eq("tenant_id", tenant_id)
    resp = query.limit(1).execute()
    if not resp.data:
        raise AppError("Loan not found", "NOT_FOUND", 404)
    return attach_product(client, resp.data[0])


def fetch_schedule(client, loan_id):
    try:
        resp = (client.table("loan_schedules").select("*")
                .eq("loan_id", loan_id).order("installment_number").execute())
    except Exception as e:
        raise handle_api_error(e, "fetch loan schedule")
    return resp.data or []


def fetch_payments(client, loan_id):
    try:
        resp = (client.table("loan_payments").select("*")
                .eq("loan_id", loan_id).order("payment_date").execute())
    except Exception as e:
        raise handle_api_error(e, "fetch loan payments")
    return resp.data or []


def regenerate_schedule(client, loan, corrected_rate):
    """Replace a loan's schedule with one built from its own terms."""
    product = loan.get("loan_products") or {}
    schedule = generate_loan_schedule(
        loan["id"],
        float(loan.get("principal_amount") or 0),
        corrected_rate / 100,
        int(loan.get("term_months") or 0),
        loan.get("disbursement_date") or date.today().isoformat(),
        repayment_frequency=product.get("repayment_frequency") or "monthly",
        calculation_method=product.get("interest_calculation_method") or "reducing_balance",
    )
    logger.info("Regenerating %d installments for loan %s", len(schedule), loan["id"])
    return replace_schedule(client, loan["id"], schedule)


def replace_schedule(client, loan_id, schedule):
    client.table("loan_schedules").delete().eq("loan_id", loan_id).execute()
    if schedule:
        client.table("loan_schedules").insert(schedule).execute()
    return fetch_schedule(client, loan_id)


def write_allocation(client, updates):
    for update in updates:
        (client.table("loan_schedules")
         .update({k: v for k, v in update.items() if k != "id"})
         .eq("id", update["id"]).execute())


def harmonize_loan(client, loan, persist=True, today=None, performed_by=None, harmonization_type="single"):
    """Reconcile a loan's stored rate and balance with its schedule and payments.

    With ``persist=False`` nothing is written and the result only reports
    what harmonization would find.
    """
    loan = attach_product(client, loan)
    corrected_rate = normalize_interest_rate(loan.get("interest_rate"))
    schedule = fetch_schedule(client, loan["id"])
    payments = fetch_payments(client, loan["id"])

    consistent = validate_schedule_consistency(schedule, loan, corrected_rate)
    if persist and not consistent:
        schedule = regenerate_schedule(client, loan, corrected_rate)
        if payments:
            write_allocation(client, reallocate_payments(schedule, total_paid_amount(payments)))
            schedule = fetch_schedule(client, loan["id"])

    result = compute_harmonization(loan, schedule, payments, today)
    result["schedule_consistent"] = consistent

    if persist:
        (client.table("loans").update({
            "interest_rate": corrected_rate / 100,
            "outstanding_balance": result["calculated_outstanding"],
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }).eq("id", loan["id"]).execute())
        log_harmonization(client, loan, result, harmonization_type, performed_by)
    elif result["balance_inconsistent"]:
        logger.warning(
            "Loan %s outstanding mismatch: stored %.2f, calculated %.2f",
            loan["id"], result["stored_outstanding"], result["calculated_outstanding"],
        )
    return result


def log_harmonization(client, loan, result, harmonization_type, performed_by=None, notes=None):
    row = {
        "tenant_id": loan.get("tenant_id"),
        "loan_id": loan["id"],
        "old_interest_rate": loan.get("interest_rate"),
        "new_interest_rate": result["corrected_interest_rate"] / 100,
        "old_outstanding_balance": result["stored_outstanding"],
        "new_outstanding_balance": result["calculated_outstanding"],
        "harmonization_type": harmonization_type,
        "performed_by": performed_by,
        "notes": notes,
    }
    try:
        client.table("loan_harmonization_log").insert(row).execute()
    except Exception as e:
        # the loan itself is already updated at this point
        logger.warning("Failed to log harmonization of loan %s: %s", loan["id"], e)
    return row


def harmonize_all_loans(client, tenant_id=None, performed_by=None, today=None):
    """Harmonize every disbursed or active loan, optionally within one tenant."""
    query = client.table("loans").select("*").in_("status", HARMONIZABLE_STATUSES)
    if tenant_id:
        query = query.eq("tenant_id", tenant_id)
    loans = query.execute().data or []

    results = []
    for loan in loans:
        try:
            outcome = harmonize_loan(client, loan, persist=True, today=today,
                                     performed_by=performed_by, harmonization_type="batch_auto")
        except Exception as e:
            error = handle_api_error(e, f"harmonize loan {loan.get('id')}")
            results.append({"loan_id": loan.get("id"), "error": error.message})
            continue
        results.append({
            "loan_id": loan["id"],
            "old_interest_rate": loan.get("interest_rate"),
            "new_interest_rate": outcome["corrected_interest_rate"] / 100,
            "old_outstanding": outcome["stored_outstanding"],
            "new_outstanding": outcome["calculated_outstanding"],
        })
    logger.info("Harmonized %d loans", len(results))
    return results
