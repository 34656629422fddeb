from flask import current_app, g, jsonify, request

from . import finance_bp
from .services import fetch_payments, fetch_schedule, get_loan, harmonize_all_loans, harmonize_loan
from ..auth.decorators import current_tenant_id, login_required, permission_required
from ..db import get_supabase
from ..errors import AppError
from ..lib.currency import amount_to_words, format_amount, get_tenant_currency
from ..lib.fees import calculate_total_fees, format_fee_display, get_fee_warning_message
from ..lib.interest import normalize_interest_rate
from ..lib.loan_status import get_derived_loan_status
from ..lib.repayment import (
    DEFAULT_STRATEGY,
    STRATEGIES,
    allocate_repayment,
    balances_from_schedule,
    format_allocation_breakdown,
    get_total_allocation,
    validate_allocation,
)
from ..lib.schedule import (
    AMORTIZATION_METHODS,
    CALCULATION_METHODS,
    FREQUENCIES,
    generate_loan_schedule,
    summarize_schedule,
)
from ..reports import excel_response, render_document, require_advanced_reporting


def _number(data, key, default=None, required=False):
    value = data.get(key, default)
    if value in (None, ""):
        if required:
            raise AppError(f"{key} is required", "VALIDATION_ERROR", 400)
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise AppError(f"{key} must be a number", "VALIDATION_ERROR", 400)


def _group_by_loan(rows):
    grouped = {}
    for row in rows or []:
        grouped.setdefault(row.get("loan_id"), []).append(row)
    return grouped


# --- Fees ---

@finance_bp.route("/fees/calculate", methods=["POST"])
@login_required
def calculate_fees():
    data = request.get_json(silent=True) or {}
    base_amount = _number(data, "base_amount", 0)
    fees = data.get("fees")
    if fees is None and data.get("fee_ids"):
        resp = (get_supabase().table("fee_structures").select("*")
                .eq("tenant_id", current_tenant_id())
                .in_("id", data["fee_ids"]).execute())
        fees = resp.data or []
    if not isinstance(fees, list):
        raise AppError("fees or fee_ids is required", "VALIDATION_ERROR", 400)

    currency = get_tenant_currency(get_supabase(), g.profile.get("tenant_id"),
                                   current_app.config["DEFAULT_CURRENCY"])["currency"]
    result = calculate_total_fees(fees, base_amount)
    for fee in result["fees"]:
        fee["display"] = format_fee_display(fee, currency)
    return jsonify({
        "status": "success",
        "total": result["total"],
        "fees": result["fees"],
        "has_limits_applied": result["has_limits_applied"],
        "warning": get_fee_warning_message(result["fees"]),
    }), 200


# --- Loans ---

@finance_bp.route("/loans", methods=["GET"])
@login_required
def list_loans():
    client = get_supabase()
    query = client.table("loans").select("*").eq("tenant_id", current_tenant_id())
    if request.args.get("status"):
        query = query.eq("status", request.args["status"])
    loans = query.order("created_at", desc=True).execute().data or []

    ids = [loan["id"] for loan in loans]
    schedules = payments = {}
    if ids:
        schedules = _group_by_loan(client.table("loan_schedules").select("*").in_("loan_id", ids).execute().data)
        payments = _group_by_loan(client.table("loan_payments").select("*").in_("loan_id", ids).execute().data)

    for loan in loans:
        derived = get_derived_loan_status({
            **loan,
            "loan_schedules": schedules.get(loan["id"], []),
            "loan_payments": payments.get(loan["id"], []),
        })
        loan["derived_status"] = derived["status"]
        loan["status_details"] = derived
    return jsonify({"status": "success", "data": loans}), 200


@finance_bp.route("/loans/<loan_id>", methods=["GET"])
@login_required
def loan_detail(loan_id):
    client = get_supabase()
    loan = get_loan(client, loan_id, current_tenant_id())
    schedule = fetch_schedule(client, loan_id)
    payments = fetch_payments(client, loan_id)
    derived = get_derived_loan_status({**loan, "loan_schedules": schedule, "loan_payments": payments})
    return jsonify({
        "status": "success",
        "loan": loan,
        "schedule": schedule,
        "payments": payments,
        "derived_status": derived,
    }), 200


@finance_bp.route("/loans/<loan_id>/statement", methods=["GET"])
@login_required
def loan_statement(loan_id):
    """Loan statement. Query param: action=view|print|download|json (default: view)."""
    action = request.args.get("action", "view")
    client = get_supabase()
    tenant_id = current_tenant_id()
    loan = get_loan(client, loan_id, tenant_id)
    schedule = fetch_schedule(client, loan_id)
    payments = fetch_payments(client, loan_id)

    borrower = {}
    if loan.get("client_id"):
        resp = client.table("clients").select("*").eq("id", loan["client_id"]).limit(1).execute()
        borrower = resp.data[0] if resp.data else {}

    currency = get_tenant_currency(client, tenant_id, current_app.config["DEFAULT_CURRENCY"])
    summary = summarize_schedule(schedule) if schedule else {}
    summary["total_paid"] = sum(float(p.get("payment_amount") or 0) for p in payments)
    derived = get_derived_loan_status({**loan, "loan_schedules": schedule, "loan_payments": payments})

    if action == "json":
        return jsonify({
            "status": "success",
            "loan": loan,
            "client": borrower,
            "schedule": schedule,
            "payments": payments,
            "summary": summary,
            "derived_status": derived,
        }), 200

    context = dict(
        loan=loan,
        client=borrower,
        schedule=schedule,
        payments=payments,
        summary=summary,
        derived_status=derived,
        tenant=getattr(g, "tenant", None) or {},
        currency=currency["currency"],
        money=lambda v: format_amount(v, currency["currency"], currency["decimal_places"]),
        amount_words=amount_to_words(loan.get("principal_amount") or 0, currency["currency"]),
        app_name=current_app.config["APP_NAME"],
    )
    filename = loan.get("loan_number") or loan_id
    return render_document("loan_statement.html", filename, context, action)


@finance_bp.route("/loans/<loan_id>/schedule.xlsx", methods=["GET"])
@login_required
def loan_schedule_excel(loan_id):
    require_advanced_reporting()
    client = get_supabase()
    loan = get_loan(client, loan_id, current_tenant_id())
    columns = ["installment_number", "due_date", "principal_amount", "interest_amount", "fee_amount",
               "total_amount", "paid_amount", "outstanding_amount", "payment_status"]
    return excel_response(fetch_schedule(client, loan_id), columns,
                          f"{loan.get('loan_number') or loan_id}_schedule.xlsx", "Schedule")


@finance_bp.route("/loans/<loan_id>/harmonization", methods=["GET"])
@login_required
def loan_harmonization_check(loan_id):
    client = get_supabase()
    loan = get_loan(client, loan_id, current_tenant_id())
    return jsonify({"status": "success", "data": harmonize_loan(client, loan, persist=False)}), 200


@finance_bp.route("/loans/<loan_id>/harmonize", methods=["POST"])
@permission_required("loans.harmonize")
def loan_harmonize(loan_id):
    client = get_supabase()
    loan = get_loan(client, loan_id, current_tenant_id())
    result = harmonize_loan(client, loan, persist=True, performed_by=g.profile.get("id"))
    current_app.logger.info("Loan %s harmonized by %s", loan_id, g.profile.get("id"))
    return jsonify({"status": "success", "data": result}), 200


@finance_bp.route("/loans/harmonize-all", methods=["POST"])
@permission_required("loans.harmonize")
def loans_harmonize_all():
    results = harmonize_all_loans(get_supabase(), current_tenant_id(), performed_by=g.profile.get("id"))
    failed = sum(1 for row in results if "error" in row)
    return jsonify({
        "status": "success",
        "message": f"Successfully harmonized {len(results) - failed} loans",
        "failed": failed,
        "data": results,
    }), 200


@finance_bp.route("/loans/<loan_id>/allocate-repayment", methods=["POST"])
@login_required
def loan_allocate_repayment(loan_id):
    """Preview how a repayment would be split across the loan's unpaid balances."""
    data = request.get_json(silent=True) or {}
    amount = _number(data, "amount", required=True)
    if amount <= 0:
        raise AppError("amount must be greater than zero", "VALIDATION_ERROR", 400)

    client = get_supabase()
    tenant_id = current_tenant_id()
    loan = get_loan(client, loan_id, tenant_id)
    strategy = data.get("strategy") or (loan.get("loan_products") or {}).get("repayment_strategy") or DEFAULT_STRATEGY
    if strategy not in STRATEGIES:
        raise AppError(f"Unknown allocation strategy: {strategy}", "VALIDATION_ERROR", 400)

    balances = balances_from_schedule(fetch_schedule(client, loan_id))
    allocation = allocate_repayment(amount, balances, strategy)
    allocated = get_total_allocation(allocation)
    currency = get_tenant_currency(client, tenant_id, current_app.config["DEFAULT_CURRENCY"])["currency"]
    return jsonify({
        "status": "success",
        "strategy": strategy,
        "balances": balances,
        "allocation": allocation,
        "total_allocated": allocated,
        "unallocated": round(amount - allocated, 2),
        "validation": validate_allocation(allocation, balances),
        "breakdown": format_allocation_breakdown(allocation, currency),
    }), 200


@finance_bp.route("/loans/schedule-preview", methods=["POST"])
@login_required
def schedule_preview():
    data = request.get_json(silent=True) or {}
    principal = _number(data, "principal", required=True)
    rate = _number(data, "interest_rate", required=True)
    term = _number(data, "term_months", required=True)
    if principal <= 0 or term <= 0:
        raise AppError("principal and term_months must be greater than zero", "VALIDATION_ERROR", 400)
    if not data.get("disbursement_date"):
        raise AppError("disbursement_date is required", "VALIDATION_ERROR", 400)

    frequency = data.get("repayment_frequency") or "monthly"
    method = data.get("calculation_method") or "reducing_balance"
    amortization = data.get("amortization_method") or "equal_installments"
    for value, allowed, name in ((frequency, FREQUENCIES, "repayment_frequency"),
                                 (method, CALCULATION_METHODS, "calculation_method"),
                                 (amortization, AMORTIZATION_METHODS, "amortization_method")):
        if value not in allowed:
            raise AppError(f"Unsupported {name}: {value}", "VALIDATION_ERROR", 400)

    try:
        schedule = generate_loan_schedule(
            data.get("loan_id"),
            principal,
            normalize_interest_rate(rate) / 100,
            int(term),
            data["disbursement_date"],
            repayment_frequency=frequency,
            calculation_method=method,
            first_payment_date=data.get("first_payment_date"),
            disbursement_fees=data.get("disbursement_fees"),
            installment_fees=data.get("installment_fees"),
            days_in_year_type=str(data.get("days_in_year_type") or "365"),
            amortization_method=amortization,
        )
    except ValueError as e:
        raise AppError(f"Invalid date: {e}", "VALIDATION_ERROR", 400)
    return jsonify({"status": "success", "schedule": schedule, "summary": summarize_schedule(schedule)}), 200
