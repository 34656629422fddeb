from flask import current_app, g, jsonify, request

from . import finance_bp
from .lifecycle import create_application, disburse_loan, get_application, record_repayment, review_application
from .services import get_loan
from ..auth.decorators import current_tenant_id, login_required, permission_required
from ..db import get_supabase
from ..errors import AppError
from ..lib.repayment import DEFAULT_STRATEGY, STRATEGIES
from ..savings.api import get_account

DISBURSEMENT_METHODS = ("cash", "bank_transfer", "mpesa", "transfer_to_savings")


def _positive(data, key, cast=float):
    try:
        value = cast(data.get(key))
    except (TypeError, ValueError):
        raise AppError(f"{key} must be a number", "VALIDATION_ERROR", 400)
    if value <= 0:
        raise AppError(f"{key} must be greater than zero", "VALIDATION_ERROR", 400)
    return value


# --- Applications ---

@finance_bp.route("/loan-applications", methods=["GET"])
@login_required
def list_applications():
    query = get_supabase().table("loan_applications").select("*").eq("tenant_id", current_tenant_id())
    if request.args.get("status"):
        query = query.eq("status", request.args["status"])
    resp = query.order("submitted_at", desc=True).execute()
    return jsonify({"status": "success", "data": resp.data or []}), 200


@finance_bp.route("/loan-applications", methods=["POST"])
@login_required
def submit_application():
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("client_id", "loan_product_id") if not data.get(f)]
    if missing:
        raise AppError(f"Missing fields: {', '.join(missing)}", "VALIDATION_ERROR", 400)
    data["requested_amount"] = _positive(data, "requested_amount")
    data["requested_term"] = _positive(data, "requested_term", int)

    client = get_supabase()
    tenant_id = current_tenant_id()
    owner = (client.table("clients").select("id")
             .eq("id", data["client_id"]).eq("tenant_id", tenant_id).limit(1).execute())
    if not owner.data:
        raise AppError("Client not found", "NOT_FOUND", 404)

    application = create_application(client, tenant_id, data, submitted_by=g.profile.get("id"))
    return jsonify({"status": "success", "data": application}), 201


@finance_bp.route("/loan-applications/<application_id>/review", methods=["POST"])
@permission_required("loans.approve")
def review(application_id):
    """Body: {action: approve|reject|review, comments, approved_amount, approved_term, approved_interest_rate}."""
    data = request.get_json(silent=True) or {}
    client = get_supabase()
    application = get_application(client, application_id, current_tenant_id())
    result = review_application(client, application, data.get("action"), g.profile.get("id"), data)
    return jsonify({"status": "success", **result}), 200


# --- Disbursement and repayments ---

@finance_bp.route("/loans/<loan_id>/disburse", methods=["POST"])
@permission_required("loans.disburse")
def disburse(loan_id):
    data = request.get_json(silent=True) or {}
    method = data.get("disbursement_method") or "cash"
    if method not in DISBURSEMENT_METHODS:
        raise AppError(f"Unsupported disbursement_method: {method}", "VALIDATION_ERROR", 400)

    client = get_supabase()
    tenant_id = current_tenant_id()
    loan = get_loan(client, loan_id, tenant_id)

    savings_account = None
    if data.get("savings_account_id"):
        savings_account = get_account(client, data["savings_account_id"], tenant_id)

    try:
        result = disburse_loan(
            client, loan, g.profile.get("id"),
            disbursement_date=data.get("disbursement_date"),
            method=method,
            first_payment_date=data.get("first_payment_date"),
            reference_number=data.get("reference_number"),
            savings_account=savings_account,
        )
    except ValueError as e:
        raise AppError(f"Invalid date: {e}", "VALIDATION_ERROR", 400)
    return jsonify({"status": "success", **result}), 200


@finance_bp.route("/loans/<loan_id>/repayments", methods=["POST"])
@permission_required("loans.repay")
def repay(loan_id):
    data = request.get_json(silent=True) or {}
    amount = _positive(data, "amount")

    client = get_supabase()
    loan = get_loan(client, loan_id, current_tenant_id())
    strategy = data.get("strategy") or (loan.get("loan_products") or {}).get("repayment_strategy") or DEFAULT_STRATEGY
    if strategy not in STRATEGIES:
        raise AppError(f"Unknown allocation strategy: {strategy}", "VALIDATION_ERROR", 400)

    result = record_repayment(
        client, loan, amount, strategy,
        processed_by=g.profile.get("id"),
        payment_date=data.get("payment_date"),
        payment_method=data.get("payment_method"),
        reference_number=data.get("reference_number"),
    )
    current_app.logger.info("Repayment recorded on loan %s by %s", loan_id, g.profile.get("id"))
    return jsonify({"status": "success", "strategy": strategy, **result}), 201
