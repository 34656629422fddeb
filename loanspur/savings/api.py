from datetime import datetime, timezone

from flask import current_app, g, jsonify, request

from . import savings_bp
from .utils import record_transaction, summarize_transactions
from ..auth.decorators import current_tenant_id, login_required, permission_required
from ..db import get_supabase
from ..errors import AppError
from ..lib.currency import format_amount, get_tenant_currency
from ..reports import excel_response, render_document, require_advanced_reporting

TRANSACTION_COLUMNS = ["transaction_date", "transaction_type", "reference_number", "description",
                       "amount", "balance_after"]


def get_account(client, account_id, tenant_id):
    resp = (client.table("savings_accounts").select("*")
            .eq("id", account_id).eq("tenant_id", tenant_id).limit(1).execute())
    if not resp.data:
        raise AppError("Savings account not found", "NOT_FOUND", 404)
    return resp.data[0]


def fetch_transactions(client, account_id, newest_first=True):
    resp = (client.table("savings_transactions").select("*")
            .eq("savings_account_id", account_id)
            .order("transaction_date", desc=newest_first).execute())
    return resp.data or []


@savings_bp.route("/savings-accounts", methods=["GET"])
@login_required
def list_accounts():
    query = get_supabase().table("savings_accounts").select("*").eq("tenant_id", current_tenant_id())
    if request.args.get("client_id"):
        query = query.eq("client_id", request.args["client_id"])
    resp = query.order("created_at", desc=True).execute()
    return jsonify({"status": "success", "data": resp.data or []}), 200


@savings_bp.route("/savings-accounts/<account_id>/transactions", methods=["GET"])
@login_required
def list_transactions(account_id):
    client = get_supabase()
    account = get_account(client, account_id, current_tenant_id())
    transactions = fetch_transactions(client, account["id"])
    return jsonify({
        "status": "success",
        "account": account,
        "data": transactions,
        "summary": summarize_transactions(transactions),
    }), 200


@savings_bp.route("/savings-accounts", methods=["POST"])
@permission_required("savings.manage")
def open_account():
    data = request.get_json(silent=True) or {}
    client_id = data.get("client_id")
    if not client_id:
        raise AppError("client_id is required", "VALIDATION_ERROR", 400)
    try:
        initial_deposit = float(data.get("initial_deposit") or 0)
    except (TypeError, ValueError):
        raise AppError("initial_deposit must be a number", "VALIDATION_ERROR", 400)
    if initial_deposit < 0:
        raise AppError("initial_deposit cannot be negative", "VALIDATION_ERROR", 400)

    client = get_supabase()
    tenant_id = current_tenant_id()
    owner = (client.table("clients").select("id")
             .eq("id", client_id).eq("tenant_id", tenant_id).limit(1).execute())
    if not owner.data:
        raise AppError("Client not found", "NOT_FOUND", 404)

    now = datetime.now(timezone.utc)
    row = {
        "tenant_id": tenant_id,
        "client_id": client_id,
        "savings_product_id": data.get("savings_product_id"),
        "account_number": data.get("account_number") or f"SA-{int(now.timestamp() * 1000)}",
        "account_balance": 0.0,
        "available_balance": 0.0,
        "interest_earned": 0.0,
        "is_active": True,
        "opened_date": data.get("opened_date") or now.date().isoformat(),
        "created_at": now.isoformat(),
        "updated_at": now.isoformat(),
    }
    account = client.table("savings_accounts").insert(row).execute().data[0]

    if initial_deposit > 0:
        _, balance = record_transaction(client, account, "deposit", initial_deposit,
                                        processed_by=g.profile.get("id"), description="Initial deposit")
        account.update(account_balance=balance, available_balance=balance)

    current_app.logger.info("Savings account %s opened for client %s", account["account_number"], client_id)
    return jsonify({"status": "success", "data": account}), 201


@savings_bp.route("/savings-accounts/<account_id>/transactions", methods=["POST"])
@permission_required("savings.transact")
def post_transaction(account_id):
    data = request.get_json(silent=True) or {}
    try:
        amount = float(data.get("amount"))
    except (TypeError, ValueError):
        raise AppError("amount must be a number", "VALIDATION_ERROR", 400)

    client = get_supabase()
    account = get_account(client, account_id, current_tenant_id())
    if account.get("is_active") is False:
        raise AppError("Savings account is not active", "ACCOUNT_INACTIVE", 400)

    transaction_type = data.get("transaction_type")
    txn, balance_after = record_transaction(
        client, account, transaction_type, amount,
        processed_by=g.profile.get("id"),
        transaction_date=data.get("transaction_date"),
        reference_number=data.get("reference_number"),
        description=data.get("description"),
    )
    current_app.logger.info("Savings %s of %.2f on account %s", transaction_type, amount, account["id"])
    return jsonify({"status": "success", "data": txn, "balance": balance_after}), 201


@savings_bp.route("/savings-accounts/<account_id>/statement", methods=["GET"])
@login_required
def account_statement(account_id):
    """Savings statement. Query param: action=view|print|download|json (default: view)."""
    action = request.args.get("action", "view")
    client = get_supabase()
    tenant_id = current_tenant_id()
    account = get_account(client, account_id, tenant_id)
    transactions = fetch_transactions(client, account["id"], newest_first=False)
    summary = summarize_transactions(transactions)

    if action == "json":
        return jsonify({"status": "success", "account": account, "transactions": transactions,
                        "summary": summary}), 200

    currency = get_tenant_currency(client, tenant_id, current_app.config["DEFAULT_CURRENCY"])
    context = dict(
        account=account,
        transactions=transactions,
        summary=summary,
        tenant=getattr(g, "tenant", None) or {},
        money=lambda v: format_amount(v, currency["currency"], currency["decimal_places"]),
        app_name=current_app.config["APP_NAME"],
    )
    return render_document("savings_statement.html", account.get("account_number") or account_id, context, action)


@savings_bp.route("/savings-accounts/<account_id>/transactions.xlsx", methods=["GET"])
@login_required
def transactions_excel(account_id):
    require_advanced_reporting()
    client = get_supabase()
    account = get_account(client, account_id, current_tenant_id())
    return excel_response(fetch_transactions(client, account["id"], newest_first=False), TRANSACTION_COLUMNS,
                          f"{account.get('account_number') or account_id}_transactions.xlsx", "Transactions")
