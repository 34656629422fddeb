from datetime import datetime, timezone

from ..errors import AppError
from ..lib.schedule import round_money

CREDIT_TYPES = ("deposit", "interest_posting")
DEBIT_TYPES = ("withdrawal", "fee_charge")
TRANSACTION_TYPES = CREDIT_TYPES + DEBIT_TYPES


def apply_transaction(balance, transaction_type, amount):
    """Balance after posting ``amount`` of ``transaction_type``."""
    if transaction_type not in TRANSACTION_TYPES:
        raise AppError(f"Unsupported transaction type: {transaction_type}", "VALIDATION_ERROR", 400)
    amount = float(amount)
    if amount <= 0:
        raise AppError("Amount must be greater than zero", "VALIDATION_ERROR", 400)

    balance = float(balance or 0)
    if transaction_type in CREDIT_TYPES:
        return round_money(balance + amount)
    new_balance = round_money(balance - amount)
    if new_balance < 0:
        raise AppError("Insufficient funds", "INSUFFICIENT_FUNDS", 400)
    return new_balance


def record_transaction(client, account, transaction_type, amount, processed_by=None, transaction_date=None,
                       reference_number=None, description=None):
    """Post a transaction to ``account`` and move its balances. Returns ``(transaction, balance_after)``."""
    balance_after = apply_transaction(account.get("account_balance"), transaction_type, amount)
    now = datetime.now(timezone.utc).isoformat()
    txn = {
        "tenant_id": account.get("tenant_id"),
        "savings_account_id": account["id"],
        "transaction_type": transaction_type,
        "amount": float(amount),
        "balance_after": balance_after,
        "transaction_date": transaction_date or now,
        "reference_number": reference_number,
        "description": description,
        "processed_by": processed_by,
    }
    inserted = client.table("savings_transactions").insert(txn).execute()

    updates = {"account_balance": balance_after, "available_balance": balance_after, "updated_at": now}
    if transaction_type == "interest_posting":
        updates["interest_earned"] = float(account.get("interest_earned") or 0) + float(amount)
    client.table("savings_accounts").update(updates).eq("id", account["id"]).execute()
    return (inserted.data[0] if inserted.data else txn), balance_after


def summarize_transactions(transactions):
    totals = {"total_deposits": 0.0, "total_withdrawals": 0.0, "interest_earned": 0.0, "fees_charged": 0.0}
    keys = {
        "deposit": "total_deposits",
        "withdrawal": "total_withdrawals",
        "interest_posting": "interest_earned",
        "fee_charge": "fees_charged",
    }
    for txn in transactions or []:
        key = keys.get(txn.get("transaction_type"))
        if key:
            totals[key] += float(txn.get("amount") or 0)
    return {k: round_money(v) for k, v in totals.items()}
