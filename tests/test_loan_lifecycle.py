import pytest

from loanspur.lib.repayment import distribute_payment


@pytest.fixture
def lending(fake_db):
    fake_db.rows("clients").extend([
        {"id": "client-1", "tenant_id": "tenant-1", "first_name": "Amina", "last_name": "Otieno"},
        {"id": "client-9", "tenant_id": "tenant-2", "first_name": "Other", "last_name": "Tenant"},
    ])
    fake_db.rows("loan_products").append({"id": "product-1", "name": "Biashara", "repayment_frequency": "monthly",
                                          "interest_calculation_method": "reducing_balance"})
    return fake_db


def _apply(client, headers, **overrides):
    body = {"client_id": "client-1", "loan_product_id": "product-1", "requested_amount": 12000,
            "requested_term": 12, **overrides}
    return client.post("/api/loan-applications", headers=headers, json=body)


def _approved_loan(client, headers):
    application = _apply(client, headers).get_json()["data"]
    resp = client.post(f"/api/loan-applications/{application['id']}/review", headers=headers,
                       json={"action": "approve", "approved_interest_rate": 12, "comments": "Good history"})
    return resp.get_json()["loan"]


def test_distribute_payment_pays_oldest_installments_first():
    schedule = [
        {"id": "s2", "installment_number": 2, "total_amount": 100, "paid_amount": 0, "payment_status": "unpaid"},
        {"id": "s1", "installment_number": 1, "total_amount": 100, "paid_amount": 40, "payment_status": "partial"},
        {"id": "s0", "installment_number": 0, "total_amount": 100, "paid_amount": 100, "payment_status": "paid"},
    ]
    assert distribute_payment(schedule, 90) == [{"schedule_id": "s1", "amount": 60.0},
                                                {"schedule_id": "s2", "amount": 30.0}]
    assert distribute_payment(schedule, 0) == []


def test_submit_application(client, admin_headers, lending):
    resp = _apply(client, admin_headers)
    assert resp.status_code == 201
    application = resp.get_json()["data"]
    assert application["status"] == "pending"
    assert application["application_number"].startswith("LA-")
    assert application["tenant_id"] == "tenant-1"

    listed = client.get("/api/loan-applications?status=pending", headers=admin_headers).get_json()["data"]
    assert [a["id"] for a in listed] == [application["id"]]


def test_submit_application_validation(client, admin_headers, lending):
    assert _apply(client, admin_headers, loan_product_id=None).status_code == 400
    assert _apply(client, admin_headers, requested_amount=0).status_code == 400
    assert _apply(client, admin_headers, client_id="client-9").status_code == 404


def test_approval_creates_pending_loan(client, admin_headers, lending):
    application = _apply(client, admin_headers).get_json()["data"]
    resp = client.post(f"/api/loan-applications/{application['id']}/review", headers=admin_headers,
                       json={"action": "approve", "approved_interest_rate": 12, "approved_amount": 10000})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["application_status"] == "pending_disbursement"
    assert body["loan"]["status"] == "pending_disbursement"
    assert body["loan"]["principal_amount"] == 10000
    assert body["loan"]["interest_rate"] == pytest.approx(0.12)

    stored = lending.rows("loan_applications")[0]
    assert stored["status"] == "pending_disbursement"
    assert stored["final_approved_amount"] == 10000
    assert lending.rows("loan_approvals")[0]["approver_id"] == "profile-admin"


def test_review_rules(client, admin_headers, officer_headers, lending):
    application = _apply(client, admin_headers).get_json()["data"]
    url = f"/api/loan-applications/{application['id']}/review"

    assert client.post(url, headers=officer_headers, json={"action": "reject"}).status_code == 403
    assert client.post(url, headers=admin_headers, json={"action": "approve"}).status_code == 400
    assert client.post(url, headers=admin_headers, json={"action": "escalate"}).status_code == 400

    rejected = client.post(url, headers=admin_headers, json={"action": "reject", "comments": "Too much debt"})
    assert rejected.get_json()["application_status"] == "rejected"
    assert lending.rows("loans") == []

    again = client.post(url, headers=admin_headers, json={"action": "approve", "approved_interest_rate": 12})
    assert again.status_code == 400
    assert again.get_json()["error"]["code"] == "INVALID_STATUS"


def test_disbursement_builds_schedule_and_activates_loan(client, admin_headers, lending):
    loan = _approved_loan(client, admin_headers)
    resp = client.post(f"/api/loans/{loan['id']}/disburse", headers=admin_headers,
                       json={"disbursement_date": "2024-01-15", "disbursement_method": "mpesa",
                             "reference_number": "QX12AB"})
    assert resp.status_code == 200
    summary = resp.get_json()["summary"]
    assert summary["installments"] == 12
    assert summary["maturity_date"] == "2025-01-15"

    stored = lending.rows("loans")[0]
    assert stored["status"] == "active"
    assert stored["disbursement_date"] == "2024-01-15"
    assert stored["outstanding_balance"] == pytest.approx(summary["total_amount"])
    assert len(lending.rows("loan_schedules")) == 12
    assert lending.rows("loan_disbursements")[0]["disbursement_method"] == "mpesa"
    assert lending.rows("loan_applications")[0]["status"] == "disbursed"

    again = client.post(f"/api/loans/{loan['id']}/disburse", headers=admin_headers, json={})
    assert again.status_code == 409


def test_disbursement_to_savings_credits_the_account(client, admin_headers, lending):
    lending.rows("savings_accounts").append(
        {"id": "sav-1", "tenant_id": "tenant-1", "account_number": "SA0001", "account_balance": 100,
         "is_active": True})
    loan = _approved_loan(client, admin_headers)
    url = f"/api/loans/{loan['id']}/disburse"

    missing = client.post(url, headers=admin_headers, json={"disbursement_method": "transfer_to_savings"})
    assert missing.status_code == 400

    resp = client.post(url, headers=admin_headers, json={"disbursement_method": "transfer_to_savings",
                                                         "savings_account_id": "sav-1",
                                                         "disbursement_date": "2024-01-15"})
    assert resp.status_code == 200
    assert lending.rows("savings_accounts")[0]["account_balance"] == 12100
    txn = lending.rows("savings_transactions")[0]
    assert txn["transaction_type"] == "deposit"
    assert txn["description"] == f"Loan disbursement - {loan['loan_number']}"


def test_disbursement_rejects_loans_not_awaiting_it(client, admin_headers, lending):
    lending.rows("loans").append({"id": "loan-7", "tenant_id": "tenant-1", "status": "closed",
                                  "principal_amount": 1000, "interest_rate": 0.1, "term_months": 6})
    resp = client.post("/api/loans/loan-7/disburse", headers=admin_headers, json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_STATUS"


def test_repayments_update_schedule_and_balance(client, admin_headers, lending):
    loan = _approved_loan(client, admin_headers)
    client.post(f"/api/loans/{loan['id']}/disburse", headers=admin_headers,
                json={"disbursement_date": "2024-01-15"})
    schedule = sorted(lending.rows("loan_schedules"), key=lambda r: r["installment_number"])
    total = sum(row["total_amount"] for row in schedule)
    amount = round(schedule[0]["total_amount"] + 100, 2)

    resp = client.post(f"/api/loans/{loan['id']}/repayments", headers=admin_headers,
                       json={"amount": amount, "payment_date": "2024-02-15", "reference_number": "MPESA1"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["installments_paid"] == 2
    assert body["outstanding_balance"] == pytest.approx(total - amount, abs=0.01)

    rows = {row["installment_number"]: row for row in lending.rows("loan_schedules")}
    assert rows[1]["payment_status"] == "paid"
    assert rows[2]["payment_status"] == "partial"
    assert rows[2]["paid_amount"] == 100

    payment = lending.rows("loan_payments")[0]
    assert payment["payment_amount"] == amount
    parts = sum(payment[k] for k in ("principal_amount", "interest_amount", "fee_amount", "penalty_amount"))
    assert parts == pytest.approx(amount, abs=0.05)

    check = client.get(f"/api/loans/{loan['id']}/harmonization", headers=admin_headers).get_json()["data"]
    assert check["balance_inconsistent"] is False


def test_repayment_limits_and_closing(client, admin_headers, officer_headers, lending):
    loan = _approved_loan(client, admin_headers)
    client.post(f"/api/loans/{loan['id']}/disburse", headers=admin_headers,
                json={"disbursement_date": "2024-01-15"})
    url = f"/api/loans/{loan['id']}/repayments"
    outstanding = lending.rows("loans")[0]["outstanding_balance"]

    assert client.post(url, headers=officer_headers, json={"amount": 100}).status_code == 403
    assert client.post(url, headers=admin_headers, json={"amount": -5}).status_code == 400
    assert client.post(url, headers=admin_headers, json={"amount": 100, "strategy": "fees_last"}).status_code == 400

    over = client.post(url, headers=admin_headers, json={"amount": outstanding + 1})
    assert over.status_code == 400
    assert over.get_json()["error"]["code"] == "OVERPAYMENT"

    settled = client.post(url, headers=admin_headers, json={"amount": outstanding})
    assert settled.status_code == 201
    assert settled.get_json()["loan_status"] == "closed"
    assert lending.rows("loans")[0]["status"] == "closed"
    assert all(row["payment_status"] == "paid" for row in lending.rows("loan_schedules"))

    closed = client.post(url, headers=admin_headers, json={"amount": 10})
    assert closed.get_json()["error"]["code"] == "INVALID_STATUS"
