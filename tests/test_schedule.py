from datetime import date

import pytest

from loanspur.lib.schedule import (
    count_installments,
    generate_loan_schedule,
    get_days_in_year,
    recalculate_schedule_outstanding,
    round_money,
    summarize_schedule,
)


def test_reducing_balance_monthly_schedule():
    schedule = generate_loan_schedule("loan-1", 12000, 0.12, 12, "2024-01-15")
    assert len(schedule) == 12
    first = schedule[0]
    assert first["due_date"] == "2024-02-15"
    assert first["interest_amount"] == 120.0
    assert first["total_amount"] == pytest.approx(1066.19, abs=0.01)
    assert first["payment_status"] == "unpaid"
    assert first["paid_amount"] == 0.0
    assert first["outstanding_amount"] == first["total_amount"]
    assert sum(e["principal_amount"] for e in schedule) == pytest.approx(12000, abs=0.01)
    # interest falls as the balance reduces
    assert schedule[-1]["interest_amount"] < first["interest_amount"]
    assert schedule[-1]["due_date"] == "2025-01-15"


def test_flat_rate_interest_is_constant():
    schedule = generate_loan_schedule("loan-1", 12000, 0.12, 12, "2024-01-15", calculation_method="flat_rate")
    assert {e["interest_amount"] for e in schedule} == {120.0}
    assert {e["principal_amount"] for e in schedule} == {1000.0}
    assert summarize_schedule(schedule)["total_interest"] == 1440.0


def test_equal_principal_amortization():
    schedule = generate_loan_schedule("loan-1", 6000, 0.12, 6, "2024-01-01",
                                      amortization_method="equal_principal")
    assert {e["principal_amount"] for e in schedule} == {1000.0}
    assert schedule[0]["interest_amount"] == 60.0
    assert schedule[-1]["interest_amount"] == 10.0


def test_zero_rate_splits_principal():
    schedule = generate_loan_schedule("loan-1", 1000, 0, 4, "2024-01-01")
    assert [e["principal_amount"] for e in schedule] == [250.0, 250.0, 250.0, 250.0]
    assert all(e["interest_amount"] == 0 for e in schedule)


def test_weekly_and_daily_installment_counts():
    assert count_installments(3, "weekly") == 13
    assert count_installments(12, "quarterly") == 4
    assert count_installments(30, "daily") == 30
    weekly = generate_loan_schedule("loan-1", 5000, 0.1, 3, "2024-01-01", repayment_frequency="weekly")
    assert weekly[0]["due_date"] == "2024-01-08"
    assert weekly[1]["due_date"] == "2024-01-15"


def test_first_payment_date_and_fees():
    schedule = generate_loan_schedule(
        "loan-1", 3000, 0.12, 3, "2024-01-10",
        first_payment_date="2024-02-01",
        disbursement_fees=[{"amount": 500}],
        installment_fees=[{"amount": 50}],
    )
    assert schedule[0]["due_date"] == "2024-02-01"
    assert schedule[0]["fee_amount"] == 550.0
    assert schedule[1]["fee_amount"] == 50.0
    assert schedule[0]["total_amount"] == round_money(
        schedule[0]["principal_amount"] + schedule[0]["interest_amount"] + 550
    )


def test_days_in_year():
    assert get_days_in_year("360", date(2024, 1, 1)) == 360
    assert get_days_in_year("actual", date(2024, 1, 1)) == 366
    assert get_days_in_year("actual", date(2023, 1, 1)) == 365
    assert get_days_in_year("365", date(2024, 1, 1)) == 365


def test_recalculate_schedule_outstanding():
    schedule = [
        {"id": "s1", "total_amount": 1000, "paid_amount": 0},
        {"id": "s2", "total_amount": 1000, "paid_amount": 0},
    ]
    payments = [
        {"schedule_id": "s1", "principal_amount": 900, "interest_amount": 100},
        {"schedule_id": "s2", "principal_amount": 300, "interest_amount": 0},
        {"schedule_id": "missing", "principal_amount": 50},
    ]
    updated = recalculate_schedule_outstanding(schedule, payments)
    assert updated[0]["payment_status"] == "paid"
    assert updated[0]["outstanding_amount"] == 0
    assert updated[1]["payment_status"] == "partial"
    assert updated[1]["outstanding_amount"] == 700
    assert schedule[0]["paid_amount"] == 0


def test_schedule_preview_endpoint(client, admin_headers):
    resp = client.post("/api/loans/schedule-preview", headers=admin_headers, json={
        "principal": 12000,
        "interest_rate": 12,
        "term_months": 12,
        "disbursement_date": "2024-01-15",
        "calculation_method": "flat_rate",
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["summary"]["installments"] == 12
    assert body["summary"]["total_interest"] == 1440.0
    assert body["summary"]["maturity_date"] == "2025-01-15"


def test_schedule_preview_rejects_unknown_frequency(client, admin_headers):
    resp = client.post("/api/loans/schedule-preview", headers=admin_headers, json={
        "principal": 1000, "interest_rate": 10, "term_months": 6,
        "disbursement_date": "2024-01-01", "repayment_frequency": "fortnightly",
    })
    assert resp.status_code == 400
