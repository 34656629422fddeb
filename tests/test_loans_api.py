from io import BytesIO

import openpyxl
import pytest

from loanspur import create_app
from loanspur.lib.schedule import generate_loan_schedule


@pytest.fixture
def loans(fake_db):
    fake_db.rows("loan_products").append({"id": "product-1", "name": "Biashara", "repayment_frequency": "monthly",
                                          "interest_calculation_method": "reducing_balance",
                                          "repayment_strategy": "interest_principal_penalties_fees"})
    fake_db.rows("clients").append({"id": "client-1", "first_name": "Amina", "last_name": "Otieno"})
    fake_db.rows("loans").extend([
        {"id": "loan-1", "tenant_id": "tenant-1", "loan_number": "LN0001", "client_id": "client-1",
         "loan_product_id": "product-1", "principal_amount": 12000, "interest_rate": 0.12, "term_months": 12,
         "disbursement_date": "2024-01-15", "outstanding_balance": 12000, "status": "disbursed",
         "created_at": "2024-01-15T08:00:00+00:00"},
        {"id": "loan-2", "tenant_id": "tenant-1", "loan_number": "LN0002", "principal_amount": 5000,
         "interest_rate": 0.1, "term_months": 6, "outstanding_balance": 0, "status": "pending_approval",
         "created_at": "2024-02-01T08:00:00+00:00"},
        {"id": "loan-x", "tenant_id": "tenant-2", "loan_number": "LN0900", "principal_amount": 100,
         "status": "disbursed", "created_at": "2024-03-01T08:00:00+00:00"},
    ])
    schedule = generate_loan_schedule("loan-1", 12000, 0.12, 12, "2024-01-15")
    for number, row in enumerate(schedule, start=1):
        row["id"] = f"sched-{number}"
    fake_db.rows("loan_schedules").extend(schedule)
    fake_db.rows("loan_payments").append(
        {"id": "pay-1", "loan_id": "loan-1", "payment_amount": 1066.19, "payment_date": "2024-02-15",
         "reference_number": "MPESA123"})
    return fake_db


def test_list_loans_is_tenant_scoped_with_derived_status(client, admin_headers, loans):
    resp = client.get("/api/loans", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert [loan["id"] for loan in data] == ["loan-2", "loan-1"]
    by_id = {loan["id"]: loan for loan in data}
    assert by_id["loan-2"]["derived_status"] == "pending_approval"
    # installments from 2024 are long past due
    assert by_id["loan-1"]["derived_status"] == "in_arrears"


def test_list_loans_status_filter(client, admin_headers, loans):
    data = client.get("/api/loans?status=disbursed", headers=admin_headers).get_json()["data"]
    assert [loan["id"] for loan in data] == ["loan-1"]


def test_loan_detail(client, admin_headers, loans):
    body = client.get("/api/loans/loan-1", headers=admin_headers).get_json()
    assert body["loan"]["loan_products"]["name"] == "Biashara"
    assert len(body["schedule"]) == 12
    assert body["payments"][0]["reference_number"] == "MPESA123"


def test_other_tenants_loans_are_not_found(client, admin_headers, loans):
    resp = client.get("/api/loans/loan-x", headers=admin_headers)
    assert resp.status_code == 404


def test_statement_json_and_html(client, admin_headers, loans):
    body = client.get("/api/loans/loan-1/statement?action=json", headers=admin_headers).get_json()
    assert body["client"]["first_name"] == "Amina"
    assert body["summary"]["installments"] == 12
    assert body["summary"]["total_paid"] == pytest.approx(1066.19)

    html = client.get("/api/loans/loan-1/statement", headers=admin_headers).get_data(as_text=True)
    assert "LN0001" in html
    assert "Amina Otieno" in html
    assert "KSh12,000.00" in html
    assert "Twelve Thousand Shillings Only" in html
    assert "window.print" not in html

    printable = client.get("/api/loans/loan-1/statement?action=print", headers=admin_headers)
    assert "window.print()" in printable.get_data(as_text=True)


def test_statement_pdf_download(client, admin_headers, loans):
    resp = client.get("/api/loans/loan-1/statement?action=download", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/pdf"
    assert resp.headers["Content-Disposition"] == 'attachment; filename="LN0001.pdf"'
    assert resp.data.startswith(b"%PDF")


def test_schedule_excel(client, admin_headers, loans):
    resp = client.get("/api/loans/loan-1/schedule.xlsx", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"] == 'attachment; filename="LN0001_schedule.xlsx"'
    sheet = openpyxl.load_workbook(BytesIO(resp.data))["Schedule"]
    assert sheet.cell(row=1, column=1).value == "installment_number"
    assert sheet.max_row == 13


def test_download_filename_is_quoted(client, admin_headers, loans):
    loans.rows("loans")[0]["loan_number"] = "LN 0001;x"
    resp = client.get("/api/loans/loan-1/schedule.xlsx", headers=admin_headers)
    assert resp.headers["Content-Disposition"] == 'attachment; filename="LN 0001;x_schedule.xlsx"'


def test_schedule_excel_requires_advanced_reporting(admin_headers, loans):
    app = create_app({"TESTING": True, "SUPABASE_JWT_SECRET": "test-jwt-secret",
                      "ENABLE_ADVANCED_REPORTING": False}, supabase_client=loans)
    resp = app.test_client().get("/api/loans/loan-1/schedule.xlsx", headers=admin_headers)
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "FEATURE_DISABLED"


def test_allocate_repayment_uses_product_strategy(client, admin_headers, loans):
    resp = client.post("/api/loans/loan-1/allocate-repayment", headers=admin_headers, json={"amount": 500})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["strategy"] == "interest_principal_penalties_fees"
    assert body["allocation"]["interest"] > 0
    assert body["total_allocated"] == pytest.approx(500)
    assert body["unallocated"] == 0
    assert body["validation"]["is_valid"] is True


def test_allocate_repayment_validation(client, admin_headers, loans):
    resp = client.post("/api/loans/loan-1/allocate-repayment", headers=admin_headers, json={"amount": -5})
    assert resp.status_code == 400
    resp = client.post("/api/loans/loan-1/allocate-repayment", headers=admin_headers,
                       json={"amount": 100, "strategy": "fees_last"})
    assert resp.status_code == 400
    assert "fees_last" in resp.get_json()["error"]["message"]
