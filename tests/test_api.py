"""
Thrift Society Ledger - API Tests

HTTP surface of the admin and report routers.
"""

from decimal import Decimal

from app.models.transaction import Transaction
from tests.fixtures.sheets import build_workbook, employee_row, employee_sheet, monthly_row, monthly_sheet

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _upload(client, path, content, name="sheet.xlsx", data=None, actor="treasurer"):
    return client.post(
        path,
        files={"file": (name, content, XLSX)},
        data=data or {},
        headers={"X-Actor": actor},
    )


class TestRoot:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["version"] == "2.0.0"

    def test_health_reports_latest_month(self, client, make_employee):
        make_employee("19", "Ravi Kumar")
        _upload(client, "/api/admin/upload/monthly", monthly_sheet([monthly_row(1, 19, "Ravi Kumar", closing=10000)]))

        health = client.get("/api/health").json()

        assert health["status"] == "healthy"
        assert health["services"]["archive_scheduler"] == "stopped"
        assert health["latest_month"] == "2025-10"


class TestUploadEndpoints:

    def test_employee_upload(self, client, audit_dir):
        content = employee_sheet([
            employee_row(1, 19, "Ravi Kumar", email="ravi@vignan.ac.in"),
            employee_row(2, 20, "Sita Devi"),
        ])
        response = _upload(client, "/api/admin/upload/employees", content, "employees.xlsx")

        assert response.status_code == 201
        body = response.json()
        assert body["log"]["success_count"] == 2
        assert body["log"]["status"] == "completed"
        assert {u["username"] for u in body["created_users"]} == {"19", "20"}
        assert any(c["field"] == "email" and c["detected"] for c in body["column_summary"])

        audit_lines = next(audit_dir.glob("audit_*.log")).read_text(encoding="utf-8").splitlines()
        assert "| treasurer | Employee upload | file=employees.xlsx created=2" in audit_lines[-1]

    def test_monthly_upload_with_explicit_month(self, client, db, make_employee):
        make_employee("19", "Ravi Kumar")
        content = monthly_sheet([
            monthly_row(1, 19, "Ravi Kumar", closing=10000),
            monthly_row(2, 99, "Ghost Employee", closing=7000),
        ])
        response = _upload(client, "/api/admin/upload/monthly", content, data={"month": "2025-09"})

        assert response.status_code == 201
        body = response.json()
        assert body["uploaded_month"] == "2025-09"
        assert body["transactions_created"] == 1
        assert body["log"]["status"] == "completed_with_errors"
        assert body["log"]["error_log"][0]["row"] == 5
        assert db.query(Transaction).filter(Transaction.month == "2025-09").count() == 1

    def test_headerless_file_is_422(self, client):
        content = build_workbook([["nothing useful here"]])
        response = _upload(client, "/api/admin/upload/monthly", content)

        assert response.status_code == 422
        assert "header row" in response.json()["detail"]

    def test_bad_month_is_400(self, client):
        content = monthly_sheet([monthly_row(1, 19, "Ravi Kumar")])
        response = _upload(client, "/api/admin/upload/monthly", content, data={"month": "Sept"})
        assert response.status_code == 400

    def test_non_xlsx_rejected(self, client):
        response = _upload(client, "/api/admin/upload/monthly", b"a,b,c", name="sheet.csv")
        assert response.status_code == 400

    def test_upload_history(self, client):
        _upload(client, "/api/admin/upload/employees", employee_sheet([employee_row(1, 19, "Ravi Kumar")]))

        listing = client.get("/api/admin/uploads").json()
        assert len(listing) == 1

        detail = client.get(f"/api/admin/uploads/{listing[0]['id']}")
        assert detail.status_code == 200
        assert detail.json()["file_type"] == "employees"


class TestDividendEndpoint:

    def test_preview_then_apply(self, client, make_employee):
        make_employee("19", "Ravi Kumar", thrift_balance="10000")
        payload = {"year": "2025", "share_capital": "0", "bank_balance": "4500", "cash_in_hand": "0"}

        preview = client.post("/api/admin/dividend", json={**payload, "preview": True})
        assert preview.status_code == 200
        assert preview.json()["preview"] is True
        assert Decimal(preview.json()["results"][0]["new_balance"]) == Decimal("4500.00")

        employee = client.get("/api/admin/employees").json()[0]
        assert Decimal(employee["thrift_balance"]) == Decimal("10000.00")

        applied = client.post("/api/admin/dividend", json=payload).json()
        assert applied["total_changed"] == 1
        assert Decimal(applied["formula"]["rate_per_rupee"]) == Decimal("-0.55")

        history = client.get(f"/api/admin/employees/{employee['id']}/history").json()
        assert history[0]["action_type"] == "dividend"

    def test_negative_inputs_rejected(self, client):
        response = client.post("/api/admin/dividend", json={
            "share_capital": "-1", "bank_balance": "0", "cash_in_hand": "0",
        })
        assert response.status_code == 422


class TestEmployeeEndpoints:

    def test_create_update_deactivate(self, client):
        created = client.post("/api/admin/employees", json={"emp_id": "40", "name": "New Joiner"})
        assert created.status_code == 201
        employee_id = created.json()["employee"]["id"]
        assert created.json()["username"] == "40"

        duplicate = client.post("/api/admin/employees", json={"emp_id": "40", "name": "Another"})
        assert duplicate.status_code == 400

        updated = client.put(f"/api/admin/employees/{employee_id}", json={"department": "ECE"})
        assert updated.json()["department"] == "ECE"

        removed = client.delete(f"/api/admin/employees/{employee_id}")
        assert removed.json()["is_active"] is False
        assert client.get("/api/admin/employees").json() == []

    def test_unknown_employee_is_404(self, client):
        response = client.get("/api/admin/employees/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404

    def test_adjustments(self, client, make_employee, make_loan):
        sita = make_employee("20", "Sita Devi")
        make_loan(sita, balance="40000")

        salary = client.post(f"/api/admin/employees/{sita.id}/adjust-salary", json={"new_salary": "32000"})
        assert Decimal(salary.json()["salary"]) == Decimal("32000.00")

        loan = client.post(f"/api/admin/employees/{sita.id}/adjust-loan", json={"loan_amount": "45000"})
        assert Decimal(loan.json()["remaining_balance"]) == Decimal("45000.00")

        empty = client.post(f"/api/admin/employees/{sita.id}/adjust-thrift", json={})
        assert empty.status_code == 400


class TestLoanEndpoints:

    def test_close_loan(self, client, make_employee, make_loan):
        loan = make_loan(make_employee("20", "Sita Devi"))

        closed = client.post(f"/api/admin/loans/{loan.id}/close", json={"remarks": "Settled in cash"})
        assert closed.status_code == 200
        assert closed.json()["status"] == "closed"

        again = client.post(f"/api/admin/loans/{loan.id}/close")
        assert again.status_code == 400

    def test_reconcile_and_relink(self, client):
        assert client.post("/api/admin/loans/reconcile-sureties").json() == {"loans_touched": 0, "links_added": 0}
        assert client.post("/api/admin/loans/relink").json() == {"relinked": 0}


class TestReportEndpoints:

    def test_monthly_report(self, client, make_employee):
        make_employee("19", "Ravi Kumar")
        _upload(client, "/api/admin/upload/monthly", monthly_sheet([monthly_row(1, 19, "Ravi Kumar", closing=10000)]))

        report = client.get("/api/reports/monthly/2025-10")
        assert report.status_code == 200
        assert report.json()["title"] == "OCTOBER - 2025"
        assert len(report.json()["rows"]) == 1

        assert client.get("/api/reports/monthly/October").status_code == 400

    def test_history_and_dashboard(self, client, make_employee):
        make_employee("19", "Ravi Kumar", thrift_balance="2500")

        assert client.get("/api/reports/history").json() == []
        dashboard = client.get("/api/reports/dashboard", params={"month": "2025-10"}).json()
        assert dashboard["total_employees"] == 1

    def test_statement_for_unknown_employee(self, client):
        response = client.get("/api/reports/employees/00000000-0000-0000-0000-000000000000/statement/2025")
        assert response.status_code == 404

    def test_archive_and_scheduler_status(self, client):
        assert client.post("/api/admin/archive").json() == {"archived_months": [], "deleted_transactions": 0}
        assert client.get("/api/admin/scheduler/status").json()["running"] is False
