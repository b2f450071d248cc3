"""
Thrift Society Ledger - Ledger Applier Tests

Employee and monthly uploads: idempotence, in-place upserts, per-row
failure isolation and the structural header failure.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from app.core.security import IssuedCredentials, verify_password
from app.models.member import Employee
from app.models.system import MonthlyUploadLog, UploadStatus
from app.models.transaction import Loan, Transaction
from app.models.user import UserAccount
from app.services import ingestion
from app.services.columns import StructuralError
from app.services.ingestion import Ambiguous, NotFound, Resolved, import_employees, import_monthly, resolve_employee
from app.db.repository import LedgerRepository
from tests.fixtures.sheets import (
    MONTHLY_HEADERS,
    build_workbook,
    employee_row,
    employee_sheet,
    monthly_row,
    monthly_sheet,
)


class RecordingIssuer:
    """Credential issuer that hands out predictable passwords."""

    def __init__(self):
        self.issued = []

    def issue(self, employee):
        self.issued.append(employee.emp_id)
        return IssuedCredentials(username=f"user{employee.emp_id}", password="secret")


class TestEmployeeUpload:

    def test_creates_employees_and_accounts(self, db):
        content = employee_sheet([
            employee_row(1, 19, "Ravi Kumar", email="ravi@vignan.ac.in", closing=12000),
            employee_row(2, 20, "Sita Devi", email="sita@vignan.ac.in", closing=8000),
        ])
        result = import_employees(db, content, "employees.xlsx", actor="admin")

        assert result.log.success_count == 2
        assert result.log.failure_count == 0
        assert result.log.status == UploadStatus.COMPLETED
        assert [u["emp_id"] for u in result.created_users] == ["19", "20"]

        ravi = db.query(Employee).filter(Employee.emp_id == "19").one()
        assert ravi.thrift_balance == Decimal("12000.00")
        account = db.query(UserAccount).filter(UserAccount.employee_id == ravi.id).one()
        assert account.username == "19"
        assert account.must_change_password is True
        password = next(u["password"] for u in result.created_users if u["emp_id"] == "19")
        assert verify_password(password, account.password_hash)

    def test_second_upload_is_a_no_op(self, db):
        """Re-running the same file skips every row and creates nothing."""
        content = employee_sheet([
            employee_row(1, 19, "Ravi Kumar"),
            employee_row(2, 20, "Sita Devi"),
            employee_row(3, 21, "Anil Rao"),
        ])
        import_employees(db, content, "employees.xlsx")
        second = import_employees(db, content, "employees.xlsx")

        assert second.log.success_count == 0
        assert second.log.failure_count == 0
        assert len(second.skipped_existing) == 3
        assert second.log.total_records == 3
        assert second.skipped_existing[0]["reason"] == "Already exists (Emp.ID: 19)"
        assert db.query(Employee).count() == 3
        assert db.query(UserAccount).count() == 3

    def test_rows_without_emp_id_or_email_match_by_name_on_rerun(self, db):
        """Rows identified only by name are not duplicated when the file is uploaded again."""
        content = employee_sheet([
            employee_row(1, None, "Lakshmi Devi"),
            employee_row(2, None, "Mohan Rao", email="not-an-email"),
        ])
        import_employees(db, content, "employees.xlsx")
        second = import_employees(db, content, "employees.xlsx")

        assert second.log.success_count == 0
        assert second.log.skipped_count == 2
        assert second.log.total_records == 2
        assert second.skipped_existing[0]["reason"] == "Already exists (Name: Lakshmi Devi)"
        assert db.query(Employee).count() == 2
        assert db.query(UserAccount).count() == 2

    def test_same_name_under_another_emp_id_is_a_new_member(self, db, make_employee):
        make_employee("19", "Ravi Kumar")
        content = employee_sheet([employee_row(1, 31, "Ravi Kumar")])

        result = import_employees(db, content, "employees.xlsx")

        assert result.log.success_count == 1
        assert db.query(Employee).filter(Employee.name == "Ravi Kumar").count() == 2

    def test_existing_matched_by_email_when_no_emp_id(self, db, make_employee):
        make_employee("19", "Ravi Kumar", email="ravi@vignan.ac.in")
        content = employee_sheet([employee_row(1, None, "R. Kumar", email="RAVI@vignan.ac.in")])

        result = import_employees(db, content, "employees.xlsx")

        assert result.log.skipped_count == 1
        assert result.skipped_existing[0]["reason"] == "Already exists (Email: RAVI@vignan.ac.in)"

    def test_bad_row_does_not_block_others(self, db):
        issuer = RecordingIssuer()
        content = employee_sheet([
            employee_row(1, 19, "Ravi Kumar"),
            employee_row(2, 20, "Sita Devi", salary="unknown"),
            employee_row(3, 21, "Anil Rao"),
        ])
        result = import_employees(db, content, "employees.xlsx", issuer=issuer)

        assert result.log.success_count == 2
        assert result.log.failure_count == 1
        assert result.log.status == UploadStatus.COMPLETED_WITH_ERRORS
        assert result.log.error_log == [{"row": 3, "error": 'Invalid salary "unknown"'}]
        assert issuer.issued == ["19", "21"]
        assert result.created_users[0]["password"] == "secret"

    def test_progress_callback(self, db):
        seen = []
        content = employee_sheet([employee_row(1, 19, "Ravi Kumar"), employee_row(2, 20, "Sita Devi")])

        import_employees(db, content, "employees.xlsx", progress=lambda done, total: seen.append((done, total)))

        assert seen == [(1, 2), (2, 2)]


class TestEmployeeResolution:

    def test_emp_id_then_name(self, db, make_employee):
        ravi = make_employee("19", "Ravi Kumar")
        repo = LedgerRepository(db)

        assert resolve_employee(repo, "19", "Someone Else") == Resolved(ravi, "emp_id")
        assert resolve_employee(repo, None, "  ravi   KUMAR ") == Resolved(ravi, "name")
        assert isinstance(resolve_employee(repo, "99", "Nobody"), NotFound)

    def test_duplicate_names_are_ambiguous(self, db, make_employee):
        make_employee("19", "Ravi Kumar")
        make_employee("31", "Ravi Kumar")

        result = resolve_employee(LedgerRepository(db), None, "Ravi Kumar")

        assert isinstance(result, Ambiguous)
        assert len(result.candidates) == 2


class TestMonthlyUpload:

    @pytest.fixture
    def members(self, make_employee):
        return {
            "19": make_employee("19", "Ravi Kumar", thrift_balance="9000"),
            "20": make_employee("20", "Sita Devi", thrift_balance="4500"),
        }

    def _sheet(self):
        return monthly_sheet([
            monthly_row(1, 19, "Ravi Kumar", closing=10000, thrift=1000),
            monthly_row(2, 20, "Sita Devi", closing=5000, loan=50000, repayment=2000,
                        interest=500, thrift=500, sureties=(19, None)),
        ])

    def test_applies_closing_balances_and_transactions(self, db, members):
        result = import_monthly(db, self._sheet(), "OCT_2025.xlsx", actor="admin")

        assert result.month == "2025-10"
        assert result.log.success_count == 2
        assert result.log.status == UploadStatus.COMPLETED
        assert result.transactions_created == 2

        ravi, sita = members["19"], members["20"]
        db.refresh(ravi)
        db.refresh(sita)
        # closing balance is absolute, not added to the old 9000
        assert ravi.thrift_balance == Decimal("10000.00")
        assert sita.thrift_contribution == Decimal("500.00")

        tx = db.query(Transaction).filter(Transaction.employee_id == sita.id).one()
        assert tx.month == "2025-10"
        assert tx.loan_emi == Decimal("2000.00")
        assert tx.interest_payment == Decimal("500.00")
        assert tx.principal_repayment == Decimal("1500.00")
        assert tx.total_deduction == Decimal("3000.00")
        assert tx.net_salary == Decimal("27000.00")

    def test_loan_row_links_loan_and_surety(self, db, members):
        import_monthly(db, self._sheet(), "OCT_2025.xlsx")

        sita, ravi = members["20"], members["19"]
        db.refresh(sita)
        loan = sita.active_loan
        assert loan is not None
        assert loan.remaining_balance == Decimal("50000.00")
        assert loan.emi == Decimal("2500.00")
        assert loan.interest_rate == Decimal("12.00")
        assert [s.emp_id for s in loan.sureties] == ["19"]
        db.refresh(ravi)
        assert ravi.guaranteeing_loans == [loan]

    def test_reupload_updates_in_place(self, db, members):
        """The same month twice never duplicates transactions or loans."""
        import_monthly(db, self._sheet(), "OCT_2025.xlsx")
        second = import_monthly(db, self._sheet(), "OCT_2025.xlsx")

        assert second.transactions_created == 0
        assert second.transactions_updated == 2
        assert db.query(Transaction).count() == 2
        assert db.query(Loan).count() == 1
        assert len(members["19"].guarantee_links) == 1

    def test_corrected_file_overwrites_values(self, db, members):
        import_monthly(db, self._sheet(), "OCT_2025.xlsx")
        corrected = monthly_sheet([monthly_row(1, 19, "Ravi Kumar", closing=10500, thrift=1500)])

        import_monthly(db, corrected, "OCT_2025_v2.xlsx")

        tx = db.query(Transaction).filter(Transaction.employee_id == members["19"].id).one()
        assert tx.thrift_deduction == Decimal("1500.00")
        assert tx.cb_thrift_balance == Decimal("10500.00")

    def test_mixed_batch_keeps_valid_rows(self, db, members):
        """A failing middle row does not roll back its neighbours."""
        content = monthly_sheet([
            monthly_row(1, 19, "Ravi Kumar", closing=10000),
            monthly_row(2, 99, "Ghost Employee", closing=7000),
            monthly_row(3, 20, "Sita Devi", closing=5000),
        ])
        result = import_monthly(db, content, "OCT_2025.xlsx")

        assert result.log.success_count == 2
        assert result.log.failure_count == 1
        assert result.log.status == UploadStatus.COMPLETED_WITH_ERRORS
        assert result.log.error_log[0]["row"] == 5
        assert "Employee not found" in result.log.error_log[0]["error"]
        assert db.query(Transaction).count() == 2

    def test_name_fallback_warns(self, db, members):
        content = monthly_sheet([monthly_row(1, None, "Ravi  Kumar", closing=10000)])
        result = import_monthly(db, content, "OCT_2025.xlsx")

        assert result.log.success_count == 1
        assert any("Matched by name" in w.issue for w in result.warnings)

    def test_zero_loan_never_closes_active_loan(self, db, members, make_loan):
        loan = make_loan(members["20"], balance="2000")
        content = monthly_sheet([monthly_row(1, 20, "Sita Devi", closing=5000, loan=0)])

        result = import_monthly(db, content, "NOV_2025.xlsx")

        db.refresh(loan)
        assert loan.status.value == "active"
        assert any("closed manually" in w.issue for w in result.warnings)

    def test_explicit_month_overrides_title(self, db, members):
        result = import_monthly(db, self._sheet(), "sheet.xlsx", month="2025-09")
        assert result.month == "2025-09"

    def test_missing_header_rejects_whole_file(self, db, members):
        content = build_workbook([["Monthly deductions"], [1, 19, 10000]])

        with pytest.raises(StructuralError):
            import_monthly(db, content, "broken.xlsx")

        assert db.query(Transaction).count() == 0
        assert db.query(MonthlyUploadLog).count() == 0

    def test_unreadable_closing_balance_keeps_balance(self, db, make_employee):
        """A mistyped CB Thrift cell warns and never wipes the stored balance."""
        ravi = make_employee("19", "Ravi Kumar", thrift_balance="90000")
        row = monthly_row(1, 19, "Ravi Kumar", thrift=1000)
        row[3] = "12,OOO"

        result = import_monthly(db, monthly_sheet([row]), "OCT_2025.xlsx")

        assert result.log.success_count == 1
        assert any("thrift balance left unchanged" in w.issue for w in result.warnings)
        db.refresh(ravi)
        assert ravi.thrift_balance == Decimal("90000.00")
        tx = db.query(Transaction).filter(Transaction.employee_id == ravi.id).one()
        assert tx.cb_thrift_balance == Decimal("90000.00")

    @staticmethod
    def _sheet_without_loan_column(*rows):
        loan_index = MONTHLY_HEADERS.index("Loan")
        headers = [h for i, h in enumerate(MONTHLY_HEADERS) if i != loan_index]
        data = [[c for i, c in enumerate(row) if i != loan_index] for row in rows]
        return build_workbook([["VIGNAN UNIVERSITY :: VADLAMUDI"], ["OCTOBER - 2025"], headers, *data])

    def test_repayment_reduces_loan_when_loan_column_missing(self, db, members, make_loan):
        loan = make_loan(members["20"], balance="50000")
        content = self._sheet_without_loan_column(
            monthly_row(1, 20, "Sita Devi", closing=5000, repayment=2000, interest=500, thrift=500),
        )

        result = import_monthly(db, content, "OCT_2025.xlsx")

        assert result.log.success_count == 1
        db.refresh(loan)
        assert loan.remaining_balance == Decimal("48500.00")
        assert loan.emi == Decimal("2500.00")
        assert loan.status.value == "active"
        tx = db.query(Transaction).filter(Transaction.employee_id == members["20"].id).one()
        assert tx.loan_balance == Decimal("48500.00")

    def test_repayment_reduces_loan_when_loan_cell_blank(self, db, members, make_loan):
        loan = make_loan(members["20"], balance="50000")
        content = monthly_sheet([
            monthly_row(1, 20, "Sita Devi", closing=5000, loan=None, repayment=2000, interest=500),
        ])

        result = import_monthly(db, content, "OCT_2025.xlsx")

        db.refresh(loan)
        assert loan.remaining_balance == Decimal("48500.00")
        assert not any("closed manually" in w.issue for w in result.warnings)

    def test_repayment_floors_loan_at_zero_and_keeps_it_open(self, db, members, make_loan):
        loan = make_loan(members["20"], balance="1000")
        content = self._sheet_without_loan_column(
            monthly_row(1, 20, "Sita Devi", closing=5000, repayment=2000, interest=500),
        )

        import_monthly(db, content, "OCT_2025.xlsx")

        db.refresh(loan)
        assert loan.remaining_balance == Decimal("0.00")
        assert loan.status.value == "active"
        assert members["20"].active_loan_id == loan.id

    def test_concurrent_employee_change_fails_only_that_row(self, db, members, monkeypatch):
        """A version bump by another writer rolls back that row; the rest commit."""
        original = ingestion.apply_monthly_record

        def apply_after_foreign_write(repo, employee, record, *args, **kwargs):
            if employee.emp_id == "20":
                repo.db.execute(text("UPDATE employee SET version = version + 1 WHERE emp_id = '20'"))
            return original(repo, employee, record, *args, **kwargs)

        monkeypatch.setattr(ingestion, "apply_monthly_record", apply_after_foreign_write)
        content = monthly_sheet([
            monthly_row(1, 19, "Ravi Kumar", closing=10000),
            monthly_row(2, 20, "Sita Devi", closing=5000),
        ])

        result = import_monthly(db, content, "OCT_2025.xlsx")

        assert result.log.success_count == 1
        assert result.log.failure_count == 1
        assert result.log.error_log[0]["row"] == 5
        assert "StaleDataError" in result.log.error_log[0]["error"]
        assert db.query(Transaction).count() == 1
        ravi, sita = members["19"], members["20"]
        db.refresh(ravi)
        db.refresh(sita)
        assert ravi.thrift_balance == Decimal("10000.00")
        assert sita.thrift_balance == Decimal("4500.00")
