"""
Thrift Society Ledger - Dividend Engine Tests

Formula, per-employee application, conservation, the zero-thrift guard and
per-employee failure isolation.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from app.models.adjustment import AdjustmentAction, AdjustmentHistory
from app.models.member import Employee
from app.services import dividend as dividend_service
from app.services.dividend import (
    DividendComputationError,
    compute_dividend,
    compute_formula,
    run_yearly_dividend,
)


class TestFormula:
    """Society-level figures."""

    def test_reference_figures(self):
        formula = compute_formula(
            total_thrift=Decimal("1000000"),
            total_loans_outstanding=Decimal("600000"),
            share_capital=Decimal("500000"),
            bank_balance=Decimal("300000"),
            cash_in_hand=Decimal("50000"),
        )

        assert formula.society_assets == Decimal("950000")
        assert formula.society_capital == Decimal("1500000")
        assert formula.difference == Decimal("-550000")
        assert formula.rate_per_rupee == Decimal("-0.55")

    def test_zero_thrift_gives_zero_rate(self):
        formula = compute_formula(
            total_thrift=Decimal("0"),
            total_loans_outstanding=Decimal("0"),
            share_capital=Decimal("1000"),
            bank_balance=Decimal("5000"),
            cash_in_hand=Decimal("0"),
        )
        assert formula.rate_per_rupee == Decimal("0")

    def test_member_dividend(self):
        dividend, new_balance = compute_dividend(Decimal("-0.55"), Decimal("10000"))

        assert dividend == Decimal("-5500.00")
        assert new_balance == Decimal("4500.00")

    def test_rate_not_rounded_before_multiplying(self):
        rate = Decimal("1") / Decimal("3")
        dividend, new_balance = compute_dividend(rate, Decimal("300"))

        assert new_balance == Decimal("400.00")
        assert dividend != Decimal("99.99")

    def test_description_lists_inputs(self):
        formula = compute_formula(Decimal("100"), Decimal("0"), Decimal("0"), Decimal("110"), Decimal("0"))
        assert "Bank:110" in formula.describe()
        assert formula.display_rate == Decimal("0.100000")


class TestYearlyRun:

    @pytest.fixture
    def society(self, make_employee, make_loan):
        """Thrift of 1,000,000 and 600,000 of loans outstanding."""
        small = make_employee("19", "Ravi Kumar", thrift_balance="10000")
        large = make_employee("20", "Sita Devi", thrift_balance="990000")
        make_loan(large, balance="600000")
        return small, large

    def _run(self, db, **overrides):
        params = dict(share_capital="500000", bank_balance="300000", cash_in_hand="50000",
                      year="2025", actor="admin")
        params.update(overrides)
        return run_yearly_dividend(db, **params)

    def test_reference_example(self, db, society):
        small, _ = society
        run = self._run(db)

        assert run.formula.rate_per_rupee == Decimal("-0.55")
        entry = next(r for r in run.results if r["emp_id"] == "19")
        assert entry["old_balance"] == Decimal("10000.00")
        assert entry["dividend"] == Decimal("-5500.00")
        assert entry["new_balance"] == Decimal("4500.00")
        assert entry["changed"] is True

        db.refresh(small)
        assert small.thrift_balance == Decimal("4500.00")

    def test_summary_counts(self, db, society):
        run = self._run(db)

        assert run.total_processed == 2
        assert run.total_changed == 2
        assert run.total_errors == 0

    def test_conservation(self, db, society):
        """Dividends add up to the society's surplus or deficit."""
        run = self._run(db)

        total = sum(r["dividend"] for r in run.results)
        assert abs(total - run.formula.difference) <= Decimal("0.01") * len(run.results)

    def test_audit_entry_per_changed_employee(self, db, society):
        small, _ = society
        self._run(db)

        entries = db.query(AdjustmentHistory).filter(
            AdjustmentHistory.action_type == AdjustmentAction.DIVIDEND
        ).all()
        assert len(entries) == 2
        mine = next(e for e in entries if e.employee_id == small.id)
        assert mine.old_value == Decimal("10000.00")
        assert mine.new_value == Decimal("4500.00")
        assert "2025" in mine.remarks
        assert "-0.550000" in mine.remarks
        assert mine.performed_by == "admin"

    def test_balanced_books_change_nothing(self, db, make_employee):
        make_employee("19", "Ravi Kumar", thrift_balance="10000")

        run = run_yearly_dividend(db, share_capital="0", bank_balance="10000", cash_in_hand="0")

        assert run.total_processed == 1
        assert run.total_changed == 0
        assert run.results[0]["changed"] is False
        assert db.query(AdjustmentHistory).count() == 0

    def test_zero_thrift_guard(self, db, make_employee):
        make_employee("19", "Ravi Kumar", thrift_balance="0")
        make_employee("20", "Sita Devi", thrift_balance="0")

        run = run_yearly_dividend(db, share_capital="1000", bank_balance="50000", cash_in_hand="200")

        assert run.formula.rate_per_rupee == Decimal("0")
        assert run.total_changed == 0
        assert run.total_errors == 0

    def test_preview_does_not_persist(self, db, society):
        small, _ = society
        run = self._run(db, preview=True)

        assert run.preview is True
        assert run.total_changed == 2
        db.refresh(small)
        assert small.thrift_balance == Decimal("10000.00")
        assert db.query(AdjustmentHistory).count() == 0

    def test_inactive_employees_excluded(self, db, society, make_employee):
        make_employee("30", "Retired Member", thrift_balance="50000", is_active=False)

        run = self._run(db)

        assert run.total_processed == 2
        assert run.formula.total_thrift == Decimal("1000000.00")

    def test_failing_employee_is_isolated(self, db, society, monkeypatch):
        """One bad balance is reported; everybody else is still credited."""
        small, large = society
        original = dividend_service._opening_balance

        def flaky_balance(employee: Employee):
            if employee.emp_id == "20":
                raise DividendComputationError(employee, "Malformed thrift balance 'abc'")
            return original(employee)

        monkeypatch.setattr(dividend_service, "_opening_balance", flaky_balance)
        run = self._run(db)

        assert run.total_processed == 1
        assert run.total_errors == 1
        assert run.errors[0]["emp_id"] == "20"
        assert run.errors[0]["error"] == "Malformed thrift balance 'abc'"

        db.refresh(small)
        db.refresh(large)
        assert small.thrift_balance == Decimal("4500.00")
        assert large.thrift_balance == Decimal("990000.00")

    def test_concurrent_balance_change_is_isolated(self, db, society, monkeypatch):
        """A member rewritten by another writer mid-run is reported, not overwritten."""
        small, large = society
        original = dividend_service._opening_balance

        def balance_after_foreign_write(employee: Employee):
            if employee.emp_id == "20":
                db.execute(text("UPDATE employee SET version = version + 1 WHERE emp_id = '20'"))
            return original(employee)

        monkeypatch.setattr(dividend_service, "_opening_balance", balance_after_foreign_write)
        run = self._run(db)

        assert run.total_processed == 1
        assert run.total_errors == 1
        assert run.errors[0]["emp_id"] == "20"

        db.refresh(small)
        db.refresh(large)
        assert small.thrift_balance == Decimal("4500.00")
        assert large.thrift_balance == Decimal("990000.00")
        assert db.query(AdjustmentHistory).count() == 1
