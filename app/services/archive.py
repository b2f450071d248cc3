import logging
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.member import Employee
from app.models.system import ArchivedMonth
from app.models.transaction import Transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

SNAPSHOT_FIELDS = (
    "salary", "thrift_deduction", "loan_emi", "interest_payment", "principal_repayment",
    "loan_amount", "total_deduction", "paid_amount", "net_salary", "cb_thrift_balance", "loan_balance",
)


def _snapshot(tx: Transaction, employee: Employee) -> dict:
    row = {
        "emp_id": employee.emp_id if employee else "",
        "name": employee.name if employee else "",
        "department": employee.department if employee else "",
    }
    for name in SNAPSHOT_FIELDS:
        # JSON column: store as text so paise survive
        row[name] = str(getattr(tx, name) or ZERO)
    return row


def live_months(db: Session) -> List[str]:
    """Months that still have transaction rows, newest first."""
    rows = db.query(Transaction.month).distinct().all()
    return sorted((r[0] for r in rows), reverse=True)


def archive_old_months(db: Session, months_to_keep: int = None) -> dict:
    """Summarise and prune every month older than the ``months_to_keep`` newest.

    Safe to rerun: an already archived month only has its leftover rows deleted.
    """
    months_to_keep = settings.MONTHS_TO_KEEP if months_to_keep is None else months_to_keep
    to_archive = live_months(db)[months_to_keep:]
    archived: List[str] = []
    deleted_rows = 0

    for month in to_archive:
        already = db.query(ArchivedMonth).filter(ArchivedMonth.month == month).first()
        txns = db.query(Transaction).filter(Transaction.month == month).all()
        if not already and txns:
            snapshot = [_snapshot(tx, tx.employee) for tx in txns]
            db.add(ArchivedMonth(
                month=month,
                employee_count=len(txns),
                total_thrift=sum((tx.thrift_deduction or ZERO for tx in txns), ZERO),
                total_emi=sum((tx.loan_emi or ZERO for tx in txns), ZERO),
                total_interest=sum((tx.interest_payment or ZERO for tx in txns), ZERO),
                total_deduction=sum((tx.total_deduction or ZERO for tx in txns), ZERO),
                employees=snapshot,
            ))
            archived.append(month)
        deleted_rows += db.query(Transaction).filter(Transaction.month == month).delete(synchronize_session=False)
        db.commit()
        logger.info("[Archive] Month %s archived (%d rows removed)", month, len(txns))

    return {"archived_months": archived, "deleted_transactions": deleted_rows}
