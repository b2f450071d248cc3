"""
Run (or preview) the yearly dividend.
Usage: python scripts/run_dividend.py --share-capital 0 --bank-balance 100000 --cash-in-hand 0 --preview
"""
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.core.audit import write_audit_log
from app.db.base import SessionLocal
from app.services.dividend import run_yearly_dividend


def run_dividend(share_capital: Decimal, bank_balance: Decimal, cash_in_hand: Decimal,
                 year: str = None, preview: bool = False, actor: str = "cli"):
    db = SessionLocal()
    try:
        run = run_yearly_dividend(
            db,
            share_capital=share_capital,
            bank_balance=bank_balance,
            cash_in_hand=cash_in_hand,
            year=year,
            actor=actor,
            preview=preview,
        )
    finally:
        db.close()

    formula = run.formula
    print(f"Dividend {'preview' if run.preview else 'run'} for {run.year}")
    print(f"  {formula.describe()}")
    print(f"  Rate per rupee: {formula.display_rate}")
    for row in run.results:
        marker = "*" if row["changed"] else " "
        print(f" {marker} {row['emp_id'] or '-':>8}  {row['name']:<30} {row['old_balance']:>12} -> {row['new_balance']:>12}")
    for err in run.errors:
        print(f"  ! {err['emp_id'] or '-':>8}  {err['name']:<30} {err['error']}")
    print(f"  Processed: {run.total_processed}  Changed: {run.total_changed}  Errors: {run.total_errors}")

    if not run.preview:
        write_audit_log(
            actor, "Yearly dividend",
            f"year={run.year} rate={formula.display_rate} changed={run.total_changed} errors={run.total_errors}",
        )
    return 1 if run.errors else 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Yearly thrift dividend")
    parser.add_argument("--share-capital", type=Decimal, required=True)
    parser.add_argument("--bank-balance", type=Decimal, required=True)
    parser.add_argument("--cash-in-hand", type=Decimal, required=True)
    parser.add_argument("--year", default=None, help="Defaults to the current year")
    parser.add_argument("--preview", action="store_true", help="Compute without changing balances")
    parser.add_argument("--actor", default="cli", help="Name recorded in the audit log")

    args = parser.parse_args()

    sys.exit(run_dividend(
        args.share_capital, args.bank_balance, args.cash_in_hand,
        year=args.year, preview=args.preview, actor=args.actor,
    ))
