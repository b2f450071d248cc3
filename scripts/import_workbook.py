"""
Apply an employee or monthly deduction workbook from the command line.
Usage: python scripts/import_workbook.py monthly OCT_2025.xlsx [--month 2025-10]
"""
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.core.audit import write_audit_log
from app.db.base import SessionLocal
from app.services.columns import StructuralError
from app.services.ingestion import import_employees, import_monthly


def _progress(done: int, total: int):
    print(f"\r  {done}/{total} rows", end="", flush=True)


def import_workbook(kind: str, path: str, month: str = None, actor: str = "cli"):
    """Run one ingestion batch and print its summary."""
    workbook = Path(path)
    content = workbook.read_bytes()
    db = SessionLocal()
    try:
        if kind == "employees":
            result = import_employees(db, content, workbook.name, actor=actor, progress=_progress)
        else:
            result = import_monthly(db, content, workbook.name, month=month, actor=actor, progress=_progress)
    except StructuralError as e:
        print(f"Rejected {workbook.name}: {e}")
        return 1
    finally:
        db.close()
    print()

    log = result.log
    print(f"{workbook.name}: {log.status.value}")
    if result.month:
        print(f"  Month: {result.month}")
    print(f"  Applied: {log.success_count}  Failed: {log.failure_count}  Skipped: {log.skipped_count}  Warnings: {log.warning_count}")
    for err in log.error_log:
        print(f"  Row {err['row']}: {err['error']}")
    for user in result.created_users:
        print(f"  Created {user['name']} -> {user['username']} / {user['password']}")

    write_audit_log(
        actor, f"{kind.capitalize()} upload",
        f"file={workbook.name} applied={log.success_count} failed={log.failure_count}",
    )
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Import a society workbook")
    parser.add_argument("kind", choices=["employees", "monthly"], help="Sheet layout")
    parser.add_argument("path", help="Path to the .xlsx file")
    parser.add_argument("--month", default=None, help="YYYY-MM; detected from the sheet title when omitted")
    parser.add_argument("--actor", default="cli", help="Name recorded in the audit log")

    args = parser.parse_args()

    sys.exit(import_workbook(args.kind, args.path, month=args.month, actor=args.actor))
