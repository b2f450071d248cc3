"""Header-row detection and column resolution for society spreadsheets.

The alias table is plain data: canonical field -> ordered alias phrases,
known misspellings included. ``resolve_columns`` is a pure function over the
header row.
"""
import logging
import re
from typing import Dict, List, Optional, Sequence

from app.core.config import settings

logger = logging.getLogger(__name__)

# Aliases shorter than this only ever match a header exactly
MIN_CONTAINMENT_LENGTH = 4


class StructuralError(Exception):
    """The file has no usable header row; nothing in it can be applied."""


MONTHLY_COLUMN_ALIASES: Dict[str, List[str]] = {
    "emp_id": ["Emp. ID", "Emp.ID", "EmpID", "Emp ID", "Employee ID", "Emp .ID"],
    "name": ["Name of the Employ", "Name of the Employee", "Name", "Employee Name", "Name of Employee"],
    "closing_balance": [
        "CB Thrift Amount As on", "CB Thrift Amount", "CB Thrift", "CB Threft Amount",
        "CB Threft", "Thrift Balance", "CBThrift",
    ],
    "loan_repayment": [
        "Loan Re payment", "Loan Repayment", "Loan Repaymnt", "Loan Re-payment",
        "LoanRepayment", "LoanRePayment", "Loan repay", "Loan EMI", "EMI",
    ],
    "interest": [
        "Intrest", "Interest", "Intrst", "Interest Amount", "Intrest Amount",
        "Inrest", "Interset", "Int Amount", "Int Amt",
    ],
    "thrift_contribution": [
        "Monthly Threft Amount", "Monthly Thrift Amount", "Monthly Thrft Amount",
        "Monthly Threft", "Monthly Thrift", "Monthly Thrft", "MonthlyThrift",
        "Month Thrift Amt", "Mnthly Thrift",
    ],
    "total_amount": ["Total  Amount", "Total Amount", "TotalAmount", "Total Amt", "TotalAmt", "Tot Amount", "Tot Amt"],
    "paid_amount": ["Paid Amount", "PaidAmount", "Paid Amt", "Amount Paid", "Amt Paid"],
    # Monthly EMI total (principal + interest), not the sanctioned amount
    "loan_amount": ["Loan Amount", "LoanAmount", "Loan Amt", "LoanAmt"],
    "total_deduction": [
        "Total monthly deduction", "Total Deduction", "TotalDeduction",
        "Total Deduct", "Tot Deduction", "Total Ded",
    ],
    "thrift": ["Thrift", "Thrift Amount", "Thrift Amt", "Monthly Threft Amount", "Monthly Thrift Amount"],
    # Outstanding balance; resolved after the other "Loan ..." fields
    "loan_balance": [
        "Loan", "Loan Bal", "Loan Balance", "Loan Outstanding", "Loan Bal.", "Loan O/S",
        "Outstanding Balance", "O/S Loan", "Bal Loan", "Balance Loan", "Loan Pending",
        "Pending Loan", "Loan OS",
    ],
    "phone": ["Phone", "Mobile No", "Mobile", "Contact", "Phone No", "Mob No", "Cell", "Phone Number", "Mobile Number"],
}
for _i in range(1, settings.SURETY_COLUMNS + 1):
    MONTHLY_COLUMN_ALIASES[f"surety{_i}"] = [
        f"surity{_i} Emp .ID", f"surity{_i} Emp ID", f"surity{_i}", f"surety{_i}",
    ]

EMPLOYEE_COLUMN_ALIASES: Dict[str, List[str]] = {
    "emp_id": ["Emp. ID", "Emp ID", "EmpID", "Employee ID", "Emp.ID"],
    "name": ["Name of the Employ", "Name", "Employee Name"],
    "email": ["Email", "E-mail", "Email ID", "Mail"],
    "department": ["Department", "Dept"],
    "designation": ["Designation", "Position"],
    "phone": ["Phone", "Mobile", "Contact"],
    "salary": ["Salary", "Basic Salary", "Gross Salary"],
    "thrift_contribution": [
        "Monthly Thrift Amount", "Monthly Threft Amount", "Monthly Thrft Amount",
        "Monthly Thrift", "Monthly Threft", "Monthly Thrft", "Month Thrift Amt",
        "Mnthly Thrift", "Thrift Amount", "Thrift",
    ],
    "closing_balance": [
        "CB Thrift Amount As on", "Thrift Amount As on", "CB Thrift Amount", "CB Thrift",
        "Thrift Balance", "Closing Thrift", "CB Threft Amount", "CB Threft",
    ],
    "loan_status": ["Loan Status", "Loan Stat"],
    "loan_balance": ["Loan Balance", "Loan Amt", "Loan"],
    "pan": ["PAN", "PAN No", "PAN Number"],
    "aadhaar": ["Aadhaar", "Aadhar", "Aadhaar No", "Aadhar No", "Aadhaar Number"],
}

SURETY_PATTERN = "sur[iey][^\\d]*{index}"


def normalize_header(value) -> str:
    """Trim, collapse whitespace and lowercase a header cell."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value).strip()).lower()


def header_names(row: Sequence) -> List[str]:
    """Header strings for a raw row; blank cells get positional names."""
    names = []
    for idx, cell in enumerate(row):
        text = "" if cell is None else re.sub(r"\s+", " ", str(cell).strip())
        names.append(text or f"column_{idx + 1}")
    return names


def _is_emp_id_cell(cell: str) -> bool:
    return "emp" in cell and "id" in cell


def _is_name_cell(cell: str) -> bool:
    return "name" in cell


def _is_email_cell(cell: str) -> bool:
    return "email" in cell or "e-mail" in cell


def detect_header_row(rows: Sequence[Sequence], upload_type: str = "monthly",
                      scan_rows: int = None) -> int:
    """Index of the header row within the first ``scan_rows`` rows.

    A monthly sheet needs an emp-ID-like and a name-like cell on the same
    row. An employee sheet may use the simple layout (Name, Email, ...), so
    there an email-like cell stands in for the emp ID.
    """
    scan_rows = scan_rows or settings.HEADER_SCAN_ROWS
    for idx, row in enumerate(rows[:scan_rows]):
        cells = [normalize_header(c) for c in row or []]
        has_name = any(_is_name_cell(c) for c in cells)
        has_emp_id = any(_is_emp_id_cell(c) for c in cells)
        if upload_type == "employees":
            has_emp_id = has_emp_id or any(_is_email_cell(c) for c in cells)
        if has_name and has_emp_id:
            return idx
    logger.error("No header row found in first %d rows (%s upload)", scan_rows, upload_type)
    raise StructuralError(
        f'Could not find a header row with "Emp. ID" and "Name" columns in the first {scan_rows} rows'
    )


def resolve_columns(headers: Sequence[str], aliases: Dict[str, List[str]]) -> Dict[str, Optional[str]]:
    """Map each canonical field to the actual header string, or None.

    Pass 1 takes exact (normalized) matches, one field per header, in alias
    table order. Pass 2 lets the remaining fields match by containment/prefix,
    but only against headers nobody claimed.
    """
    normalized = [(header, normalize_header(header)) for header in headers]
    mapping: Dict[str, Optional[str]] = {field: None for field in aliases}
    claimed = set()

    for field, field_aliases in aliases.items():
        for alias in field_aliases:
            target = normalize_header(alias)
            found = next((h for h, n in normalized if h not in claimed and n == target), None)
            if found is not None:
                mapping[field] = found
                claimed.add(found)
                break

    for field, field_aliases in aliases.items():
        if mapping[field] is not None:
            continue
        for alias in field_aliases:
            target = normalize_header(alias)
            if len(target) < MIN_CONTAINMENT_LENGTH:
                continue
            found = next(
                (h for h, n in normalized if h not in claimed and (n.startswith(target) or target in n)),
                None,
            )
            if found is not None:
                mapping[field] = found
                claimed.add(found)
                break

    for field in aliases:
        match = re.fullmatch(r"surety(\d)", field)
        if not match or mapping[field] is not None:
            continue
        pattern = re.compile(SURETY_PATTERN.format(index=match.group(1)), re.IGNORECASE)
        found = next((h for h, _ in normalized if h not in claimed and pattern.search(h)), None)
        if found is not None:
            mapping[field] = found
            claimed.add(found)

    return mapping


def column_summary(mapping: Dict[str, Optional[str]]) -> List[dict]:
    """Per-field detection report: ``{field, header, detected}``."""
    return [
        {"field": field, "header": header, "detected": header is not None}
        for field, header in mapping.items()
    ]
