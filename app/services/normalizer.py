"""Turn raw spreadsheet rows into canonical employee / monthly records.

Optional fields never fail a row: they default to 0 or empty and produce a
``RowIssue`` warning. Only a missing identity or an uncoercible mandatory
value raises ``RowError``.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from app.core.config import settings
from app.services.columns import (
    EMPLOYEE_COLUMN_ALIASES,
    MONTHLY_COLUMN_ALIASES,
    header_names,
    normalize_header,
    resolve_columns,
)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
AADHAAR_RE = re.compile(r"^\d{12}$")
SUMMARY_NAMES = {"total", "grand total"}
SERIAL_HEADERS = {"s.no", "s.no.", "sno", "s no", "sl.no", "sl no", "s. no"}

FIELD_LABELS = {
    "closing_balance": "CB Thrift Amount",
    "loan_balance": "Loan",
    "loan_repayment": "Loan Re payment",
    "interest": "Interest",
    "thrift_contribution": "Monthly Thrift Amount",
    "thrift": "Thrift",
    "total_amount": "Total Amount",
    "paid_amount": "Paid Amount",
    "loan_amount": "Loan Amount",
    "total_deduction": "Total monthly deduction",
    "salary": "Salary",
}


class RowError(Exception):
    """A row that cannot be applied. The batch skips it and carries on."""

    def __init__(self, row: int, message: str):
        super().__init__(message)
        self.row = row
        self.message = message


@dataclass
class RowIssue:
    row: int
    column: str
    issue: str

    def as_dict(self) -> dict:
        return {"row": self.row, "column": self.column, "issue": self.issue}


@dataclass
class ColumnLayout:
    """Resolved header row: canonical field -> header, plus cell positions."""
    headers: List[str]
    mapping: Dict[str, Optional[str]]
    positions: Dict[str, int]
    serial_index: Optional[int] = None

    @classmethod
    def from_header_row(cls, header_row: Sequence, aliases: Dict[str, List[str]]) -> "ColumnLayout":
        headers = header_names(header_row)
        positions = {}
        for idx, header in enumerate(headers):
            positions.setdefault(header, idx)
        serial_index = next(
            (idx for idx, h in enumerate(headers) if normalize_header(h) in SERIAL_HEADERS),
            None,
        )
        return cls(
            headers=headers,
            mapping=resolve_columns(headers, aliases),
            positions=positions,
            serial_index=serial_index,
        )

    def has(self, field_name: str) -> bool:
        return self.mapping.get(field_name) is not None

    def cell(self, row: Sequence, field_name: str):
        header = self.mapping.get(field_name)
        if header is None:
            return None
        idx = self.positions[header]
        return row[idx] if idx < len(row) else None


def monthly_layout(header_row: Sequence) -> ColumnLayout:
    return ColumnLayout.from_header_row(header_row, MONTHLY_COLUMN_ALIASES)


def employee_layout(header_row: Sequence) -> ColumnLayout:
    return ColumnLayout.from_header_row(header_row, EMPLOYEE_COLUMN_ALIASES)


@dataclass
class EmployeeRecord:
    row: int
    name: str
    emp_id: Optional[str] = None
    email: Optional[str] = None
    department: str = "General"
    designation: str = "Employee"
    phone: Optional[str] = None
    salary: Decimal = ZERO
    thrift_contribution: Decimal = ZERO
    closing_balance: Decimal = ZERO
    loan_status: str = ""
    pan: Optional[str] = None
    aadhaar: Optional[str] = None


@dataclass
class MonthlyRecord:
    row: int
    emp_id: Optional[str]
    name: str
    # None when the sheet has no closing balance for this row
    closing_balance: Optional[Decimal] = None
    loan_balance: Decimal = ZERO
    loan_repayment: Decimal = ZERO
    interest: Decimal = ZERO
    thrift_contribution: Decimal = ZERO
    thrift: Decimal = ZERO
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    loan_amount: Decimal = ZERO
    total_deduction: Decimal = ZERO
    phone: Optional[str] = None
    sureties: List[str] = field(default_factory=list)
    # False when the Loan column is missing or blank, so 0 means "not reported"
    loan_balance_given: bool = False

    @property
    def thrift_deduction(self) -> Decimal:
        return self.thrift_contribution if self.thrift_contribution > 0 else self.thrift

    @property
    def principal_repayment(self) -> Decimal:
        return max(ZERO, self.loan_repayment - self.interest)

    @property
    def emi_total(self) -> Decimal:
        """Monthly EMI total: the Loan Amount column, else repayment + interest."""
        if self.loan_amount > 0:
            return self.loan_amount
        return self.loan_repayment + self.interest

    @property
    def effective_total_deduction(self) -> Decimal:
        if self.total_deduction > 0:
            return self.total_deduction
        if self.total_amount > 0:
            return self.total_amount
        return self.thrift_deduction + self.loan_repayment


# ---------------------------------------------------------------------------
# Cell coercion
# ---------------------------------------------------------------------------

def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in ("", "-"))


def cell_text(value) -> str:
    """String form of a cell; integral floats lose their ".0"."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_emp_id(value) -> Optional[str]:
    """Emp IDs are compared as text: 19, 19.0 and "19.0" are all "19"."""
    if _is_blank(value):
        return None
    text = cell_text(value)
    try:
        number = Decimal(text)
    except InvalidOperation:
        return text or None
    if number == 0:
        return None
    if number == number.to_integral_value():
        return str(int(number))
    return text


def to_decimal(value) -> Decimal:
    """Parse a money cell. Raises ValueError when it is not a number."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid number \"{value}\"")
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value)).quantize(CENT)
    text = str(value).strip().replace(",", "").replace("₹", "").replace("Rs.", "").strip()
    try:
        return Decimal(text).quantize(CENT)
    except InvalidOperation:
        raise ValueError(f"Invalid number \"{value}\"")


def parse_amount(value, row: int, label: str, warnings: List[RowIssue], present: bool = True) -> Decimal:
    """Non-negative amount; anything suspect becomes 0 plus a warning."""
    if _is_blank(value):
        if present:
            warnings.append(RowIssue(row, label, "Missing value, defaulting to 0"))
        return ZERO
    try:
        amount = to_decimal(value)
    except ValueError:
        warnings.append(RowIssue(row, label, f"Invalid number \"{value}\", defaulting to 0"))
        return ZERO
    if amount < 0:
        warnings.append(RowIssue(row, label, f"Negative amount {amount}, defaulting to 0"))
        return ZERO
    return amount


def _closing_balance(value, row: int, warnings: List[RowIssue]) -> Optional[Decimal]:
    """Absolute thrift balance, or None when the cell is blank or unusable.

    A bad value must never reach ``thrift_balance`` as 0.
    """
    label = FIELD_LABELS["closing_balance"]
    if _is_blank(value):
        return None
    try:
        amount = to_decimal(value)
    except ValueError:
        warnings.append(RowIssue(row, label, f"Invalid number \"{value}\", thrift balance left unchanged"))
        return None
    if amount < 0:
        warnings.append(RowIssue(row, label, f"Negative amount {amount}, thrift balance left unchanged"))
        return None
    return amount


def _amount_field(layout: ColumnLayout, cells: Sequence, name: str, row: int,
                  warnings: List[RowIssue]) -> Decimal:
    if not layout.has(name):
        return ZERO
    return parse_amount(layout.cell(cells, name), row, FIELD_LABELS.get(name, name), warnings)


def _text_field(layout: ColumnLayout, cells: Sequence, name: str) -> Optional[str]:
    value = layout.cell(cells, name)
    if _is_blank(value):
        return None
    return cell_text(value)


def _validated_pan(value: Optional[str], row: int, warnings: List[RowIssue]) -> Optional[str]:
    if not value:
        return None
    pan = value.replace(" ", "").upper()
    if not PAN_RE.match(pan):
        warnings.append(RowIssue(row, "PAN", f"Invalid PAN \"{value}\", ignored"))
        return None
    return pan


def _validated_aadhaar(value: Optional[str], row: int, warnings: List[RowIssue]) -> Optional[str]:
    if not value:
        return None
    digits = re.sub(r"[\s-]", "", value)
    if not AADHAAR_RE.match(digits):
        warnings.append(RowIssue(row, "Aadhaar", f"Invalid Aadhaar \"{value}\", must be 12 digits"))
        return None
    return digits


def _validated_email(value: Optional[str], row: int, warnings: List[RowIssue]) -> Optional[str]:
    if not value:
        return None
    if "@" not in value:
        warnings.append(RowIssue(row, "Email", f"Invalid email \"{value}\", ignored"))
        return None
    return value.strip()


# ---------------------------------------------------------------------------
# Row iteration
# ---------------------------------------------------------------------------

def iter_data_rows(rows: Sequence[Sequence], header_index: int,
                   layout: ColumnLayout) -> Iterator[Tuple[int, Sequence]]:
    """Yield ``(sheet_row_number, cells)`` for every real data row.

    Empty rows, rows with a blank serial number and TOTAL / GRAND TOTAL rows
    are not data.
    """
    for idx in range(header_index + 1, len(rows)):
        cells = rows[idx] or []
        if all(_is_blank(c) for c in cells):
            continue
        if layout.serial_index is not None:
            serial = cells[layout.serial_index] if layout.serial_index < len(cells) else None
            if _is_blank(serial):
                continue
        name = layout.cell(cells, "name")
        if name is not None and normalize_header(name) in SUMMARY_NAMES:
            continue
        yield idx + 1, cells


# ---------------------------------------------------------------------------
# Row normalizers
# ---------------------------------------------------------------------------

def normalize_employee_row(cells: Sequence, layout: ColumnLayout, row: int) -> Tuple[EmployeeRecord, List[RowIssue]]:
    warnings: List[RowIssue] = []

    name = _text_field(layout, cells, "name")
    if not name:
        raise RowError(row, "Missing required field: Name")

    salary = ZERO
    if layout.has("salary"):
        raw_salary = layout.cell(cells, "salary")
        if not _is_blank(raw_salary):
            try:
                salary = to_decimal(raw_salary)
            except ValueError:
                raise RowError(row, f"Invalid salary \"{raw_salary}\"")
            if salary < 0:
                warnings.append(RowIssue(row, "Salary", f"Negative amount {salary}, defaulting to 0"))
                salary = ZERO

    loan_status = ""
    status_text = _text_field(layout, cells, "loan_status")
    if status_text:
        lowered = status_text.lower()
        if "loan" in lowered or "yes" in lowered or "active" in lowered:
            loan_status = "Loan"
    elif layout.has("loan_balance"):
        if _amount_field(layout, cells, "loan_balance", row, []) > 0:
            loan_status = "Loan"

    record = EmployeeRecord(
        row=row,
        name=" ".join(name.split()),
        emp_id=normalize_emp_id(layout.cell(cells, "emp_id")),
        email=_validated_email(_text_field(layout, cells, "email"), row, warnings),
        department=_text_field(layout, cells, "department") or "General",
        designation=_text_field(layout, cells, "designation") or "Employee",
        phone=_text_field(layout, cells, "phone"),
        salary=salary,
        thrift_contribution=_amount_field(layout, cells, "thrift_contribution", row, warnings),
        closing_balance=_amount_field(layout, cells, "closing_balance", row, warnings),
        loan_status=loan_status,
        pan=_validated_pan(_text_field(layout, cells, "pan"), row, warnings),
        aadhaar=_validated_aadhaar(_text_field(layout, cells, "aadhaar"), row, warnings),
    )
    return record, warnings


def normalize_monthly_row(cells: Sequence, layout: ColumnLayout, row: int) -> Tuple[MonthlyRecord, List[RowIssue]]:
    warnings: List[RowIssue] = []

    emp_id = normalize_emp_id(layout.cell(cells, "emp_id"))
    name = _text_field(layout, cells, "name") or ""
    if not emp_id and not name:
        raise RowError(row, "Row has neither an Emp. ID nor a Name")

    closing_balance = None
    if layout.has("closing_balance"):
        closing_balance = _closing_balance(layout.cell(cells, "closing_balance"), row, warnings)

    raw_loan = layout.cell(cells, "loan_balance") if layout.has("loan_balance") else None

    sureties = []
    for i in range(1, settings.SURETY_COLUMNS + 1):
        surety_id = normalize_emp_id(layout.cell(cells, f"surety{i}"))
        if surety_id and surety_id not in sureties:
            sureties.append(surety_id)

    record = MonthlyRecord(
        row=row,
        emp_id=emp_id,
        name=" ".join(name.split()),
        closing_balance=closing_balance,
        loan_balance=_amount_field(layout, cells, "loan_balance", row, warnings),
        loan_repayment=_amount_field(layout, cells, "loan_repayment", row, warnings),
        interest=_amount_field(layout, cells, "interest", row, warnings),
        thrift_contribution=_amount_field(layout, cells, "thrift_contribution", row, warnings),
        thrift=_amount_field(layout, cells, "thrift", row, warnings),
        total_amount=_amount_field(layout, cells, "total_amount", row, warnings),
        paid_amount=_amount_field(layout, cells, "paid_amount", row, warnings),
        loan_amount=_amount_field(layout, cells, "loan_amount", row, warnings),
        total_deduction=_amount_field(layout, cells, "total_deduction", row, warnings),
        phone=_text_field(layout, cells, "phone"),
        sureties=sureties,
        loan_balance_given=not _is_blank(raw_loan),
    )
    return record, warnings
