"""
Workbook builders shaped like the society's monthly and employee sheets.
"""

import io
from typing import List, Sequence

import openpyxl


MONTHLY_HEADERS = [
    "S.No", "Emp. ID", "Name of the Employ", "CB Thrift Amount", "Loan", "Loan Re payment",
    "Intrest", "Monthly Threft Amount", "Total Amount", "Paid Amount", "Loan Amount",
    "Total monthly deduction", "surity1 Emp .ID", "surity2 Emp .ID",
]

EMPLOYEE_HEADERS = [
    "S.No", "Emp. ID", "Name of the Employ", "Email", "Department", "Designation",
    "Phone", "Salary", "Monthly Thrift Amount", "CB Thrift Amount",
]


def build_workbook(rows: Sequence[Sequence]) -> bytes:
    """Serialize rows into an .xlsx (first sheet) and return the bytes."""
    wb = openpyxl.Workbook()
    ws = wb.active
    for row in rows:
        ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def monthly_sheet(data_rows: List[Sequence], title: str = "OCTOBER - 2025") -> bytes:
    """Society monthly layout: organisation line, month title, header, data.

    With a title the header sits on sheet row 3 and data starts on row 4.
    """
    rows = [["VIGNAN UNIVERSITY :: VADLAMUDI"]]
    if title:
        rows.append([title])
    rows.append(MONTHLY_HEADERS)
    rows.extend(data_rows)
    return build_workbook(rows)


def employee_sheet(data_rows: List[Sequence]) -> bytes:
    """Header on sheet row 1, data from row 2."""
    return build_workbook([EMPLOYEE_HEADERS, *data_rows])


def monthly_row(serial, emp_id, name, closing=0, loan=0, repayment=0, interest=0,
                thrift=1000, sureties=(None, None)):
    """One monthly data row; totals are derived the way the society's sheet does."""
    total = thrift + repayment + interest
    emi = repayment + interest
    return [serial, emp_id, name, closing, loan, repayment, interest, thrift,
            total, total, emi, total, *sureties]


def employee_row(serial, emp_id, name, email=None, salary=30000, thrift=1000, closing=0,
                 department="CSE", designation="Assistant Professor", phone="9876543210"):
    return [serial, emp_id, name, email, department, designation, phone, salary, thrift, closing]
