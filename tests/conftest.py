import os
import shutil
from datetime import date

import fitz
import pytest
from openpyxl import Workbook

from stop_invoicing.config import BillingConfig
from stop_invoicing.models import LedgerRow

LEDGER_HEADERS = ["Date", "Total Stops", "Week of Year", "Converted Hours", "Invoice.nr", "Invoiced"]


def write_ledger(path, rows=(), headers=LEDGER_HEADERS, extra_sheets=None):
    """Create a ledger workbook with a header row and the given data rows."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Ledger"
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))
    for name, values in (extra_sheets or {}).items():
        extra = wb.create_sheet(name)
        for row in values:
            extra.append(list(row))
    wb.save(path)
    return str(path)


def write_template(path, with_invoice_number=True, with_records=True):
    wb = Workbook()
    ws = wb.active
    ws["A1"] = "Invoice"
    if with_invoice_number:
        ws["B1"] = "${invoiceNumber}"
    ws["A2"] = "Date"
    ws["B2"] = "${invoiceDate}"
    ws.append([])
    ws["A4"] = "Week"
    ws["B4"] = "Hours"
    ws["C4"] = "Price"
    ws["D4"] = "Total"
    if with_records:
        ws["A5"] = "${table:records.weekOfYear}"
        ws["B5"] = "${table:records.hours}"
        ws["C5"] = "${table:records.price}"
        ws["D5"] = "${table:records.total}"
    ws["A7"] = "Total"
    ws["B7"] = "Hours: ${totalHours}"
    ws["D7"] = "${totalAmount}"
    wb.save(path)
    return str(path)


def write_report_pdf(path, lines):
    """Create a one-page PDF with the given text lines."""
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line, fontsize=11)
        y += 20
    doc.save(str(path))
    doc.close()
    return str(path)


def report_lines(report_date, stops):
    return [
        "Activiteitenrapport",
        report_date,
        "Route 12 - Utrecht",
        "Totaal aantal succesvolle stops",
        str(stops),
    ]


class FakeConverter:
    """Stands in for LibreOffice: keeps a copy of the filled workbook and writes a dummy PDF."""

    def __init__(self, capture_dir, fail=False):
        self.capture_dir = str(capture_dir)
        self.fail = fail
        self.calls = []
        os.makedirs(self.capture_dir, exist_ok=True)

    def __call__(self, xlsx_path, pdf_path):
        self.calls.append((xlsx_path, pdf_path))
        if self.fail:
            raise RuntimeError("soffice crashed")
        shutil.copy(xlsx_path, self.last_workbook)
        with open(pdf_path, "wb") as f:
            f.write(b"%PDF-1.4 fake invoice")

    @property
    def last_workbook(self):
        return os.path.join(self.capture_dir, f"filled_{len(self.calls)}.xlsx")


@pytest.fixture
def config():
    return BillingConfig(max_workers=1)


@pytest.fixture
def ledger_path(tmp_path):
    return write_ledger(tmp_path / "reports.xlsx")


@pytest.fixture
def template_path(tmp_path):
    return write_template(tmp_path / "template.xlsx")


@pytest.fixture
def converter(tmp_path):
    return FakeConverter(tmp_path / "captured")


def ledger_row(day, stops, week, billed=False, ref=None, row_number=2):
    return LedgerRow(
        date=day,
        total_stops=stops,
        week_of_year=week,
        converted_hours=round(stops / 35, 2),
        invoice_ref=ref,
        billed=billed,
        row_number=row_number,
    )


@pytest.fixture
def sample_day():
    return date(2024, 4, 1)
