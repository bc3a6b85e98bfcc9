import os
import subprocess

import fitz
import pytest

import stop_invoicing.reader
from stop_invoicing.errors import ExtractionError
from stop_invoicing.reader import find_pdf_files, read_pdf_text

from conftest import write_report_pdf


def test_find_pdf_files_is_recursive_and_sorted(tmp_path):
    (tmp_path / "week14").mkdir()
    write_report_pdf(tmp_path / "week14" / "b.PDF", ["x"])
    write_report_pdf(tmp_path / "a.pdf", ["x"])
    (tmp_path / "notes.txt").write_text("not a report")

    found = find_pdf_files(str(tmp_path))

    assert found == sorted([str(tmp_path / "a.pdf"), os.path.join(str(tmp_path), "week14", "b.PDF")])


def test_find_pdf_files_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_pdf_files(str(tmp_path / "nope"))


def test_read_pdf_text_joins_pages_in_order(tmp_path):
    path = tmp_path / "two_pages.pdf"
    doc = fitz.open()
    for text in ("first page", "second page"):
        page = doc.new_page()
        page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()

    text = read_pdf_text(str(path))

    assert text.index("first page") < text.index("second page")


def test_read_pdf_text_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_pdf_text(str(tmp_path / "missing.pdf"))


def test_read_pdf_text_rejects_non_pdf(tmp_path):
    path = tmp_path / "fake.pdf"
    path.write_bytes(b"this is not a pdf")

    with pytest.raises(ExtractionError):
        read_pdf_text(str(path))


def write_blank_pdf(path):
    doc = fitz.open()
    doc.new_page()
    doc.save(str(path))
    doc.close()
    return str(path)


@pytest.fixture
def fake_ocrmypdf(monkeypatch):
    """Replaces the ocrmypdf subprocess: writes a text PDF to the destination path."""
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        write_report_pdf(cmd[-1], ["Activiteitenrapport", "01-04-2024"])
        return subprocess.CompletedProcess(cmd, 0, stdout=b"", stderr=b"")

    monkeypatch.setattr(stop_invoicing.reader.subprocess, "run", run)
    return calls


def test_blank_pdf_without_ocr_lang_is_not_ocred(tmp_path, fake_ocrmypdf):
    path = write_blank_pdf(tmp_path / "scan.pdf")

    text = read_pdf_text(path)

    assert text.strip() == ""
    assert fake_ocrmypdf == []


def test_blank_pdf_is_ocred_when_lang_set(tmp_path, fake_ocrmypdf):
    path = write_blank_pdf(tmp_path / "scan.pdf")

    text = read_pdf_text(path, ocr_lang="nld+eng")

    assert "01-04-2024" in text
    assert len(fake_ocrmypdf) == 1
    cmd = fake_ocrmypdf[0]
    assert cmd[cmd.index("-l") + 1] == "nld+eng"
    assert cmd[-2] == path


def test_pdf_with_text_skips_ocr(tmp_path, fake_ocrmypdf):
    path = write_report_pdf(tmp_path / "report.pdf", ["Activiteitenrapport", "02-04-2024"])

    text = read_pdf_text(path, ocr_lang="nld")

    assert "02-04-2024" in text
    assert fake_ocrmypdf == []


def test_failed_ocr_returns_original_text(tmp_path, monkeypatch):
    def run(cmd, **kwargs):
        raise subprocess.CalledProcessError(2, cmd, output=b"", stderr=b"tesseract not installed")

    monkeypatch.setattr(stop_invoicing.reader.subprocess, "run", run)
    path = write_blank_pdf(tmp_path / "scan.pdf")

    text = read_pdf_text(path, ocr_lang="nld")

    assert text.strip() == ""
