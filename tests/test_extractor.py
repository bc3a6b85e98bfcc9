from datetime import date
from dataclasses import replace

import pytest

from stop_invoicing.errors import ExtractionError
from stop_invoicing.extractor import extract_period_record, extract_report_file, round_half_up

from conftest import report_lines, write_report_pdf

REPORT_TEXT = """
Activiteitenrapport 01-04-2024
Chauffeur: J. de Vries
Totaal aantal stops 360
Totaal aantal succesvolle stops 350
"""


def test_extracts_date_stops_week_and_hours(config):
    record = extract_period_record(REPORT_TEXT, config, source="a.pdf")

    assert record.date == date(2024, 4, 1)
    assert record.total_stops == 350
    assert record.week_of_year == 14
    assert record.converted_hours == 10.0
    assert record.source == "a.pdf"


def test_label_and_value_on_separate_lines(config):
    text = "\n".join(report_lines("30-12-2024", 100))
    record = extract_period_record(text, config)

    assert record.date == date(2024, 12, 30)
    # ISO week: 30 Dec 2024 belongs to week 1 of 2025
    assert record.week_of_year == 1
    assert record.converted_hours == 2.86


def test_missing_stop_count_is_a_hard_failure(config):
    with pytest.raises(ExtractionError) as exc:
        extract_period_record("Activiteitenrapport 01-04-2024", config, source="reports/bad.pdf")

    assert "reports/bad.pdf" in str(exc.value)
    assert "total successful stops" in str(exc.value)


def test_missing_date_is_a_hard_failure(config):
    with pytest.raises(ExtractionError, match="report date"):
        extract_period_record("Totaal aantal succesvolle stops 12", config)


def test_impossible_date_is_rejected(config):
    with pytest.raises(ExtractionError, match="31-02-2024"):
        extract_period_record("Activiteitenrapport 31-02-2024 Totaal aantal succesvolle stops 5", config)


def test_patterns_come_from_config(config):
    english = replace(
        config,
        report_date_pattern=r"Activity report\s*([0-9]{4}/[0-9]{2}/[0-9]{2})",
        total_stops_pattern=r"Successful stops:\s*([0-9]+)",
        report_date_format="%Y/%m/%d",
        stops_per_hour=40,
    )
    record = extract_period_record("Activity report 2024/04/08\nSuccessful stops: 90", english)

    assert record.date == date(2024, 4, 8)
    assert record.week_of_year == 15
    assert record.converted_hours == 2.25


@pytest.mark.parametrize("value, expected", [
    (4.088669950738916, 4.09),
    (0.125, 0.13),
    (2.675, 2.68),
    (10.0, 10.0),
    (-1.005, -1.01),
])
def test_round_half_up(value, expected):
    assert round_half_up(value, 2) == expected


def test_extract_report_file_reads_pdf(tmp_path, config):
    pdf = write_report_pdf(tmp_path / "r.pdf", report_lines("08-04-2024", 70))
    record = extract_report_file(pdf, config)

    assert record.date == date(2024, 4, 8)
    assert record.total_stops == 70
    assert record.converted_hours == 2.0
    assert record.source == pdf
