import pytest

from stop_invoicing.numbering import format_invoice_number, next_invoice_number, parse_invoice_number

FMT = "INVOICE #{number}"
START = "INVOICE #040"


def test_parse_invoice_number():
    assert parse_invoice_number("INVOICE #041", FMT) == 41
    assert parse_invoice_number("", FMT) is None
    assert parse_invoice_number(None, FMT) is None
    assert parse_invoice_number("Factuur 12", FMT) is None


def test_next_number_increments_and_pads():
    assert next_invoice_number("INVOICE #041", START, FMT) == "INVOICE #042"
    assert next_invoice_number("INVOICE #009", START, FMT) == "INVOICE #010"
    assert next_invoice_number("INVOICE #999", START, FMT) == "INVOICE #1000"


@pytest.mark.parametrize("last_ref", [None, "", "garbage", "INVOICE #"])
def test_absent_or_malformed_ref_returns_start(last_ref):
    assert next_invoice_number(last_ref, START, FMT) == START


def test_next_number_is_strictly_monotonic():
    ref = START
    for _ in range(25):
        following = next_invoice_number(ref, START, FMT)
        assert parse_invoice_number(following, FMT) == parse_invoice_number(ref, FMT) + 1
        ref = following


def test_format_with_suffix_and_regex_characters():
    fmt = "INV-{number}/2024 (NL)"
    assert format_invoice_number(7, fmt) == "INV-007/2024 (NL)"
    assert next_invoice_number("INV-007/2024 (NL)", "INV-001/2024 (NL)", fmt) == "INV-008/2024 (NL)"
