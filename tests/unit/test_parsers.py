"""
Unit tests for the source parsers.

Covers delimited, fixed-width, JSON and IIF content plus the
per-format dispatch in parse_source.
"""

from decimal import Decimal
import pytest

from models.import_batch import SourceFormat
from parsers.delimited_parser import (
    parse_delimited,
    parse_fixed_width,
    sniff_delimiter,
    infer_column_starts,
    strip_bom,
)
from parsers.json_parser import parse_json, extract_rows
from parsers.iif_parser import parse_iif, iif_headers, is_iif_marker_line, IIF_TYPE_FIELD
from parsers.source_parser import parse_source, resolve_delimiter
from exceptions import ImportParseError


IIF_BILL = (
    "!TRNS\tTRNSTYPE\tDATE\tACCNT\tNAME\tAMOUNT\n"
    "!SPL\tTRNSTYPE\tDATE\tACCNT\tNAME\tAMOUNT\n"
    "!ENDTRNS\n"
    "TRNS\tBILL\t01/15/2024\tAccounts Payable\tAcme Supply\t-100.00\n"
    "SPL\tBILL\t01/15/2024\tSupplies\tAcme Supply\t100.00\n"
    "ENDTRNS\n"
)

FIXED_WIDTH = (
    "Vendor      Amount   Date\n"
    "Acme        100.00   2024-01-15\n"
    "Birch Lbr   250.50   2024-01-16\n"
)


# ===================
# DELIMITED TESTS
# ===================

class TestSniffDelimiter:
    def test_comma(self):
        assert sniff_delimiter(["a,b,c", "1,2,3"]) == ","

    def test_tab(self):
        assert sniff_delimiter(["a\tb", "1\t2"]) == "\t"

    def test_pipe_beats_inconsistent_comma(self):
        lines = ["name|memo", "Acme|paid, thanks", "Birch|net 30"]
        assert sniff_delimiter(lines) == "|"

    def test_no_candidate(self):
        assert sniff_delimiter(["just one column"]) is None
        assert sniff_delimiter([]) is None


class TestParseDelimited:
    """Tests for parse_delimited()."""

    def test_parses_rows_in_order(self, invoice_csv):
        rows = parse_delimited(invoice_csv, ",")
        assert len(rows) == 3
        assert rows[0] == {
            "Invoice Number": "INV-001",
            "Invoice Date": "01/15/2024",
            "Vendor": "Acme Supply",
            "Amount": "100.00",
        }
        assert [r["Invoice Number"] for r in rows] == ["INV-001", "INV-002", "INV-003"]

    def test_quoted_delimiter_kept_in_value(self):
        rows = parse_delimited('Name,Memo\n"Acme","Paid, in full"\n', ",")
        assert rows == [{"Name": "Acme", "Memo": "Paid, in full"}]

    def test_short_rows_padded(self):
        rows = parse_delimited("a,b,c\n1,2\n", ",")
        assert rows == [{"a": "1", "b": "2", "c": ""}]

    def test_long_rows_truncated(self):
        rows = parse_delimited("a,b\n1,2\n3,4,5,6\n", ",")
        assert rows[1] == {"a": "3", "b": "4"}

    def test_values_and_headers_trimmed(self):
        rows = parse_delimited(" a , b \n 1 , 2 \n", ",")
        assert rows == [{"a": "1", "b": "2"}]

    def test_blank_header_named_by_position(self):
        rows = parse_delimited("a,,c\n1,2,3\n", ",")
        assert rows == [{"a": "1", "column_2": "2", "c": "3"}]

    def test_blank_lines_skipped(self):
        rows = parse_delimited("a,b\n1,2\n\n3,4\n", ",")
        assert len(rows) == 2

    def test_bom_stripped(self):
        rows = parse_delimited("\ufeffa,b\n1,2\n", ",")
        assert list(rows[0]) == ["a", "b"]
        assert strip_bom("\ufeffx") == "x"

    def test_empty_content(self):
        assert parse_delimited("", ",") == []
        assert parse_delimited("   \n", ",") == []

    def test_header_only(self):
        assert parse_delimited("a,b,c\n", ",") == []


# ===================
# FIXED-WIDTH TESTS
# ===================

class TestParseFixedWidth:
    def test_column_starts_from_header(self):
        assert infer_column_starts("Vendor      Amount   Date") == [0, 12, 21]

    def test_inferred_columns(self):
        rows = parse_fixed_width(FIXED_WIDTH)
        assert rows == [
            {"Vendor": "Acme", "Amount": "100.00", "Date": "2024-01-15"},
            {"Vendor": "Birch Lbr", "Amount": "250.50", "Date": "2024-01-16"},
        ]

    def test_explicit_widths(self):
        rows = parse_fixed_width(FIXED_WIDTH, column_widths=[12, 9, 10])
        assert rows[1]["Vendor"] == "Birch Lbr"
        assert rows[1]["Date"] == "2024-01-16"

    def test_empty_content(self):
        assert parse_fixed_width("") == []


# ===================
# JSON TESTS
# ===================

class TestParseJson:
    """Tests for parse_json()."""

    def test_array_of_objects(self):
        rows = parse_json('[{"id": 1}, {"id": 2}]')
        assert rows == [{"id": 1}, {"id": 2}]

    def test_floats_kept_exact(self):
        rows = parse_json('[{"amount": 100.10}]')
        assert rows[0]["amount"] == Decimal("100.10")

    def test_envelope_keys(self):
        assert parse_json('{"data": [{"a": 1}]}') == [{"a": 1}]
        assert parse_json('{"records": [{"a": 1}]}') == [{"a": 1}]

    def test_single_object_is_one_row(self):
        assert parse_json('{"a": 1, "b": 2}') == [{"a": 1, "b": 2}]

    def test_scalar_entries_wrapped(self):
        assert extract_rows([1, {"a": 2}]) == [{"value": 1}, {"a": 2}]

    def test_invalid_json_raises(self):
        with pytest.raises(ImportParseError) as exc_info:
            parse_json('[{"a": 1},')
        assert exc_info.value.code == "IMPORT_PARSE_ERROR"
        assert "line" in exc_info.value.details

    def test_oversized_number_raises_parse_error(self):
        with pytest.raises(ImportParseError) as exc_info:
            parse_json("[" + "1" * 5000 + "]")
        assert exc_info.value.code == "IMPORT_PARSE_ERROR"

    def test_empty_content(self):
        assert parse_json("  ") == []


# ===================
# IIF TESTS
# ===================

class TestParseIif:
    """Tests for the QuickBooks IIF parser."""

    def test_rows_tagged_with_type(self):
        rows = parse_iif(IIF_BILL)
        assert len(rows) == 2
        assert rows[0][IIF_TYPE_FIELD] == "TRNS"
        assert rows[0]["ACCNT"] == "Accounts Payable"
        assert rows[0]["AMOUNT"] == "-100.00"
        assert rows[1][IIF_TYPE_FIELD] == "SPL"
        assert rows[1]["ACCNT"] == "Supplies"

    def test_endtrns_carries_no_row(self):
        rows = parse_iif(IIF_BILL)
        assert all(r[IIF_TYPE_FIELD] != "ENDTRNS" for r in rows)

    def test_short_data_line_padded(self):
        rows = parse_iif("!ACCNT\tNAME\tACCNTTYPE\nACCNT\tChecking\n")
        assert rows == [{IIF_TYPE_FIELD: "ACCNT", "NAME": "Checking", "ACCNTTYPE": ""}]

    def test_headers_of_first_type(self):
        assert iif_headers(IIF_BILL) == ["TRNSTYPE", "DATE", "ACCNT", "NAME", "AMOUNT"]

    def test_marker_lines(self):
        assert is_iif_marker_line("!TRNS\tDATE") is True
        assert is_iif_marker_line("!endtrns") is True
        assert is_iif_marker_line("TRNS\tBILL") is False


# ===================
# DISPATCH TESTS
# ===================

class TestParseSource:
    def test_csv_values_are_text(self, invoice_csv):
        rows = parse_source(invoice_csv, SourceFormat.CSV)
        assert rows[0]["Amount"] == "100.00"

    def test_tsv_uses_tab(self):
        rows = parse_source("a\tb\n1\t2\n", SourceFormat.TSV)
        assert rows == [{"a": "1", "b": "2"}]

    def test_vendor_format_is_delimited(self):
        rows = parse_source("Date;Num;Amount\n01/15/2024;1001;50\n", SourceFormat.QB)
        assert rows == [{"Date": "01/15/2024", "Num": "1001", "Amount": "50"}]

    def test_delimiter_override(self):
        assert resolve_delimiter("a,b|c\n", SourceFormat.CSV, delimiter="|") == "|"
        assert resolve_delimiter("abc\n", SourceFormat.CSV) == ","

    def test_json_values_coerced(self):
        rows = parse_source('[{"amount": 10.5, "qty": 3, "paid": true, "memo": null}]', SourceFormat.JSON)
        assert rows == [{
            "amount": Decimal("10.5"),
            "qty": Decimal(3),
            "paid": "true",
            "memo": None,
        }]

    def test_iif(self):
        rows = parse_source(IIF_BILL, SourceFormat.IIF)
        assert len(rows) == 2

    def test_fixed(self):
        rows = parse_source(FIXED_WIDTH, SourceFormat.FIXED)
        assert rows[0]["Vendor"] == "Acme"
