"""
Unit tests for portal record normalization.
"""

import json

import pytest

from service_portal.app.domain.records import (
    HeiRecord,
    ProgramRecord,
    natural_key,
    normalize_payload,
    sort_institutions,
    unique_texts,
)


class TestNormalizePayload:
    """Test cases for normalize_payload."""

    def test_list_passes_through(self):
        rows = [{"instCode": "1"}]
        assert normalize_payload(rows) is rows

    def test_array_prefix_is_unwrapped(self):
        rows = [{"instCode": "12001", "instName": "NDU"}]
        body = "Array" + json.dumps(rows)

        assert body.startswith("Array[")
        assert normalize_payload(body) == rows

    def test_array_prefix_with_invalid_json_is_no_data(self):
        assert normalize_payload("Array[{not json") is None

    def test_array_prefix_from_bytes_with_bom(self):
        body = ("\ufeffArray" + json.dumps([{"a": 1}])).encode("utf-8")
        assert normalize_payload(body) == [{"a": 1}]

    @pytest.mark.parametrize("value", [None, {"data": []}, 42, "plain text", "", "[1, 2]"])
    def test_non_list_values_are_no_data(self, value):
        assert normalize_payload(value) is None


class TestHelpers:
    """Test cases for text and ordering helpers."""

    def test_unique_texts_trims_drops_blanks_and_keeps_first_seen_order(self):
        assert unique_texts([" BSIT", "BSBA", None, "", "BSIT ", "  ", 7]) == ["BSIT", "BSBA", "7"]

    def test_natural_key_orders_numbers_numerically_and_ignores_case(self):
        names = ["hei 10", "HEI 2", "Hei 1"]
        assert sorted(names, key=natural_key) == ["Hei 1", "HEI 2", "hei 10"]

    def test_natural_key_treats_superscript_digits_as_text(self):
        names = ["Campus 2\u00b2", "Campus 10", "Beta"]
        assert sorted(names, key=natural_key) == ["Beta", "Campus 2\u00b2", "Campus 10"]


class TestHeiRecord:
    """Test cases for HeiRecord."""

    def test_from_row_requires_code_and_name(self):
        assert HeiRecord.from_row({"instCode": " ", "instName": "X"}) is None
        assert HeiRecord.from_row({"instCode": "1", "instName": None}) is None
        assert HeiRecord.from_row("not a row") is None

    def test_from_row_trims_and_keeps_extra_directory_fields(self):
        record = HeiRecord.from_row({
            "instCode": " 12001 ",
            "instName": "Notre Dame University ",
            "province": "Cotabato",
            "xCoordinate": 124.2,
            "unrelated": "dropped",
        })

        assert record.inst_code == "12001"
        assert record.inst_name == "Notre Dame University"
        assert record.province == "Cotabato"
        assert record.x_coordinate == 124.2
        assert "unrelated" not in record.to_dict()

    def test_to_dict_round_trips_through_from_dict(self):
        record = HeiRecord(inst_code="1", inst_name="A", status="Active")
        assert HeiRecord.from_dict(record.to_dict()) == record

    def test_sort_institutions_is_case_insensitive(self):
        records = [HeiRecord("B", "beta"), HeiRecord("A", "Alpha")]
        assert [r.inst_code for r in sort_institutions(records)] == ["A", "B"]


class TestProgramRecord:
    """Test cases for ProgramRecord."""

    def test_accessors_trim_and_default_to_empty(self):
        record = ProgramRecord(raw={"programName": " BSIT ", "majorName": None})
        assert record.program_name == "BSIT"
        assert record.major_name == ""

    def test_from_rows_skips_non_mapping_rows_and_keeps_extra_fields(self):
        records = ProgramRecord.from_rows([{"programName": "BSIT", "permit_4thyr": "x.pdf"}, "junk", None])

        assert len(records) == 1
        assert records[0].to_dict() == {"programName": "BSIT", "permit_4thyr": "x.pdf"}
