"""Tests for presence_board.bitset: vacation membership transport strings."""

from dataclasses import dataclass
from datetime import date, datetime

import pytest

from presence_board.bitset import (
    coerce_visible_flag,
    date_range,
    decode_members_bits,
    encode_members_bits,
    normalize_date,
    roster_order,
    split_parts,
    summarize_members,
)


@dataclass
class R:
    id: str
    name: str
    group: str = ""


ROSTER = [R("m1", "Alice"), R("m2", "Bob"), R("m3", "Carol")]


def decode(bits, target, start, end, roster=ROSTER):
    return decode_members_bits(bits, target, start, end, roster)


class TestNormalizeDate:
    def test_accepts_common_shapes(self):
        assert normalize_date("2024-06-03") == "2024-06-03"
        assert normalize_date("2024/6/3") == "2024-06-03"
        assert normalize_date("2024-06-03T09:30:00Z") == "2024-06-03"
        assert normalize_date(date(2024, 6, 3)) == "2024-06-03"
        assert normalize_date(datetime(2024, 6, 3, 23, 59)) == "2024-06-03"

    def test_rejects_garbage(self):
        assert normalize_date("") == ""
        assert normalize_date(None) == ""
        assert normalize_date("tomorrow") == ""
        assert normalize_date("2024-02-30") == ""

    def test_date_range_is_inclusive(self):
        assert date_range("2024-02-28", "2024-03-01") == ["2024-02-28", "2024-02-29", "2024-03-01"]
        assert date_range("2024-03-02", "2024-03-01") == []


class TestDecode:
    def test_single_day_example(self):
        result = decode("110", "2024-06-03", "2024-06-03", "2024-06-03")
        assert result.member_ids == ["m1", "m2"]
        assert result.member_names == "Alice、Bob"
        assert result.to_wire() == {"memberIds": ["m1", "m2"], "memberNames": "Alice、Bob"}

    def test_positional_segments_per_day(self):
        bits = "100;010;001"
        assert decode(bits, "2024-06-03", "2024-06-03", "2024-06-05").member_ids == ["m1"]
        assert decode(bits, "2024-06-04", "2024-06-03", "2024-06-05").member_ids == ["m2"]
        assert decode(bits, "2024-06-05", "2024-06-03", "2024-06-05").member_ids == ["m3"]

    def test_date_prefixed_segments(self):
        bits = " 2024-06-03:100 ; 2024-06-04:011 ;"
        assert decode(bits, "2024-06-04", "2024-06-03", "2024-06-04").member_ids == ["m2", "m3"]

    def test_single_bitstring_applies_to_whole_range(self):
        assert decode("011", "2024-06-05", "2024-06-03", "2024-06-07").member_ids == ["m2", "m3"]

    def test_range_extended_after_bits_written_falls_back(self):
        # two segments written for a range that later grew to four days
        assert decode("100;010", "2024-06-06", "2024-06-03", "2024-06-06").member_ids == []
        prefixed = "2024-06-03:100;2024-06-06:001"
        assert decode(prefixed, "2024-06-06", "2024-06-03", "2024-06-08").member_ids == ["m3"]

    def test_missing_range_uses_part_matching(self):
        assert decode("2024-06-03:110;2024-06-04:001", "2024-06-04", "", "").member_ids == ["m3"]
        assert decode("101", "2024-06-04", None, None).member_ids == ["m1", "m3"]
        assert decode("101;010", "2024-06-04", None, None).member_ids == []

    def test_target_outside_range(self):
        assert decode("100;010", "2024-07-01", "2024-06-03", "2024-06-04").member_ids == []
        assert decode("111", "2024-07-01", "2024-06-03", "2024-06-04").member_ids == ["m1", "m2", "m3"]

    def test_first_matching_date_wins(self):
        bits = "2024-06-03:100;2024-06-03:001"
        assert decode(bits, "2024-06-03", None, None).member_ids == ["m1"]

    def test_short_bitstring_selects_only_covered_positions(self):
        assert decode("11", "2024-06-03", "2024-06-03", "2024-06-03").member_ids == ["m1", "m2"]

    def test_long_bitstring_never_returns_unknown_ids(self):
        result = decode("1111111", "2024-06-03", "2024-06-03", "2024-06-03")
        assert result.member_ids == ["m1", "m2", "m3"]

    @pytest.mark.parametrize("bits", ["", None, ";;", "abc", "2024-06-03:"])
    def test_degenerate_input_never_raises(self, bits):
        result = decode(bits, "2024-06-03", "2024-06-03", "2024-06-03")
        assert result.member_ids == []

    def test_invalid_target_or_empty_roster(self):
        assert decode("111", "not-a-date", "2024-06-03", "2024-06-03").member_ids == []
        assert decode("111", "2024-06-03", "2024-06-03", "2024-06-03", roster=[]).member_ids == []


class TestEncode:
    def test_uniform_membership_collapses_to_one_bitstring(self):
        ids = [r.id for r in ROSTER]
        assignments = {"2024-06-03": {"m1", "m3"}, "2024-06-04": {"m3", "m1"}}
        assert encode_members_bits(ids, assignments, "2024-06-03", "2024-06-04") == "101"

    def test_varying_membership_emits_segment_per_day(self):
        ids = [r.id for r in ROSTER]
        assignments = {"2024-06-03": ["m1"], "2024-06-05": ["m2"]}
        assert encode_members_bits(ids, assignments, "2024-06-03", "2024-06-05") == "100;000;010"

    def test_explicit_dates(self):
        ids = [r.id for r in ROSTER]
        bits = encode_members_bits(ids, {"2024-06-03": ["m2"]}, "2024-06-03", "2024-06-04", explicit_dates=True)
        assert bits == "2024-06-03:010;2024-06-04:000"

    def test_unknown_member_or_bad_range_raises(self):
        with pytest.raises(ValueError):
            encode_members_bits(["m1"], {"2024-06-03": ["zz"]}, "2024-06-03", "2024-06-03")
        with pytest.raises(ValueError):
            encode_members_bits(["m1"], {}, "2024-06-04", "2024-06-03")

    @pytest.mark.parametrize("explicit", [False, True])
    def test_round_trip_over_range(self, explicit):
        ids = [r.id for r in ROSTER]
        assignments = {
            "2024-06-28": {"m1"},
            "2024-06-29": set(),
            "2024-06-30": {"m2", "m3"},
            "2024-07-01": {"m1", "m2", "m3"},
        }
        bits = encode_members_bits(ids, assignments, "2024-06-28", "2024-07-01", explicit_dates=explicit)
        for day, expected in assignments.items():
            decoded = decode(bits, day, "2024-06-28", "2024-07-01")
            assert set(decoded.member_ids) == expected


class TestRosterHelpers:
    def test_roster_order_groups_by_first_appearance(self):
        members = [R("a", "A", "Sales"), R("b", "B", "Dev"), R("c", "C", "Sales")]
        assert [m.id for m in roster_order(members)] == ["a", "c", "b"]

    def test_split_parts_trims_and_drops_empty(self):
        assert split_parts(" 10 ;; 01 ;") == ["10", "01"]

    def test_summarize_members(self):
        roster = ROSTER + [R("m4", "Dave"), R("m5", "Eve")]
        assert summarize_members("110", roster) == "Alice、Bob"
        assert summarize_members("10000;01111", roster) == "Alice、Bob、Carol ほか2名"
        assert summarize_members("", roster) == ""

    @pytest.mark.parametrize(
        "raw, expected",
        [(True, True), (False, False), (1, True), (0, False), ("yes", True), ("hide", False),
         (" OFF ", False), ("", False), (None, False)],
    )
    def test_coerce_visible_flag(self, raw, expected):
        assert coerce_visible_flag(raw) is expected
