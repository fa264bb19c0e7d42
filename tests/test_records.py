"""Tests for canonical records and value normalization.

Tests cover:
- Currency parsing across rupee encodings and grouping styles
- Integer extraction from card text
- Attribute and class-variant rules
- RecordSet keys, duplicates and relabeling
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from records import (
    CanonicalRecord,
    FieldRule,
    Priority,
    RecordSet,
    RenderStatus,
    apply_rule,
    as_number,
    attribute_flag,
    classify_priority,
    collapse_whitespace,
    format_compact_inr,
    parse_currency,
    parse_integer,
    sentinel_for,
)


class TestParseCurrency:
    """Tests for parse_currency."""

    @pytest.mark.parametrize("text", ["₹15,00,000", "1500000", "15,00,000.00", "₹ 1,500,000", "Rs. 15,00,000"])
    def test_lakh_and_western_grouping_agree(self, text: str) -> None:
        """Indian and western digit grouping parse to the same amount."""
        assert parse_currency(text) == Decimal("1500000")

    def test_crore_literal_is_not_fifteen_lakh(self) -> None:
        """"₹1,50,00,000" is 1.5 crore, not 15 lakh."""
        assert parse_currency("₹1,50,00,000") == Decimal("15000000")
        assert parse_currency("₹1,50,00,000") != parse_currency("1500000")

    @pytest.mark.parametrize("text", ["&#x20B9;1,234.50", "&#8377; 1,234.50", "â¹1,234.50", "Ã¢âÂ¹ 1,234.50"])
    def test_encoded_rupee_sign_does_not_leak_digits(self, text: str) -> None:
        """HTML entities and mojibake for the rupee sign are stripped before parsing."""
        assert parse_currency(text) == Decimal("1234.50")

    def test_negative_amount(self) -> None:
        """A leading minus survives the currency sign."""
        assert parse_currency("-₹ 250.75") == Decimal("-250.75")

    def test_no_digits_is_none(self) -> None:
        """Text without digits is a missing amount, not zero."""
        assert parse_currency("N/A") is None
        assert parse_currency(None) is None

    def test_numbers_pass_through(self) -> None:
        """Numeric API values become Decimals without float noise."""
        assert parse_currency(150000.5) == Decimal("150000.5")
        assert parse_currency(42) == Decimal(42)


class TestParseInteger:
    """Tests for parse_integer."""

    def test_first_number_with_grouping(self) -> None:
        """Grouping commas are part of the number."""
        assert parse_integer("1,500 cases") == 1500

    def test_label_prefix(self) -> None:
        """Leading text is skipped."""
        assert parse_integer("Active: 42") == 42

    def test_empty_defaults_to_zero(self) -> None:
        """Missing digits degrade to 0."""
        assert parse_integer("") == 0
        assert parse_integer(None) == 0

    def test_ints_pass_through(self) -> None:
        """Ints from the API are kept as is."""
        assert parse_integer(7) == 7


class TestRules:
    """Tests for attribute, class-variant and sentinel rules."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, False), ("", True), ("disabled", True), ("true", True), ("false", True), (" FALSE ", True)],
    )
    def test_attribute_flag(self, value: str | None, expected: bool) -> None:
        """A present attribute is set whatever its value."""
        assert attribute_flag(value) is expected

    def test_classify_priority(self) -> None:
        """Priority comes from the priority--* class token."""
        assert classify_priority("chip priority--high") == Priority.HIGH
        assert classify_priority("priority--low") == Priority.LOW
        assert classify_priority("chip") == Priority.UNKNOWN
        assert classify_priority(None) == Priority.UNKNOWN

    def test_apply_rule_class_variant_defaults_to_priority(self) -> None:
        """CLASS_VARIANT without explicit variants classifies priority."""
        assert apply_rule(FieldRule.CLASS_VARIANT, "priority--medium") == Priority.MEDIUM

    def test_apply_rule_trimmed_text(self) -> None:
        """Whitespace runs collapse to single spaces."""
        assert apply_rule(FieldRule.TRIMMED_TEXT, "  Re-Opened\n  Cases ") == "Re-Opened Cases"
        assert collapse_whitespace(None) == ""

    def test_sentinels(self) -> None:
        """Every rule has a typed sentinel for missing fields."""
        assert sentinel_for(FieldRule.INTEGER) == 0
        assert sentinel_for(FieldRule.TRIMMED_TEXT) == ""
        assert sentinel_for(FieldRule.CURRENCY_DECIMAL) is None
        assert sentinel_for(FieldRule.BOOLEAN_FROM_ATTRIBUTE) is False

    def test_as_number_only_for_numeric_text(self) -> None:
        """Text with words is not treated as a number."""
        assert as_number("₹ 1,500") == Decimal("1500")
        assert as_number("Open") is None
        assert as_number("₹ 1.5L") is None
        assert as_number(True) is None


class TestFormatCompactInr:
    """Tests for format_compact_inr."""

    def test_lakhs(self) -> None:
        """Amounts of a lakh and above render as lakhs with one decimal."""
        assert format_compact_inr(150000) == "₹ 1.5L"
        assert format_compact_inr("₹15,00,000") == "₹ 15.0L"

    def test_small_amounts(self) -> None:
        """Smaller amounts keep western grouping and drop trailing zeros."""
        assert format_compact_inr(12345) == "₹ 12,345"
        assert format_compact_inr("12.50") == "₹ 12.5"

    def test_missing(self) -> None:
        """Missing amounts render as a dash."""
        assert format_compact_inr(None) == "—"


class TestRecordSet:
    """Tests for CanonicalRecord and RecordSet."""

    def test_record_is_immutable_mapping(self) -> None:
        """replace returns a new record and leaves the original alone."""
        record = CanonicalRecord(label="Active Cases", value=3)
        updated = record.replace(value=4)
        assert record["value"] == 3
        assert updated["value"] == 4
        with pytest.raises(TypeError):
            record["value"] = 5  # type: ignore[index]

    def test_to_dict_is_json_friendly(self) -> None:
        """Enums and Decimals serialize to plain values."""
        record = CanonicalRecord(priority=Priority.HIGH, amount=Decimal("10.50"))
        assert record.to_dict() == {"priority": "high", "amount": "10.50"}

    def test_duplicate_keys_are_reported(self) -> None:
        """The first record for a key wins and the duplicate is listed."""
        records = RecordSet(
            [CanonicalRecord(id="A", v=1), CanonicalRecord(id="B", v=2), CanonicalRecord(id="A", v=3)],
            "id",
        )
        assert len(records) == 3
        assert records.keys() == ["A", "B"]
        assert records.duplicate_keys == ["A"]
        assert records.get("A")["v"] == 1

    def test_status_defaults(self) -> None:
        """An empty set is EMPTY unless told otherwise."""
        assert RecordSet([], "id").status == RenderStatus.EMPTY
        assert RecordSet([], "id", status=RenderStatus.NOT_LOADED).is_empty_state is False
        assert RecordSet([CanonicalRecord(id=1)], "id").status == RenderStatus.POPULATED

    def test_relabel_ignores_case_and_spacing(self) -> None:
        """Rendered labels map onto canonical labels."""
        ui = RecordSet.from_mapping({"ACTIVE  CASES": 3, "Closed Cases": 1, "Other": 9})
        renamed = ui.relabel({"active cases": "Active Cases", "CLOSED CASES": "Closed Cases"})
        assert renamed.keys() == ["Active Cases", "Closed Cases", "Other"]
        assert renamed.values("value") == {"Active Cases": 3, "Closed Cases": 1, "Other": 9}
