"""Tests for phone normalization and lookup keys."""

from call_center.core.phone import (
    extract_country_code,
    format_phone_number_for_retell,
    normalize_phone_number,
    phone_lookup_candidates,
)


class TestNormalize:
    def test_strips_formatting(self):
        assert normalize_phone_number("+1 (555) 123-4567") == "+15551234567"

    def test_empty(self):
        assert normalize_phone_number("") == ""


class TestLookupCandidates:
    def test_exact_first_then_variants(self):
        assert phone_lookup_candidates("+1 (555) 123-4567") == [
            "+1 (555) 123-4567",
            "+15551234567",
            "1 (555) 123-4567",
            "15551234567",
        ]

    def test_no_duplicates_for_clean_number(self):
        assert phone_lookup_candidates("+15551234567") == ["+15551234567", "15551234567"]

    def test_adds_plus_when_missing(self):
        assert phone_lookup_candidates("15551234567") == ["15551234567", "+15551234567"]

    def test_empty_input(self):
        assert phone_lookup_candidates("") == []


class TestCountryCode:
    def test_known_prefixes(self):
        assert extract_country_code("+447700900123") == "GB"
        assert extract_country_code("+919876543210") == "IN"

    def test_defaults_to_us(self):
        assert extract_country_code("5551234567") == "US"

    def test_format_for_retell(self):
        assert format_phone_number_for_retell("+44 7700 900123") == {
            "number": "+447700900123",
            "country_code": "GB",
        }
