import pytest

from bookkeeper.categorization.normalizer import UNKNOWN_MERCHANT, normalize_merchant


@pytest.mark.unit
class TestNormalizeMerchant:

    @pytest.mark.parametrize("raw, expected", [
        ("SQ *Blue Bottle Coffee #0123 Oakland CA", "BLUE BOTTLE COFFEE OAKLAND"),
        ("POS DEBIT STARBUCKS 12345 SEATTLE WA", "STARBUCKS SEATTLE"),
        ("Trader Joe's #552", "TRADER JOES"),
        ("PG&E WEB ONLINE", "PGE WEB ONLINE"),
        ("ACME PROPERTY MGMT", "ACME PROPERTY MGMT"),
        ("Acme Holdings LLC", "ACME HOLDINGS"),
        ("  netflix   monthly  ", "NETFLIX MONTHLY"),
    ])
    def test_strips_processor_noise(self, raw: str, expected: str):
        assert normalize_merchant(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input_is_unknown(self, raw):
        assert normalize_merchant(raw) == UNKNOWN_MERCHANT

    @pytest.mark.parametrize("raw", [
        "SQ *Blue Bottle Coffee #0123 Oakland CA",
        "TST* JOE'S PIZZA 4412 NY",
        "PAYPAL *SPOTIFY 402-935-7733",
        "ACME PROPERTY MGMT",
    ])
    def test_idempotent(self, raw: str):
        # Arrange
        once = normalize_merchant(raw)

        # Act
        twice = normalize_merchant(once)

        # Assert
        assert twice == once

    def test_single_remaining_token_is_kept(self):
        """A lone legal suffix or number isn't stripped down to nothing"""
        assert normalize_merchant("LLC") == "LLC"

    def test_too_short_result_falls_back_to_cleaned_input(self):
        assert normalize_merchant("#1") == "#1"

    def test_deterministic(self):
        raw = "CHECKCARD 0115 SHELL OIL 57444 HOUSTON TX"
        assert normalize_merchant(raw) == normalize_merchant(raw)
