"""
Unit tests for merchant, date and amount normalization.
"""
import os
import sys
import unittest
from datetime import date, datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from normalizer.amount_parser import format_currency, parse_amount, parse_flag
from normalizer.date_parser import parse_date, parse_timestamp
from normalizer.merchant import (
    NormalizationCache,
    normalize_merchant,
    normalize_text,
    strip_punctuation,
)


SAMPLES = [
    "McDonald's #1234",
    "MCDONALDS",
    "STARBUCKS #123",
    "Starbucks Coffee 0456 VISA DEBIT",
    "Tim Hortons #0456 TORONTO ON",
    "POS PURCHASE COSTCO WHOLESALE #512",
    "ACME PLUMBING (416) 555-0199",
    "PAYMENT 01/15/2024 NETFLIX",
    "UBER $12.50 ref#998877",
    "ref 123 pos 45",
    "pos pos purchase",
    "Café Olé ☕",
    "   ",
    "",
]


class TestNormalizeMerchant(unittest.TestCase):
    """Tests for merchant normalization."""

    def test_mcdonalds_variants(self):
        """Apostrophe and store number variants collapse to one brand."""
        self.assertEqual(normalize_merchant("McDonald's #1234").normalized, "mcdonalds")
        self.assertEqual(normalize_merchant("MCDONALDS").normalized, "mcdonalds")

    def test_raw_is_trimmed(self):
        """Test the raw name is trimmed."""
        result = normalize_merchant("  STARBUCKS #123 ")
        self.assertEqual(result.raw, "STARBUCKS #123")
        self.assertEqual(result.normalized, "starbucks")

    def test_brand_canonicalization(self):
        """Test brand canonicalization."""
        self.assertEqual(normalize_text("Tim Hortons #0456"), "timhortons")
        self.assertEqual(normalize_text("Starbucks Coffee 0456 VISA DEBIT"), "starbucks")
        self.assertEqual(normalize_text("THE HOME DEPOT #7001"), "the homedepot")
        self.assertEqual(normalize_text("COSTCO WHOLESALE #512"), "costco")

    def test_payment_rail_noise_removed(self):
        """Test payment rail noise removal."""
        self.assertEqual(normalize_text("VISA DEBIT PURCHASE Loblaws"), "loblaws")
        self.assertEqual(normalize_text("INTERAC POS Metro"), "metro")

    def test_noise_only_on_word_boundaries(self):
        """'pos' inside a word is kept."""
        self.assertEqual(normalize_text("POSTMATES"), "postmates")
        self.assertEqual(normalize_text("CREDITVALLEY FARM"), "creditvalley farm")

    def test_variable_tokens_removed(self):
        """Test variable tokens are removed."""
        self.assertEqual(normalize_text("ACME PLUMBING (416) 555-0199"), "acme plumbing")
        self.assertEqual(normalize_text("PAYMENT 01/15/2024 NETFLIX"), "payment netflix")
        self.assertEqual(normalize_text("UBER $12.50"), "uber")
        self.assertEqual(normalize_text("HYDRO ONE ref#998877"), "hydro one")

    def test_single_digits_kept(self):
        """Test single digits are kept."""
        self.assertEqual(normalize_text("7-ELEVEN"), "7 eleven")

    def test_empty_and_non_string(self):
        """Test empty and non-string input."""
        self.assertEqual(normalize_merchant(None).normalized, "")
        self.assertEqual(normalize_merchant("").normalized, "")
        self.assertEqual(normalize_merchant("   ").normalized, "")
        self.assertEqual(normalize_merchant(42).normalized, "")

    def test_idempotent(self):
        """Normalizing a normalized string changes nothing."""
        for sample in SAMPLES:
            once = normalize_merchant(sample).normalized
            twice = normalize_merchant(once).normalized
            self.assertEqual(once, twice, f"not idempotent for {sample!r}")

    def test_noise_exposed_by_removal(self):
        """Noise revealed by removing other tokens is removed too."""
        self.assertEqual(normalize_text("ref 123 pos 45"), "")

    def test_strip_punctuation_keeps_digits(self):
        """Test punctuation stripping keeps digits."""
        self.assertEqual(strip_punctuation("STARBUCKS #123"), "starbucks 123")


class TestNormalizationCache(unittest.TestCase):
    """Tests for the per-batch normalization memo."""

    def test_memoizes_by_raw_string(self):
        """Test the cache memoizes by raw string."""
        cache = NormalizationCache()
        self.assertEqual(cache.normalize("STARBUCKS #12"), "starbucks")
        self.assertEqual(cache.normalize("STARBUCKS #12"), "starbucks")
        self.assertEqual(len(cache), 1)

    def test_non_string(self):
        """Test non-string input is not cached."""
        cache = NormalizationCache()
        self.assertEqual(cache.normalize(None), "")
        self.assertEqual(len(cache), 0)


class TestDateParser(unittest.TestCase):
    """Tests for date parsing."""

    def test_formats(self):
        """Test supported date formats."""
        self.assertEqual(parse_date("2024-01-15"), date(2024, 1, 15))
        self.assertEqual(parse_date("01/15/2024"), date(2024, 1, 15))
        self.assertEqual(parse_date("Jan 15, 2024"), date(2024, 1, 15))
        self.assertEqual(parse_date("20240115"), date(2024, 1, 15))

    def test_iso_timestamp_falls_back_to_dateutil(self):
        """Test ISO timestamps parse through dateutil."""
        self.assertEqual(parse_date("2024-01-15T10:30:00Z"), date(2024, 1, 15))

    def test_passthrough_and_invalid(self):
        """Test date objects pass through and bad input gives None."""
        self.assertEqual(parse_date(date(2024, 2, 2)), date(2024, 2, 2))
        self.assertEqual(parse_date(datetime(2024, 2, 2, 9, 0)), date(2024, 2, 2))
        self.assertIsNone(parse_date(None))
        self.assertIsNone(parse_date(""))
        self.assertIsNone(parse_date("not a date"))

    def test_timestamps_are_utc_aware(self):
        """Test timestamps are UTC aware."""
        ts = parse_timestamp("2024-03-01T12:00:00")
        self.assertEqual(ts, datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(parse_timestamp("2024-03-01T12:00:00Z").tzinfo.utcoffset(None).total_seconds(), 0)
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp("garbage"))


class TestAmountParser(unittest.TestCase):
    """Tests for amount and flag parsing."""

    def test_amounts(self):
        """Test amount parsing."""
        self.assertEqual(parse_amount("$1,234.56"), 1234.56)
        self.assertEqual(parse_amount("(5.00)"), -5.0)
        self.assertEqual(parse_amount("-12.50"), -12.5)
        self.assertEqual(parse_amount("$-7"), -7.0)
        self.assertEqual(parse_amount("100 DR"), -100.0)
        self.assertEqual(parse_amount(3), 3.0)
        self.assertEqual(parse_amount(None), 0.0)
        self.assertEqual(parse_amount("abc"), 0.0)

    def test_flags(self):
        """Test flag parsing."""
        for value in (1, True, "1", "true", "TRUE"):
            self.assertTrue(parse_flag(value), value)
        for value in (0, False, "0", "false", "yes", None, ""):
            self.assertFalse(parse_flag(value), value)

    def test_format_currency(self):
        """Test currency formatting."""
        self.assertEqual(format_currency(-1234.5), "-$1,234.50")
        self.assertEqual(format_currency(None), "")


if __name__ == '__main__':
    unittest.main()
