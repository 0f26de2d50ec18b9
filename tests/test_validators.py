"""
Tests for shared validation helpers
"""

import unittest
from datetime import date

from clinic_booking.shared.validators import (
    minutes_to_time,
    parse_date,
    time_to_minutes,
    validate_phone,
    validate_time_string,
)


class TestValidatePhone(unittest.TestCase):
    def test_local_numbers_get_default_country_code(self):
        self.assertEqual(validate_phone("98765 43210"), "+919876543210")
        self.assertEqual(validate_phone("098765-43210"), "+919876543210")

    def test_international_numbers_kept(self):
        self.assertEqual(validate_phone("+1 (415) 523-8886"), "+14155238886")
        self.assertEqual(validate_phone("+91 98765 43210"), "+919876543210")

    def test_other_country_code(self):
        self.assertEqual(validate_phone("4155238886", country_code="1"), "+14155238886")

    def test_invalid(self):
        for value in ("12345", "+1234567890123456", "phone"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    validate_phone(value)

    def test_empty_passes_through(self):
        self.assertIsNone(validate_phone(None))
        self.assertEqual(validate_phone(""), "")


class TestTimesAndDates(unittest.TestCase):
    def test_validate_time_string(self):
        self.assertEqual(validate_time_string("09:30"), "09:30")
        self.assertIsNone(validate_time_string(None))
        for value in ("9:30", "24:00", "12:60", "0930"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    validate_time_string(value)

    def test_parse_date(self):
        self.assertEqual(parse_date("2026-03-03"), date(2026, 3, 3))
        with self.assertRaises(ValueError):
            parse_date("2026-02-30")
        with self.assertRaises(ValueError):
            parse_date(None)

    def test_minute_conversions(self):
        self.assertEqual(time_to_minutes("00:00"), 0)
        self.assertEqual(time_to_minutes("13:45"), 825)
        self.assertEqual(minutes_to_time(825), "13:45")
        self.assertEqual(minutes_to_time(540), "09:00")
