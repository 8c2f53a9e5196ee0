import unittest
from datetime import datetime, timezone

from session_insights.date_utils import epoch_ms_to_date, to_epoch_ms


class DateUtilsTests(unittest.TestCase):
    def test_parses_iso_strings(self) -> None:
        expected = int(datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc).timestamp() * 1000)
        self.assertEqual(to_epoch_ms("2024-01-01T10:00:00Z"), expected)
        self.assertEqual(to_epoch_ms("2024-01-01T10:00:00+00:00"), expected)
        self.assertEqual(to_epoch_ms("2024-01-01T10:00:00"), expected)
        self.assertEqual(to_epoch_ms("2024-01-01T11:00:00+01:00"), expected)

    def test_accepts_epoch_milliseconds(self) -> None:
        self.assertEqual(to_epoch_ms(1704103200000), 1704103200000)

    def test_rejects_malformed_values(self) -> None:
        for value in ("", "yesterday", None, True, {}, [], float("nan"), -5, "1900-01-01T00:00:00Z", "9999-12-31T23:30:00Z"):
            with self.subTest(value=value):
                self.assertIsNone(to_epoch_ms(value))

    def test_epoch_to_utc_date(self) -> None:
        self.assertEqual(epoch_ms_to_date(to_epoch_ms("2024-03-05T23:30:00Z")), "2024-03-05")


if __name__ == "__main__":
    unittest.main()
