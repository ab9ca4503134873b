"""Tests for monthly aggregation of transaction files."""
import io
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from spendcast.components.data_ingestion import IngestionConfig, aggregate, parse_mdy
from spendcast.exceptions import DataLoadError, ParseError, SchemaError


class TestAggregate(unittest.TestCase):
    """Test aggregate() against files on disk."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, text: str, name: str = "transactions.csv") -> Path:
        path = self.tmp_dir / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_two_months_round_trip(self):
        """Ten daily rows spanning two months give two monthly totals."""
        days = pd.date_range("2023-01-27", periods=10, freq="D")
        lines = ["Date,Amount"] + [f"{d:%m/%d/%Y},{i + 1}" for i, d in enumerate(days)]
        series = aggregate(self._write("\n".join(lines) + "\n"))

        self.assertEqual(list(series.columns), ["Month", "Amount"])
        self.assertEqual(len(series), 2)
        self.assertEqual(series["Month"].tolist(), [pd.Timestamp("2023-01-01"), pd.Timestamp("2023-02-01")])
        self.assertEqual(series["Amount"].tolist(), [15.0, 40.0])

    def test_conservation_and_uniqueness(self):
        """Monthly totals add up to the file total and each month appears once."""
        text = (
            "Date,Amount\n"
            "03/15/2024,10.5\n"
            "01/02/2024,4.25\n"
            "03/01/2024,-2.5\n"
            "12/31/2023,100\n"
            "01/31/2024,0.75\n"
        )
        series = aggregate(self._write(text))

        self.assertAlmostEqual(series["Amount"].sum(), 10.5 + 4.25 - 2.5 + 100 + 0.75)
        self.assertFalse(series["Month"].duplicated().any())
        self.assertTrue(series["Month"].is_monotonic_increasing)
        self.assertEqual(series["Month"].iloc[0], pd.Timestamp("2023-12-01"))
        self.assertEqual(series.loc[series["Month"] == "2024-01-01", "Amount"].item(), 5.0)

    def test_without_header_uses_positional_columns(self):
        series = aggregate(self._write("07/04/2024;20\n07/20/2024;5\n"), has_header=False, delimiter=";")
        self.assertEqual(len(series), 1)
        self.assertEqual(series["Amount"].item(), 25.0)

    def test_extra_columns_and_alternate_layouts(self):
        text = (
            "Description,Date,Amount\n"
            "coffee,7-4-2024,3\n"
            '"rent","July 1, 2024",1000\n'
            "books,08.02.24,12\n"
        )
        series = aggregate(self._write(text))
        self.assertEqual(series["Amount"].tolist(), [1003.0, 12.0])

    def test_custom_column_names(self):
        config = IngestionConfig(date_column="posted", amount_column="value")
        series = aggregate(self._write("posted,value\n02/10/2024,7\n"), config=config)
        self.assertEqual(series["Amount"].item(), 7.0)

    def test_accepts_open_handle(self):
        series = aggregate(io.StringIO("Date,Amount\n05/05/2022,1.5\n"))
        self.assertEqual(series["Month"].item(), pd.Timestamp("2022-05-01"))

    def test_header_only_file_returns_empty_series(self):
        series = aggregate(self._write("Date,Amount\n"))
        self.assertTrue(series.empty)
        self.assertEqual(list(series.columns), ["Month", "Amount"])

    def test_malformed_date_raises(self):
        path = self._write("Date,Amount\n07/04/2024,1\n2024-07-05,2\n")
        with self.assertRaises(ParseError) as ctx:
            aggregate(path)
        self.assertIn("2024-07-05", str(ctx.exception))

    def test_blank_date_raises(self):
        with self.assertRaises(ParseError):
            aggregate(self._write("Date,Amount\n,1\n"))

    def test_non_numeric_amount_raises(self):
        with self.assertRaises(ParseError) as ctx:
            aggregate(self._write("Date,Amount\n07/04/2024,abc\n"))
        self.assertIn("abc", str(ctx.exception))

    def test_infinite_amount_raises(self):
        for value in ("inf", "-inf", "1e400"):
            with self.subTest(amount=value):
                with self.assertRaises(ParseError) as ctx:
                    aggregate(self._write(f"Date,Amount\n07/04/2024,1\n07/05/2024,{value}\n"))
                self.assertIn(value, str(ctx.exception))

    def test_missing_column_raises(self):
        with self.assertRaises(SchemaError):
            aggregate(self._write("Date,Total\n07/04/2024,1\n"))

    def test_single_column_without_header_raises(self):
        with self.assertRaises(SchemaError):
            aggregate(self._write("07/04/2024\n"), has_header=False)

    def test_missing_file_raises(self):
        with self.assertRaises(DataLoadError):
            aggregate(self.tmp_dir / "nope.csv")

    def test_empty_file_raises(self):
        with self.assertRaises(DataLoadError):
            aggregate(self._write(""))

    def test_injected_date_parser(self):
        def iso(values):
            return pd.to_datetime(values, format="%Y-%m-%d")

        series = aggregate(self._write("Date,Amount\n2024-07-04,1\n2024-08-01,2\n"), date_parser=iso)
        self.assertEqual(len(series), 2)

    def test_injected_date_parser_errors_become_parse_errors(self):
        def iso(values):
            return pd.to_datetime(values, format="%Y-%m-%d")

        with self.assertRaises(ParseError):
            aggregate(self._write("Date,Amount\n07/04/2024,1\n"), date_parser=iso)


class TestParseMdy(unittest.TestCase):
    """Test the month/day/year date parser."""

    def test_parses_month_first(self):
        parsed = parse_mdy(pd.Series(["07/04/2024", "12/31/99", "Feb 29 2024"]))
        self.assertEqual(parsed.tolist(), [
            pd.Timestamp("2024-07-04"),
            pd.Timestamp("1999-12-31"),
            pd.Timestamp("2024-02-29"),
        ])

    def test_day_first_value_rejected(self):
        with self.assertRaises(ParseError):
            parse_mdy(pd.Series(["31/12/2024"]))


if __name__ == "__main__":
    unittest.main()
