"""Tests for bencher.formatting — shared text helpers."""

from __future__ import annotations

import math
import unittest

from bencher.formatting import (
    format_duration,
    format_number,
    format_pct,
    format_section_header,
    format_table,
    format_verdict_icon,
    truncate,
)


class TestFormatDuration(unittest.TestCase):
    def test_seconds(self) -> None:
        self.assertEqual(format_duration(8.9), "8s")

    def test_minutes(self) -> None:
        self.assertEqual(format_duration(83), "1m 23s")

    def test_hours(self) -> None:
        self.assertEqual(format_duration(4354), "1h 12m 34s")


class TestFormatVerdictIcon(unittest.TestCase):
    def test_known(self) -> None:
        self.assertEqual(format_verdict_icon("improved"), "✓ IMPROVED")
        self.assertEqual(format_verdict_icon("regressed"), "✗ REGRESSED")
        self.assertEqual(format_verdict_icon("no_significant_change"), "= NO CHANGE")
        self.assertEqual(format_verdict_icon("inconclusive"), "⚠ INCONCLUSIVE")

    def test_unknown(self) -> None:
        self.assertEqual(format_verdict_icon("weird"), "WEIRD")


class TestFormatNumbers(unittest.TestCase):
    def test_number(self) -> None:
        self.assertEqual(format_number(1.23456), "1.235")
        self.assertEqual(format_number(2.0, precision=1), "2.0")
        self.assertEqual(format_number(math.nan), "N/A")

    def test_pct(self) -> None:
        self.assertEqual(format_pct(5.0), "+5.0%")
        self.assertEqual(format_pct(-2.25, precision=2), "-2.25%")
        self.assertEqual(format_pct(0.0), "+0.0%")
        self.assertEqual(format_pct(math.nan), "N/A")
        self.assertEqual(format_pct(math.inf), "+inf%")
        self.assertEqual(format_pct(-math.inf), "-inf%")


class TestFormatTable(unittest.TestCase):
    def test_alignment_and_rule(self) -> None:
        table = format_table(["Name", "N"], [["duel", "5"], ["race", "12"]], alignments=["l", "r"])
        lines = table.splitlines()
        self.assertEqual(lines[0], "  Name   N")
        self.assertEqual(lines[1], "  " + "─" * 8)
        self.assertEqual(lines[2], "  duel   5")
        self.assertEqual(lines[3], "  race  12")

    def test_truncates_columns(self) -> None:
        table = format_table(["Scenario"], [["a_very_long_scenario_name"]], max_col_width={0: 10})
        self.assertIn("a_very_...", table)

    def test_pads_short_rows(self) -> None:
        table = format_table(["A", "B"], [["x"]], indent=0)
        self.assertEqual(table.splitlines()[2], "x")

    def test_empty_headers(self) -> None:
        self.assertEqual(format_table([], []), "")


class TestMisc(unittest.TestCase):
    def test_section_header(self) -> None:
        header = format_section_header("Failures", width=30)
        self.assertTrue(header.startswith("─── Failures ─"))
        self.assertEqual(len(header), 30)

    def test_truncate(self) -> None:
        self.assertEqual(truncate("short", 10), "short")
        self.assertEqual(truncate("abcdefghij", 6), "abc...")
        self.assertEqual(truncate("abcdef", 2), "..")


if __name__ == "__main__":
    unittest.main()
