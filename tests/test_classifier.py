#!/usr/bin/env python3
"""Tests for expiry date classification."""

from datetime import date

import pytest

from compliance import DocumentStatus, classify

TODAY = date(2025, 1, 15)


class TestClassify:
    """Tests for classify boundaries with the default 30-day window."""

    def test_yesterday_is_overdue(self):
        assert classify("2025-01-14", TODAY) == DocumentStatus.OVERDUE

    def test_long_past_is_overdue(self):
        assert classify("2020-06-01", TODAY) == DocumentStatus.OVERDUE

    def test_expiring_today_is_not_overdue(self):
        assert classify("2025-01-15", TODAY) == DocumentStatus.EXPIRING_SOON

    def test_last_day_inside_window(self):
        """29 days left is still expiring soon."""
        assert classify("2025-02-13", TODAY) == DocumentStatus.EXPIRING_SOON

    def test_window_bound_is_exclusive(self):
        """Exactly 30 days left is compliant."""
        assert classify("2025-02-14", TODAY) == DocumentStatus.COMPLIANT

    def test_far_future_is_compliant(self):
        assert classify("2026-01-15", TODAY) == DocumentStatus.COMPLIANT

    @pytest.mark.parametrize("value", [None, "", "  ", "soon", "2025-02-30", 42])
    def test_missing_or_unparseable(self, value):
        assert classify(value, TODAY) == DocumentStatus.MISSING

    def test_accepts_date_objects(self):
        assert classify(date(2025, 1, 20), TODAY) == DocumentStatus.EXPIRING_SOON


class TestClassifyWarningDays:
    """Tests for a configured warning window."""

    def test_wider_window(self):
        assert classify("2025-03-01", TODAY, warning_days=60) == DocumentStatus.EXPIRING_SOON

    def test_zero_window_has_no_expiring_state(self):
        assert classify("2025-01-15", TODAY, warning_days=0) == DocumentStatus.COMPLIANT
        assert classify("2025-01-14", TODAY, warning_days=0) == DocumentStatus.OVERDUE
