"""
Tests for ratelimit.py - per-caller daily quota.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ratelimit import DailyQuota


class TestDailyQuota:
    """Tests for DailyQuota."""

    def test_allows_up_to_limit(self):
        quota = DailyQuota(limit=3)

        results = [quota.consume("1.2.3.4", "2025-01-20") for _ in range(4)]

        assert results == [True, True, True, False]
        assert quota.remaining("1.2.3.4", "2025-01-20") == 0

    def test_callers_are_independent(self):
        quota = DailyQuota(limit=1)

        assert quota.consume("a", "2025-01-20") is True
        assert quota.consume("b", "2025-01-20") is True
        assert quota.consume("a", "2025-01-20") is False

    def test_resets_next_day(self):
        """A new date starts a fresh count."""
        quota = DailyQuota(limit=1)
        quota.consume("a", "2025-01-20")

        assert quota.consume("a", "2025-01-21") is True
        assert quota.remaining("a", "2025-01-21") == 0

    def test_instances_do_not_share_counts(self):
        """Each quota object keeps its own counts."""
        first = DailyQuota(limit=1)
        second = DailyQuota(limit=1)
        first.consume("a", "2025-01-20")

        assert second.consume("a", "2025-01-20") is True
