"""Tests for the retry delay schedule."""

import pytest

from herald.webhooks import backoff


class TestBackoff:
    """Tests for backoff()."""

    def test_default_schedule(self):
        """Attempts past the schedule should fall back to one hour."""
        assert [backoff(n) for n in range(1, 6)] == [60, 300, 900, 3600, 3600]

    def test_custom_schedule(self):
        assert backoff(1, schedule=[30, 120], default=600) == 30
        assert backoff(2, schedule=[30, 120], default=600) == 120
        assert backoff(3, schedule=[30, 120], default=600) == 600

    def test_rejects_attempt_zero(self):
        with pytest.raises(ValueError):
            backoff(0)
