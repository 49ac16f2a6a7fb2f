"""Deterministic tests for the entry-quality classifier.

Rule precedence: fast dump → pullback from high → extended from low → VALID.
"""

import math

import pytest

from obsidian.signals.entry_quality import compute_micro


class TestMetrics:
    def test_returns_use_fixed_offsets(self):
        # n = 8: 1h ref = prices[6], 4h ref = prices[3], 6h window = prices[1:]
        prices = [50.0, 100.0, 100.0, 100.0, 101.0, 102.0, 100.0, 101.0]
        m = compute_micro(prices)
        assert m.ret_1h == pytest.approx(1.0)
        assert m.ret_4h == pytest.approx(1.0)
        assert m.drop_from_high_6h == pytest.approx((101 - 102) / 102 * 100)
        assert m.spike_from_low_6h == pytest.approx(1.0)

    def test_short_series_clamps_indices(self):
        m = compute_micro([100.0, 102.0])
        assert m.ret_1h == pytest.approx(2.0)
        assert m.ret_4h == pytest.approx(2.0)
        assert m.entry_quality == "VALID"

    def test_single_sample_is_flat(self):
        m = compute_micro([100.0])
        assert m.ret_1h == 0.0
        assert m.entry_quality == "VALID"


class TestClassification:
    def test_fast_dump_is_no_edge(self):
        prices = [100.0] * 23 + [96.5]
        m = compute_micro(prices)
        assert m.ret_1h == pytest.approx(-3.5)
        assert m.entry_quality == "NO_EDGE"
        assert len(m.reasons) == 2
        assert m.reasons[0].startswith("Fast dump: -3.50%")

    def test_dump_wins_over_pullback_and_spike(self):
        """Big spike from the low then a 3.5 % dump — rule 1 still wins."""
        prices = [90.0, 90.0, 90.0, 110.0, 110.0, 110.0, 110.0, 106.15]
        m = compute_micro(prices)
        assert m.ret_1h <= -3
        assert m.spike_from_low_6h >= 6
        assert m.drop_from_high_6h <= -3
        assert m.entry_quality == "NO_EDGE"

    def test_pullback_from_high_is_extended(self):
        prices = [100.0, 100.0, 105.0, 104.0, 102.0, 101.0, 100.5, 100.0]
        m = compute_micro(prices)
        assert m.ret_1h > -3
        assert m.drop_from_high_6h <= -4
        assert m.entry_quality == "EXTENDED"
        assert m.reasons[0].startswith("Pullback:")

    def test_spike_from_low_is_extended(self):
        prices = [100.0] * 20 + [100.0, 103.0, 105.0, 107.0]
        m = compute_micro(prices)
        assert m.spike_from_low_6h == pytest.approx(7.0)
        assert m.entry_quality == "EXTENDED"
        assert m.reasons[0] == "Extended: +7.00% from 6h low"

    def test_quiet_tape_is_valid(self):
        prices = [100.0, 100.5, 101.0, 100.8, 101.2, 101.0, 101.5]
        m = compute_micro(prices)
        assert m.entry_quality == "VALID"
        assert m.reasons == []


class TestDegenerateInputs:
    def test_empty_series_is_nan_and_valid(self):
        m = compute_micro([])
        assert math.isnan(m.ret_1h)
        assert math.isnan(m.spike_from_low_6h)
        assert m.entry_quality == "VALID"

    def test_zero_reference_propagates_nan(self):
        m = compute_micro([0.0, 0.0, 5.0])
        assert math.isnan(m.ret_1h)
        assert math.isnan(m.spike_from_low_6h)
        # NaN never matches a rule; the max-based drop is still finite
        assert m.drop_from_high_6h == pytest.approx(0.0)
        assert m.entry_quality == "VALID"
