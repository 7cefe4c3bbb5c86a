"""
Unit tests for confidence tiers.
"""

import pytest

from correlator.services.confidence import (
    confidence_of,
    consistency_of,
    determine_confidence,
)
from correlator.services.schemas import WindowScore


class TestDetermineConfidence:
    """The overall level is the weakest of the three factors."""

    def test_all_strong(self):
        assert determine_confidence(5, 0.7, 0.009) == "high"

    @pytest.mark.parametrize(
        "sample_size,consistency,p_value",
        [
            (4, 0.9, 0.001),  # sample size only medium
            (10, 0.6, 0.001),  # consistency only medium
            (10, 0.9, 0.02),  # p-value only medium
        ],
    )
    def test_one_medium_factor_caps_at_medium(self, sample_size, consistency, p_value):
        assert determine_confidence(sample_size, consistency, p_value) == "medium"

    @pytest.mark.parametrize(
        "sample_size,consistency,p_value",
        [
            (2, 0.9, 0.001),
            (10, 0.49, 0.001),
            (10, 0.9, 0.05),
            (10, 0.9, None),
        ],
    )
    def test_one_weak_factor_means_low(self, sample_size, consistency, p_value):
        assert determine_confidence(sample_size, consistency, p_value) == "low"

    def test_medium_thresholds_inclusive(self):
        assert determine_confidence(3, 0.5, 0.049) == "medium"


class TestWindowScoreHelpers:
    """Tests for deriving consistency and confidence from a window score."""

    def test_consistency_is_hit_fraction(self):
        score = WindowScore(window="1h", score=0.4, sample_size=8, hit_count=6)

        assert consistency_of(score) == 0.75

    def test_consistency_zero_without_samples(self):
        assert consistency_of(WindowScore(window="1h", score=0, sample_size=0)) == 0.0

    def test_confidence_of(self):
        score = WindowScore(window="1h", score=0.8, sample_size=6, hit_count=6, p_value=0.001)

        assert confidence_of(score) == "high"
