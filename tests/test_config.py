"""
Tests for detection configuration.
"""

import pytest

from leadmerge.config import DetectionConfig, default_config


class TestDetectionConfig:
    """Tests for DetectionConfig defaults and validation."""

    def test_defaults(self):
        """Test the documented defaults."""
        assert default_config.name_similarity_threshold == 0.80
        assert default_config.phone_digits == 10
        assert default_config.min_phone_digits == 7
        assert default_config.exact_email_confidence == 100
        assert default_config.exact_phone_confidence == 95
        assert default_config.similar_name_confidence == 80
        assert default_config.name_program_confidence == 75
        assert default_config.notes_separator == "\n\n---\n\n"

    @pytest.mark.parametrize("kwargs", [
        {'name_similarity_threshold': 1.5},
        {'phone_digits': 0},
        {'min_phone_digits': 11},
        {'exact_phone_confidence': 101},
        {'similar_name_timeout': 0},
        {'bulk_merge_workers': 0},
    ])
    def test_invalid_values(self, kwargs):
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValueError):
            DetectionConfig(**kwargs)

    def test_no_timeout(self):
        """Test that the similar-name timeout can be disabled."""
        assert DetectionConfig(similar_name_timeout=None).similar_name_timeout is None

    def test_from_dict(self):
        """Test building a config from a mapping."""
        config = DetectionConfig.from_dict({'name_similarity_threshold': 0.9, 'phone_digits': 11})

        assert config.name_similarity_threshold == 0.9
        assert config.phone_digits == 11

    def test_from_dict_unknown_key(self):
        """Test that unknown keys are reported."""
        with pytest.raises(ValueError, match="threshold"):
            DetectionConfig.from_dict({'threshold': 0.9})
