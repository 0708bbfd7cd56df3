"""Configuration for duplicate detection and merging."""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional


@dataclass
class DetectionConfig:
    """Thresholds and limits for scanning and merging."""

    # Similar-name clustering
    name_similarity_threshold: float = 0.80

    # Phone normalization
    phone_digits: int = 10
    min_phone_digits: int = 7

    # Confidence reported per strategy (0-100)
    exact_email_confidence: int = 100
    exact_phone_confidence: int = 95
    similar_name_confidence: int = 80
    name_program_confidence: int = 75

    # Seconds allowed for the O(n^2) similar-name pass (None = no limit)
    similar_name_timeout: Optional[float] = 30.0

    # Merging
    notes_separator: str = "\n\n---\n\n"
    bulk_merge_workers: int = 1

    def __post_init__(self):
        """Validate ranges."""
        if not 0.0 <= self.name_similarity_threshold <= 1.0:
            raise ValueError(
                f"name_similarity_threshold must be in [0, 1], "
                f"got {self.name_similarity_threshold}"
            )
        if self.phone_digits < 1:
            raise ValueError(f"phone_digits must be positive, got {self.phone_digits}")
        if not 1 <= self.min_phone_digits <= self.phone_digits:
            raise ValueError(
                f"min_phone_digits must be in [1, {self.phone_digits}], "
                f"got {self.min_phone_digits}"
            )
        for name in ('exact_email_confidence', 'exact_phone_confidence',
                     'similar_name_confidence', 'name_program_confidence'):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be in [0, 100], got {value}")
        if self.similar_name_timeout is not None and self.similar_name_timeout <= 0:
            raise ValueError(
                f"similar_name_timeout must be positive, got {self.similar_name_timeout}"
            )
        if self.bulk_merge_workers < 1:
            raise ValueError(
                f"bulk_merge_workers must be at least 1, got {self.bulk_merge_workers}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DetectionConfig':
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)


# Global configuration instance
default_config = DetectionConfig()
