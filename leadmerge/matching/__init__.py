"""
Duplicate detection matching engine.

This module provides the intake-time duplicate check and the batch scanner
that groups probable duplicates by email, phone, similar name and
name plus program.
"""

from .groups import DuplicateGroup, MatchType, DuplicateCheckResult, duplicate_stats, secondary_ids
from .checker import DuplicateChecker
from .clustering import NameClusterer, GreedyNameClusterer, PhoneticBlockingClusterer
from .scanner import DuplicateScanner, CancellationToken

__all__ = [
    'DuplicateGroup',
    'MatchType',
    'DuplicateCheckResult',
    'duplicate_stats',
    'secondary_ids',
    'DuplicateChecker',
    'NameClusterer',
    'GreedyNameClusterer',
    'PhoneticBlockingClusterer',
    'DuplicateScanner',
    'CancellationToken',
]
