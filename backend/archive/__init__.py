"""
LocalRepo Archive Package.

Deterministic, ignore-aware directory archives.
Requires Python 3.11+.
"""

from archive.builder import Archive, ArchiveBuilder, compute_hash
from archive.ignore_rules import IgnoreRule, IgnoreRuleSet

__all__ = [
    "Archive",
    "ArchiveBuilder",
    "compute_hash",
    "IgnoreRule",
    "IgnoreRuleSet",
]
