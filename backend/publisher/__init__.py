"""
LocalRepo Publisher Package.

Composition root of the watch, archive and patch pipeline.
Requires Python 3.11+.
"""

from publisher.state import ArchiveCell
from publisher.pipeline import Publisher, write_atomic

__all__ = ["ArchiveCell", "Publisher", "write_atomic"]
