"""
Store engine: recovery, flushing and compaction around the on-disk models.
"""

from kvstore.engine.store import Store

__all__ = ["Store"]
