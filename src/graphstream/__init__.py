"""
graphstream: Neptune change-stream ingestion.

Tracks ownership of stream partitions through a partition coordinator,
checkpoints resume positions, and consolidates per-mutation graph events into
per-entity change records.
"""

__version__ = "0.1.0"
