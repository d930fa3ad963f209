"""
Schema Normalization Module

Turns vendor events into vendor-agnostic log records and groups them into
immutable batches bound for the ingestion pipeline.
"""

from .schema import LogRecord, NormalizedLogBatch
from .normalizer import LogNormalizer, parseTimestamp

__all__ = [
    'LogRecord',
    'NormalizedLogBatch',
    'LogNormalizer',
    'parseTimestamp',
]
