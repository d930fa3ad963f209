"""
Cloud Log Sync

Incremental synchronization engine that polls SaaS security platforms for
new activity on behalf of many tenant groups and relays normalized batches
to the central ingestion pipeline.
"""

__version__ = '1.0.0'
