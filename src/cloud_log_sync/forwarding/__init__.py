# Log Forwarding
# Relays normalized batches to the central ingestion pipeline.

from .forwarder import LogForwarder, HttpLogForwarder, LOG_SEPARATOR

__all__ = [
    'LogForwarder',
    'HttpLogForwarder',
    'LOG_SEPARATOR',
]
