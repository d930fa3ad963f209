"""
Vendor Ingestion Module

One adapter per integrated platform:
- AWS (CloudWatch Logs, window-only)
- Office 365 (Management Activity API, window-only)
- Sophos Central (SIEM events, cursor-continued)

Architecture:
- Base adapter interface with window-only and cursor-continued strategies
- Per-group authentication, no internal retries
- Registry selecting the adapter for the running module
"""

from .base import VendorAdapter, WindowOnlyAdapter, CursorAdapter, FetchStrategy, Page
from .aws_ingestion import AWSIngestion
from .office365_ingestion import Office365Ingestion
from .sophos_ingestion import SophosIngestion
from .registry import createAdapter, availableModules

__all__ = [
    'VendorAdapter',
    'WindowOnlyAdapter',
    'CursorAdapter',
    'FetchStrategy',
    'Page',
    'AWSIngestion',
    'Office365Ingestion',
    'SophosIngestion',
    'createAdapter',
    'availableModules',
]
