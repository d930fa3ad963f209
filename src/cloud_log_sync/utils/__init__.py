"""
Utilities Module

Common utilities for logging, configuration, metrics and connectivity checks.
"""

from .config_loader import ConfigLoader, Settings
from .logger import setupLogging, RateLimitedLogger
from .metrics import MetricsCollector
from .connectivity import ConnectivityProber

__all__ = [
    'ConfigLoader',
    'Settings',
    'setupLogging',
    'RateLimitedLogger',
    'MetricsCollector',
    'ConnectivityProber',
]
