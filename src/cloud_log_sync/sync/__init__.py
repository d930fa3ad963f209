"""
Incremental Synchronization Engine

- Sync window and tenant group model
- Per-group checkpoint store
- Configuration service client
- Per-group fan-out with failure isolation
- Cycle scheduler
"""

from .models import (
    EPSILON,
    ConfigEntry,
    CycleResult,
    FetchResult,
    GroupOutcome,
    GroupResult,
    ModuleConfiguration,
    SyncWindow,
    TenantGroup,
)
from .checkpoint_store import CheckpointStore
from .config_fetcher import ConfigurationFetcher
from .dispatcher import GroupDispatcher
from .scheduler import CycleScheduler

__all__ = [
    'EPSILON',
    'ConfigEntry',
    'CycleResult',
    'FetchResult',
    'GroupOutcome',
    'GroupResult',
    'ModuleConfiguration',
    'SyncWindow',
    'TenantGroup',
    'CheckpointStore',
    'ConfigurationFetcher',
    'GroupDispatcher',
    'CycleScheduler',
]
