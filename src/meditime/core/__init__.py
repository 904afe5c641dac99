"""
meditime core: records, record store, errors, settings and logging.
"""

from meditime.core.errors import (
    ConfigError,
    DeliveryError,
    MeditimeError,
    ResolutionError,
    ScheduleConfigError,
    StoreError,
)
from meditime.core.models import Medication, User
from meditime.core.store import KeyValueStore, RecordStore

__all__ = [
    "ConfigError",
    "DeliveryError",
    "KeyValueStore",
    "Medication",
    "MeditimeError",
    "RecordStore",
    "ResolutionError",
    "ScheduleConfigError",
    "StoreError",
    "User",
]
