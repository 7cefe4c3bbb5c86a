"""
Database models for the symptom correlator.

Event tables are read-only inputs to the correlation engine; the
correlation_cache table is the only one the engine writes.
"""

from correlator.database import Base
from correlator.models.user import User
from correlator.models.food_event import FoodEventRecord
from correlator.models.symptom_instance import SymptomInstanceRecord
from correlator.models.trigger_event import TriggerEventRecord
from correlator.models.medication_event import MedicationEventRecord
from correlator.models.daily_log import DailyLogRecord
from correlator.models.correlation_cache_entry import CorrelationCacheEntry

__all__ = [
    "Base",
    "User",
    "FoodEventRecord",
    "SymptomInstanceRecord",
    "TriggerEventRecord",
    "MedicationEventRecord",
    "DailyLogRecord",
    "CorrelationCacheEntry",
]
