"""
Read-only access to time-ranged event slices.

Raw rows are decoded into typed events exactly once here; everything past
this boundary works with FoodEvent/SymptomEvent/TriggerEvent/MedicationEvent
and DailyLog.
Returned lists carry no ordering guarantee.
"""

import json
import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError
from sqlalchemy.orm import Session

from correlator.models import (
    User,
    FoodEventRecord,
    SymptomInstanceRecord,
    TriggerEventRecord,
    MedicationEventRecord,
    DailyLogRecord,
)
from correlator.services.clock import utc_date, utc_day_start
from correlator.services.errors import EventDecodeError
from correlator.services.schemas import (
    DailyLog,
    FoodEvent,
    SymptomEvent,
    TriggerEvent,
    MedicationEvent,
)

logger = logging.getLogger(__name__)


class EventStore(ABC):
    """Asynchronous event source consumed by the correlation engine."""

    @abstractmethod
    async def find_food_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[FoodEvent]: ...

    @abstractmethod
    async def find_symptom_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[SymptomEvent]: ...

    @abstractmethod
    async def find_trigger_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[TriggerEvent]: ...

    @abstractmethod
    async def find_medication_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[MedicationEvent]: ...

    @abstractmethod
    async def find_daily_logs(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[DailyLog]: ...

    @abstractmethod
    async def list_user_ids(self) -> list[str]: ...


def _decode_id_list(raw, kind: str, event_id: str) -> tuple[str, ...]:
    """Decode a stored food id list (JSON array or legacy JSON-encoded string)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EventDecodeError(kind, event_id, f"invalid JSON ({e.msg})") from e
    if not isinstance(raw, list) or not all(isinstance(x, str) for x in raw):
        raise EventDecodeError(kind, event_id, "food_ids must be a list of strings")
    return tuple(raw)


def _decode_portions(raw, event_id: str) -> dict[str, str]:
    """Decode a stored portion map ({food id: "small" | "medium" | "large"})."""
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EventDecodeError("food", event_id, f"invalid portion JSON ({e.msg})") from e
    if not isinstance(raw, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
    ):
        raise EventDecodeError("food", event_id, "portion_map must map food ids to sizes")
    return raw


class SqlEventStore(EventStore):
    """EventStore backed by the SQLAlchemy event tables."""

    def __init__(self, db: Session):
        self.db = db

    def _in_range(self, model, user_id: str, start_ms: int, end_ms: int):
        return (
            self.db.query(model)
            .filter(
                model.user_id == user_id,
                model.timestamp >= start_ms,
                model.timestamp < end_ms,
            )
            .all()
        )

    async def find_food_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[FoodEvent]:
        events = []
        for row in self._in_range(FoodEventRecord, user_id, start_ms, end_ms):
            food_ids = _decode_id_list(row.food_ids, "food", row.id)
            events.append(
                FoodEvent(
                    id=row.id,
                    user_id=row.user_id,
                    timestamp=row.timestamp,
                    meal_id=row.meal_id,
                    food_ids=food_ids,
                    portions=_decode_portions(row.portion_map, row.id),
                )
            )
        return events

    async def find_symptom_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[SymptomEvent]:
        events = []
        for row in self._in_range(SymptomInstanceRecord, user_id, start_ms, end_ms):
            try:
                events.append(
                    SymptomEvent(
                        id=row.id,
                        user_id=row.user_id,
                        timestamp=row.timestamp,
                        name=row.name,
                        severity=row.severity,
                    )
                )
            except ValidationError as e:
                raise EventDecodeError("symptom", row.id, e.errors()[0]["msg"]) from e
        return events

    async def find_trigger_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[TriggerEvent]:
        rows = self._in_range(TriggerEventRecord, user_id, start_ms, end_ms)
        return [
            TriggerEvent(
                id=row.id,
                user_id=row.user_id,
                timestamp=row.timestamp,
                trigger_id=row.trigger_id,
                intensity=row.intensity,
            )
            for row in rows
        ]

    async def find_medication_events(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[MedicationEvent]:
        rows = self._in_range(MedicationEventRecord, user_id, start_ms, end_ms)
        return [
            MedicationEvent(
                id=row.id,
                user_id=row.user_id,
                timestamp=row.timestamp,
                medication_id=row.medication_id,
                taken=bool(row.taken),
            )
            for row in rows
        ]

    async def find_daily_logs(
        self, user_id: str, start_ms: int, end_ms: int
    ) -> list[DailyLog]:
        """Logs for every UTC date the half-open range touches."""
        if end_ms <= start_ms:
            return []
        rows = (
            self.db.query(DailyLogRecord)
            .filter(
                DailyLogRecord.user_id == user_id,
                DailyLogRecord.date >= utc_date(start_ms),
                DailyLogRecord.date <= utc_date(end_ms - 1),
            )
            .all()
        )
        logs = []
        for row in rows:
            try:
                day_start = utc_day_start(row.date)
            except ValueError as e:
                raise EventDecodeError("daily_log", row.id, f"invalid date {row.date!r}") from e
            logs.append(
                DailyLog(
                    id=row.id,
                    user_id=row.user_id,
                    date=row.date,
                    day_start=day_start,
                    sleep_hours=row.sleep_hours,
                    sleep_quality=row.sleep_quality,
                    mood=row.mood,
                    stress_level=row.stress_level,
                )
            )
        return logs

    async def list_user_ids(self) -> list[str]:
        return [row.id for row in self.db.query(User.id).order_by(User.id).all()]
