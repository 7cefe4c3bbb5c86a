"""
Typed value objects for the correlation engine.

All models are frozen: a result is produced once and never mutated. They
serialize to camelCase JSON so cached payloads and API responses share one
shape.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from correlator.config import settings
from correlator.services.errors import InvalidTimeRangeError


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


ConfidenceLevel = Literal["high", "medium", "low"]


class CauseKind(str, Enum):
    FOOD = "food"
    TRIGGER = "trigger"
    MEDICATION = "medication"


# --- Time ranges ---


class TimeRange(CamelModel):
    start: int  # Epoch ms, inclusive
    end: int  # Epoch ms, exclusive
    tag: str | None = None  # Stable cache tag, e.g. "30d" for the trailing default

    @property
    def duration_ms(self) -> int:
        return self.end - self.start

    @property
    def cache_tag(self) -> str:
        return self.tag or f"{self.start}-{self.end}"

    def ensure_valid(self) -> "TimeRange":
        if self.end <= self.start:
            raise InvalidTimeRangeError(self.start, self.end)
        return self

    @classmethod
    def trailing(cls, now_ms: int, days: int) -> "TimeRange":
        """The trailing `days` window ending at `now_ms`, tagged e.g. "30d"."""
        return cls(start=now_ms - days * 86_400_000, end=now_ms, tag=f"{days}d")


# --- Events (decoded once at the event store boundary) ---


class FoodEvent(CamelModel):
    kind: Literal["food"] = "food"
    id: str
    user_id: str
    timestamp: int
    meal_id: str | None = None
    food_ids: tuple[str, ...]
    portions: dict[str, str] = Field(default_factory=dict)  # {"rice": "large"}


class SymptomEvent(CamelModel):
    kind: Literal["symptom"] = "symptom"
    id: str
    user_id: str
    timestamp: int
    name: str
    severity: int = Field(ge=0, le=10)


class TriggerEvent(CamelModel):
    kind: Literal["trigger"] = "trigger"
    id: str
    user_id: str
    timestamp: int
    trigger_id: str
    intensity: int | None = None


class MedicationEvent(CamelModel):
    kind: Literal["medication"] = "medication"
    id: str
    user_id: str
    timestamp: int
    medication_id: str
    taken: bool = True


class DailyLog(CamelModel):
    """One day's self-reported wellbeing; any metric may be missing."""

    kind: Literal["daily_log"] = "daily_log"
    id: str
    user_id: str
    date: str  # YYYY-MM-DD (UTC)
    day_start: int  # Epoch ms of the date's midnight
    sleep_hours: float | None = None
    sleep_quality: int | None = None
    mood: int | None = None
    stress_level: int | None = None


# --- Scoring ---


class DelayWindow(CamelModel):
    label: str
    min_offset_ms: int
    max_offset_ms: int  # Exclusive

    @property
    def duration_ms(self) -> int:
        return self.max_offset_ms - self.min_offset_ms


class WindowScore(CamelModel):
    window: str
    score: float
    sample_size: int
    hit_count: int = 0
    p_value: float | None = None


class CorrelationResult(CamelModel):
    cause_id: str
    cause_kind: CauseKind = CauseKind.FOOD
    effect_id: str
    window_scores: tuple[WindowScore, ...]
    best_window: WindowScore
    computed_at: int
    sample_size: int
    consistency: float = 0.0
    confidence: ConfidenceLevel = "low"


class CombinationEffect(CamelModel):
    cause_ids: tuple[str, ...]
    effect_id: str
    synergy_score: float
    individual_scores: tuple[float, ...]
    joint_score: float
    best_window: WindowScore
    sample_size: int
    confidence: ConfidenceLevel = "low"


class CombinationOptions(CamelModel):
    min_sample_size: int = Field(default=settings.correlation_min_sample_size, ge=1)
    synergy_threshold: float = settings.combination_synergy_threshold
    max_pairs: int = Field(default=settings.combination_max_pairs, ge=0)
    max_combination_size: int = Field(default=settings.combination_max_size, ge=2, le=3)


# --- Orchestration ---


class PairRequest(CamelModel):
    cause_id: str
    effect_id: str
    cause_kind: CauseKind = CauseKind.FOOD


class PairError(CamelModel):
    cause_id: str
    effect_id: str
    message: str


class PairBatchResult(CamelModel):
    results: list[CorrelationResult]
    errors: list[PairError]
    computed: int = 0
    cache_hits: int = 0
    skipped: int = 0


class EnhancedMetadata(CamelModel):
    user_id: str
    effect_id: str
    start: int
    end: int
    min_sample_size: int
    causes_analyzed: int
    combinations_from_cache: bool = False


class EnhancedResult(CamelModel):
    individual: list[CorrelationResult]
    combinations: list[CombinationEffect]
    errors: list[PairError] = []
    metadata: EnhancedMetadata


class BatchSummary(CamelModel):
    users_processed: int = 0
    pairs_computed: int = 0
    cache_entries_created: int = 0
    expired_entries_cleaned: int = 0
    errors: list[str] = []
    duration: int = 0  # Milliseconds


# --- Cache ---


class CacheKey(CamelModel):
    user_id: str
    cause_id: str  # "<kind>:<id>" or "combinations"
    effect_id: str
    time_range_tag: str


class CacheEntry(CamelModel):
    key: CacheKey
    kind: Literal["correlation", "combinations"]
    payload: dict
    computed_at: int
    expires_at: int

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at < now_ms


# --- Trends ---

TrendMetric = Literal["severity", "frequency"]
TrendGranularity = Literal["daily", "weekly"]
TrendDirection = Literal["improving", "worsening", "stable", "insufficient_data"]
FitStrength = Literal["very-high", "high", "moderate", "low"]


class TrendPoint(CamelModel):
    bucket_start: int  # Epoch ms
    value: float
    count: int


class Regression(CamelModel):
    slope: float
    intercept: float
    r_squared: float


class TrendSegment(CamelModel):
    start_index: int
    end_index: int  # Exclusive
    start_ms: int
    mean: float


class TrendAnalysis(CamelModel):
    symptom: str
    metric: TrendMetric
    granularity: TrendGranularity
    points: list[TrendPoint]
    regression: Regression | None = None
    direction: TrendDirection = "insufficient_data"
    fit_strength: FitStrength | None = None
    penalty: float
    change_points: list[int]
    segments: list[TrendSegment]


# --- Dose-response ---

DoseResponseConfidence = Literal["high", "medium", "low", "insufficient"]


class PortionSeverity(CamelModel):
    portion: int  # 1 small, 2 medium, 3 large
    severity: int


class DoseResponseResult(CamelModel):
    food_id: str | None = None
    effect_id: str | None = None
    slope: float = 0.0
    intercept: float = 0.0
    r_squared: float = 0.0
    confidence: DoseResponseConfidence = "insufficient"
    sample_size: int = 0
    pairs: list[PortionSeverity] = []
    message: str = ""


# --- Daily-log correlation ---

DailyLogMetric = Literal["sleepHours", "sleepQuality", "mood", "stressLevel"]
CorrelationDirection = Literal["forward", "reverse"]  # forward: log -> symptom
ThresholdOperator = Literal["<", ">", "<=", ">="]


class DailyLogCorrelationResult(CamelModel):
    metric: DailyLogMetric
    effect_id: str
    direction: CorrelationDirection
    threshold: float
    operator: ThresholdOperator
    window_scores: tuple[WindowScore, ...]
    best_window: WindowScore
    computed_at: int
    sample_size: int
    consistency: float = 0.0
    confidence: ConfidenceLevel = "low"
