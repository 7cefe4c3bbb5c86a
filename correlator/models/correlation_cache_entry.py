from sqlalchemy import Column, Integer, String, BigInteger, Index, UniqueConstraint

from correlator.database import Base
from correlator.models.types import JSONType


class CorrelationCacheEntry(Base):
    """
    Cached correlation or combination result.

    Rows are never updated in place: a recomputation deletes the row for the
    key and inserts a fresh one.
    """

    __tablename__ = "correlation_cache"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    cause_id = Column(String(255), nullable=False)  # "food:rice" or "combinations"
    effect_id = Column(String(255), nullable=False)
    time_range_tag = Column(String(128), nullable=False)
    kind = Column(String(20), nullable=False)  # 'correlation' or 'combinations'
    payload = Column(JSONType, nullable=False)
    computed_at = Column(BigInteger, nullable=False)  # Epoch ms
    expires_at = Column(BigInteger, nullable=False)  # Epoch ms

    __table_args__ = (
        UniqueConstraint(
            "user_id", "cause_id", "effect_id", "time_range_tag",
            name="uq_correlation_cache_key",
        ),
        Index("idx_correlation_cache_user_expires", "user_id", "expires_at"),
    )
