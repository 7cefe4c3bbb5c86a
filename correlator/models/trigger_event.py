from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, Index

from correlator.database import Base


class TriggerEventRecord(Base):
    """Exposure to a non-food trigger (stress, poor sleep, weather)."""

    __tablename__ = "trigger_events"

    id = Column(String(64), primary_key=True)
    user_id = Column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    trigger_id = Column(String(64), nullable=False)
    intensity = Column(Integer)  # low=1, medium=2, high=3
    timestamp = Column(BigInteger, nullable=False)  # Epoch ms

    __table_args__ = (
        Index("idx_trigger_events_user_timestamp", "user_id", "timestamp"),
    )
