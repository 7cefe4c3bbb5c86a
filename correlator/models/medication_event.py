from sqlalchemy import Column, String, Boolean, BigInteger, ForeignKey, Index

from correlator.database import Base


class MedicationEventRecord(Base):
    """A scheduled medication dose, taken or skipped."""

    __tablename__ = "medication_events"

    id = Column(String(64), primary_key=True)
    user_id = Column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    medication_id = Column(String(64), nullable=False)
    taken = Column(Boolean, nullable=False, default=True)
    timestamp = Column(BigInteger, nullable=False)  # Epoch ms

    __table_args__ = (
        Index("idx_medication_events_user_timestamp", "user_id", "timestamp"),
    )
