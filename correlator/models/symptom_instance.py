from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, Index
from sqlalchemy.orm import relationship

from correlator.database import Base


class SymptomInstanceRecord(Base):
    """A single symptom occurrence with its severity."""

    __tablename__ = "symptom_instances"

    id = Column(String(64), primary_key=True)
    user_id = Column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)  # e.g. "bloating", "headache"
    category = Column(String(100))
    severity = Column(Integer, nullable=False)  # 0-10 scale
    timestamp = Column(BigInteger, nullable=False)  # Epoch ms

    user = relationship("User", back_populates="symptom_instances")

    __table_args__ = (
        Index("idx_symptom_instances_user_timestamp", "user_id", "timestamp"),
        Index("idx_symptom_instances_name", "name"),
    )
