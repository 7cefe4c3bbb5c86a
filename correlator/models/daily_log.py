from sqlalchemy import Column, String, Integer, Float, ForeignKey, Index

from correlator.database import Base


class DailyLogRecord(Base):
    """End-of-day wellbeing check-in: sleep, mood and stress."""

    __tablename__ = "daily_logs"

    id = Column(String(64), primary_key=True)
    user_id = Column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    sleep_hours = Column(Float)
    sleep_quality = Column(Integer)  # 1-10
    mood = Column(Integer)  # 1-5
    stress_level = Column(Integer)  # 1-10

    __table_args__ = (Index("idx_daily_logs_user_date", "user_id", "date", unique=True),)
