from sqlalchemy import Column, String, BigInteger, ForeignKey, Index
from sqlalchemy.orm import relationship

from correlator.database import Base
from correlator.models.types import JSONType


class FoodEventRecord(Base):
    """A logged meal: one or more foods eaten together at a point in time."""

    __tablename__ = "food_events"

    id = Column(String(64), primary_key=True)
    user_id = Column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    meal_id = Column(String(64))  # Groups foods logged in one sitting
    food_ids = Column(JSONType, nullable=False)  # ["food-1", "food-2"]
    portion_map = Column(JSONType)  # {"food-1": "small"}
    meal_type = Column(String(20))  # breakfast, lunch, dinner, snack
    timestamp = Column(BigInteger, nullable=False)  # Epoch ms

    user = relationship("User", back_populates="food_events")

    __table_args__ = (Index("idx_food_events_user_timestamp", "user_id", "timestamp"),)
