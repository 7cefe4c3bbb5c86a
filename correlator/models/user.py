from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from correlator.database import Base


class User(Base):
    """Owner of event logs and cached correlations."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    food_events = relationship(
        "FoodEventRecord", back_populates="user", cascade="all, delete-orphan"
    )
    symptom_instances = relationship(
        "SymptomInstanceRecord", back_populates="user", cascade="all, delete-orphan"
    )
