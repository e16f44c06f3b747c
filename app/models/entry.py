from sqlalchemy import Column, DateTime, Float, Index, Integer, String, JSON
from sqlalchemy.sql import func

from app.database import Base

ENTRY_TYPES = ("meal", "exercise")


class Entry(Base):
    """Daily log entry: a meal summary or an exercise session."""

    __tablename__ = "entries"

    id = Column(Integer, primary_key=True)
    name = Column(String(512), nullable=False)
    type = Column(String(20), nullable=False)  # 'meal' or 'exercise'
    calories = Column(Float, nullable=False)
    protein = Column(Float)  # grams
    carbs = Column(Float)  # grams
    fats = Column(Float)  # grams
    duration = Column(Integer)  # minutes, required for exercise
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    history = Column(
        JSON, nullable=False, default=list
    )  # [{"snapshot": {...}, "updated_at": iso}]
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_entries_date", "date"),
        Index("idx_entries_type", "type"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fats": self.fats,
            "duration": self.duration,
            "date": self.date,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Entry(id={self.id}, type={self.type}, name={self.name!r})>"
