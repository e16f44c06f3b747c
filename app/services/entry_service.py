"""Business logic for persisted log entries."""

import logging
from datetime import date as date_type, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.entry import Entry, ENTRY_TYPES
from app.services.ai_schemas import AnalysisResult

logger = logging.getLogger(__name__)


def _today() -> str:
    return date_type.today().isoformat()


def validate_entry_date(value: str) -> str:
    """Entries store dates as YYYY-MM-DD strings."""
    try:
        return date_type.fromisoformat(value).isoformat()
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid date: {value!r}. Expected YYYY-MM-DD") from e


class EntryService:
    """Create/find interface for meal and exercise entries."""

    @staticmethod
    def create_entry(
        db: Session,
        name: str,
        entry_type: str,
        calories: float,
        protein: Optional[float] = None,
        carbs: Optional[float] = None,
        fats: Optional[float] = None,
        duration: Optional[int] = None,
        date: Optional[str] = None,
        snapshot: Optional[dict] = None,
    ) -> Entry:
        """
        Create a new entry.

        Args:
            db: Database session
            name: Display name
            entry_type: 'meal' or 'exercise'
            calories: Energy in kcal (required)
            protein, carbs, fats: Macros in grams
            duration: Minutes (required for exercise)
            date: YYYY-MM-DD (defaults to today)
            snapshot: Optional payload recorded as the first history item

        Returns:
            Created Entry object

        Raises:
            ValueError: On a blank name, unknown type, missing exercise
                duration or malformed date
        """
        if not name or not name.strip():
            raise ValueError("Entry name is required")
        if entry_type not in ENTRY_TYPES:
            raise ValueError(f"Invalid entry type: {entry_type}. Allowed: {ENTRY_TYPES}")
        if entry_type == "exercise" and duration is None:
            raise ValueError("Exercise entries require a duration")

        history = []
        if snapshot is not None:
            history.append(
                {
                    "snapshot": snapshot,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )

        entry = Entry(
            name=name.strip(),
            type=entry_type,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fats=fats,
            duration=duration,
            date=validate_entry_date(date) if date else _today(),
            history=history,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)

        logger.info("Created %s entry %d (%s)", entry.type, entry.id, entry.date)
        return entry

    @staticmethod
    def create_meal_entry(
        db: Session, result: AnalysisResult, date: Optional[str] = None
    ) -> Entry:
        """
        Persist the summary record for an analyzed meal.

        The name joins the detected dish names; macros come from the resolved
        total. The full result is kept as the first history snapshot.
        """
        return EntryService.create_entry(
            db=db,
            name=", ".join(result.detected_food_items),
            entry_type="meal",
            calories=result.calories,
            protein=result.protein_g,
            carbs=result.carbs_g,
            fats=result.fat_g,
            date=date,
            snapshot=result.model_dump(mode="json"),
        )

    @staticmethod
    def get_entry(db: Session, entry_id: int) -> Optional[Entry]:
        return db.query(Entry).filter(Entry.id == entry_id).first()

    @staticmethod
    def find_entries(
        db: Session,
        date: Optional[str] = None,
        entry_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[Entry]:
        """Entries, newest first, optionally filtered by date and type."""
        query = db.query(Entry)
        if date:
            query = query.filter(Entry.date == validate_entry_date(date))
        if entry_type:
            query = query.filter(Entry.type == entry_type)
        return query.order_by(Entry.id.desc()).limit(limit).all()


# Singleton instance
entry_service = EntryService()
