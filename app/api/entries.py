"""API endpoints for reading persisted entries."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.entry import ENTRY_TYPES
from app.services.entry_service import entry_service

router = APIRouter(prefix="/api/entries", tags=["entries"])


@router.get("")
async def list_entries(
    date: Optional[str] = None,
    entry_type: Optional[str] = Query(None, alias="type"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """List entries, newest first. Filter by date (YYYY-MM-DD) and/or type."""
    if entry_type is not None and entry_type not in ENTRY_TYPES:
        raise HTTPException(
            status_code=400, detail=f"Invalid entry type. Allowed: {list(ENTRY_TYPES)}"
        )

    try:
        entries = entry_service.find_entries(db, date=date, entry_type=entry_type, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "data": [entry.to_dict() for entry in entries]}


@router.get("/{entry_id}")
async def get_entry(entry_id: int, db: Session = Depends(get_db)):
    entry = entry_service.get_entry(db, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Entry not found")
    return {"success": True, "data": entry.to_dict()}
