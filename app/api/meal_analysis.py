"""API endpoints for AI meal nutrition analysis."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.ai_errors import classify_error
from app.services.ai_service import (
    IMAGE_ERROR_CONTEXT,
    TEXT_ERROR_CONTEXT,
    NutritionAnalysisService,
    retry_on_transient_error,
)
from app.services.entry_service import entry_service, validate_entry_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["meal-analysis"])

# Initialize AI service
nutrition_service = NutritionAnalysisService.from_settings()


def _bad_request(error: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=400, content={"success": False, "error": error, **extra}
    )


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


async def _run_analysis(analyze, *args, context: str):
    """Bounded retry for transient failures inside one overall timeout."""
    attempt = retry_on_transient_error(
        max_attempts=settings.analysis_max_attempts,
        base_delay=settings.analysis_retry_base_delay,
    )(analyze)
    try:
        return await asyncio.wait_for(attempt(*args), timeout=settings.analysis_timeout)
    except TimeoutError as e:
        raise classify_error(e, context) from e


@router.post("/analyze-meal-text")
async def analyze_meal_text(request: Request, db: Session = Depends(get_db)):
    """
    Analyze a meal from a text description.

    Body: {"meal_text": "2 rotis and a bowl of dal", "save": false, "date": "2026-01-31"}
    ("meal-text" is accepted as an alias.)

    Returns: {"success": true, "data": <analysis>, "message": ...}
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    meal_text = payload.get("meal_text") or payload.get("meal-text")
    if not isinstance(meal_text, str) or not meal_text.strip():
        received_keys = list(payload.keys())
        return _bad_request(
            "Invalid request: meal_text (or meal-text) is required and must be a non-empty string",
            received_fields=received_keys or ["none"],
            hint=(
                f"You sent: {received_keys}. Expected: \"meal_text\" or \"meal-text\""
                if received_keys
                else "Request body is empty. Make sure you are sending JSON with Content-Type: application/json"
            ),
        )

    save = _as_bool(payload.get("save", False))
    entry_date = payload.get("date")
    if save and entry_date:
        try:
            entry_date = validate_entry_date(entry_date)
        except ValueError as e:
            return _bad_request(str(e))

    result = await _run_analysis(
        nutrition_service.analyze_meal_text,
        meal_text.strip(),
        context=TEXT_ERROR_CONTEXT,
    )

    body = {
        "success": True,
        "data": result.model_dump(mode="json"),
        "message": "Meal analyzed successfully",
    }
    if save:
        entry = entry_service.create_meal_entry(db, result, date=entry_date)
        body["entry_id"] = entry.id
    return body


@router.post("/analyze-meal-image")
async def analyze_meal_image(
    meal_image: Optional[UploadFile] = File(None),
    save: bool = Form(False),
    date: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """
    Analyze a meal from an uploaded photo (multipart field "meal_image").

    Returns: {"success": true, "data": <analysis>, "message": ...}
    """
    if meal_image is None or not meal_image.filename:
        return _bad_request("Invalid request: meal_image file is required")

    if not (meal_image.content_type or "").startswith("image/"):
        return _bad_request("Invalid file type. Only image files are allowed.")

    if save and date:
        try:
            date = validate_entry_date(date)
        except ValueError as e:
            return _bad_request(str(e))

    contents = await meal_image.read()
    if len(contents) > settings.max_image_bytes:
        max_mb = settings.max_image_bytes // (1024 * 1024)
        return _bad_request(f"File too large. Maximum size is {max_mb}MB.")

    result = await _run_analysis(
        nutrition_service.analyze_meal_image,
        contents,
        meal_image.content_type,
        context=IMAGE_ERROR_CONTEXT,
    )

    body = {
        "success": True,
        "data": result.model_dump(mode="json"),
        "message": "Meal image analyzed successfully",
    }
    if save:
        entry = entry_service.create_meal_entry(db, result, date=date)
        body["entry_id"] = entry.id
    return body
