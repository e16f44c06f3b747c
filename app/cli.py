"""CLI commands for the meal nutrition analyzer."""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from sqlalchemy.orm import Session

from app.database import Base, SessionLocal, engine
from app.services.ai_errors import ClassifiedError
from app.services.ai_service import NutritionAnalysisService
from app.services.entry_service import entry_service, validate_entry_date


def _check_entry_date(save: bool, date: str | None) -> str | None:
    """Reject a bad --date before the model is called."""
    if not (save and date):
        return date
    try:
        return validate_entry_date(date)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _print_result(result, save: bool, date: str | None = None) -> None:
    output = result.model_dump(mode="json")

    if save:
        Base.metadata.create_all(bind=engine)
        db: Session = SessionLocal()
        try:
            entry = entry_service.create_meal_entry(db, result, date=date)
            output["entry_id"] = entry.id
        finally:
            db.close()

    print(json.dumps(output, indent=2))


def analyze_text(meal_text: str, save: bool = False, date: str | None = None) -> None:
    """Analyze a meal description and print the result as JSON."""
    date = _check_entry_date(save, date)
    service = NutritionAnalysisService.from_settings()

    try:
        result = asyncio.run(service.analyze_meal_text(meal_text))
    except ClassifiedError as e:
        print(f"Error: {e.public_message} ({e.code})")
        sys.exit(1)

    _print_result(result, save, date)


def analyze_image(
    image_path: str,
    mime_type: str | None = None,
    save: bool = False,
    date: str | None = None,
) -> None:
    """Analyze a meal photo and print the result as JSON."""
    path = Path(image_path)
    if not path.is_file():
        print(f"Error: File not found: {image_path}")
        sys.exit(1)

    date = _check_entry_date(save, date)

    if mime_type is None:
        mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"

    service = NutritionAnalysisService.from_settings()

    try:
        result = asyncio.run(service.analyze_meal_image(path.read_bytes(), mime_type))
    except ClassifiedError as e:
        print(f"Error: {e.public_message} ({e.code})")
        sys.exit(1)

    _print_result(result, save, date)


def main():
    parser = argparse.ArgumentParser(description="Meal Nutrition Analyzer CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # analyze-text command
    text_parser = subparsers.add_parser(
        "analyze-text", help="Estimate nutrition for a meal description"
    )
    text_parser.add_argument("meal_text", help="Meal description, e.g. '2 rotis and dal'")
    text_parser.add_argument("--save", action="store_true", help="Save a meal entry")
    text_parser.add_argument("--date", help="Entry date (YYYY-MM-DD), defaults to today")

    # analyze-image command
    image_parser = subparsers.add_parser(
        "analyze-image", help="Estimate nutrition for a meal photo"
    )
    image_parser.add_argument("image_path", help="Path to the meal image")
    image_parser.add_argument("--mime-type", help="Override the detected MIME type")
    image_parser.add_argument("--save", action="store_true", help="Save a meal entry")
    image_parser.add_argument("--date", help="Entry date (YYYY-MM-DD), defaults to today")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "analyze-text":
        analyze_text(args.meal_text, save=args.save, date=args.date)
    elif args.command == "analyze-image":
        analyze_image(args.image_path, args.mime_type, save=args.save, date=args.date)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
