"""
Unit tests for CLI commands.

Tests the command-line interface for meal analysis.
"""
import json
import sys
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from app.cli import analyze_image, analyze_text, main
from app.models import Entry
from tests.factories import make_image_bytes


def _printed_json(mock_print) -> dict:
    return json.loads(mock_print.call_args.args[0])


# =============================================================================
# analyze_text Tests
# =============================================================================


class TestAnalyzeText:
    """Tests for the analyze_text function."""

    def test_prints_result(self, analysis_service):
        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=analysis_service), \
             patch("builtins.print") as mock_print:

            analyze_text("rice and dal")

        output = _printed_json(mock_print)
        assert output["detected_food_items"] == ["Steamed rice", "Dal tadka"]
        assert output["calories"] == 385
        assert "entry_id" not in output

    def test_save_creates_entry(self, analysis_service, db: Session):
        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=analysis_service), \
             patch("app.cli.SessionLocal", return_value=db), \
             patch("builtins.print") as mock_print:

            analyze_text("rice and dal", save=True, date="2026-01-31")

        output = _printed_json(mock_print)
        entry = db.query(Entry).filter(Entry.id == output["entry_id"]).first()
        assert entry is not None
        assert entry.name == "Steamed rice, Dal tadka"
        assert entry.date == "2026-01-31"

    def test_invalid_date_exits_before_model_call(self, analysis_service, mock_model_client):
        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=analysis_service), \
             patch("builtins.print") as mock_print, \
             pytest.raises(SystemExit) as exc_info:

            analyze_text("rice", save=True, date="not-a-date")

        assert exc_info.value.code == 1
        assert "Error: Invalid date" in str(mock_print.call_args)
        assert mock_model_client.call_count == 0

    def test_missing_key_exits(self, keyless_service):
        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=keyless_service), \
             patch("builtins.print") as mock_print, \
             pytest.raises(SystemExit) as exc_info:

            analyze_text("rice")

        assert exc_info.value.code == 1
        assert "(missing_api_key)" in str(mock_print.call_args)


# =============================================================================
# analyze_image Tests
# =============================================================================


class TestAnalyzeImage:
    """Tests for the analyze_image function."""

    def test_prints_result(self, analysis_service, mock_model_client, tmp_path):
        image_path = tmp_path / "lunch.png"
        image_path.write_bytes(make_image_bytes("PNG"))

        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=analysis_service), \
             patch("builtins.print") as mock_print:

            analyze_image(str(image_path))

        assert _printed_json(mock_print)["calories"] == 385
        call = mock_model_client.calls["generate_with_image"][0]["kwargs"]
        assert call["mime_type"] == "image/png"

    def test_file_not_found(self, tmp_path):
        with patch("builtins.print") as mock_print, \
             pytest.raises(SystemExit) as exc_info:

            analyze_image(str(tmp_path / "missing.jpg"))

        assert exc_info.value.code == 1
        assert "File not found" in str(mock_print.call_args)

    def test_invalid_date_exits_before_model_call(self, analysis_service, mock_model_client, tmp_path):
        image_path = tmp_path / "lunch.jpg"
        image_path.write_bytes(make_image_bytes("JPEG"))

        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=analysis_service), \
             patch("builtins.print") as mock_print, \
             pytest.raises(SystemExit) as exc_info:

            analyze_image(str(image_path), save=True, date="2026-13-01")

        assert exc_info.value.code == 1
        assert "Error: Invalid date" in str(mock_print.call_args)
        assert mock_model_client.call_count == 0

    def test_invalid_image_exits(self, analysis_service, tmp_path):
        image_path = tmp_path / "notes.jpg"
        image_path.write_bytes(b"definitely not a jpeg")

        with patch("app.cli.NutritionAnalysisService.from_settings", return_value=analysis_service), \
             patch("builtins.print") as mock_print, \
             pytest.raises(SystemExit) as exc_info:

            analyze_image(str(image_path))

        assert exc_info.value.code == 1
        assert "(invalid_image)" in str(mock_print.call_args)


# =============================================================================
# main() Tests
# =============================================================================


class TestMain:
    """Tests for argument parsing."""

    def test_no_command_prints_help(self):
        with patch.object(sys, "argv", ["meal-analyzer"]), \
             pytest.raises(SystemExit) as exc_info:

            main()

        assert exc_info.value.code == 1

    def test_dispatches_analyze_text(self):
        with patch.object(sys, "argv", ["meal-analyzer", "analyze-text", "2 rotis", "--save"]), \
             patch("app.cli.analyze_text") as mock_analyze:

            main()

        mock_analyze.assert_called_once_with("2 rotis", save=True, date=None)

    def test_dispatches_analyze_image(self):
        argv = ["meal-analyzer", "analyze-image", "meal.jpg", "--mime-type", "image/png"]
        with patch.object(sys, "argv", argv), \
             patch("app.cli.analyze_image") as mock_analyze:

            main()

        mock_analyze.assert_called_once_with("meal.jpg", "image/png", save=False, date=None)
