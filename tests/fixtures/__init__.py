"""Test fixtures for the meal nutrition analyzer."""

from tests.fixtures.mocks import (
    DEFAULT_MODEL_PAYLOAD,
    MockNutritionClient,
    create_mock_with_error,
    create_mock_for_payload,
)

__all__ = [
    "DEFAULT_MODEL_PAYLOAD",
    "MockNutritionClient",
    "create_mock_with_error",
    "create_mock_for_payload",
]
