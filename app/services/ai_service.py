"""
AI meal nutrition analysis.

NutritionAnalysisService runs one analysis per call:

    credential check -> prompt -> model call -> JSON extraction -> normalization

Every failure on the way is classified (see ai_errors) before it reaches the
caller. The service does not retry; callers that want retries wrap the call
with retry_on_transient_error().
"""

import asyncio
import base64
import binascii
import io
import logging
import random
import re
from functools import wraps
from typing import Optional, Protocol, Union

import httpx
from anthropic import AsyncAnthropic
from PIL import Image

from app.config import Settings, settings
from app.services.ai_errors import (
    BadInputError,
    ClassifiedError,
    MissingCredentialError,
    classify_error,
)
from app.services.ai_schemas import AnalysisResult
from app.services.json_extraction import extract_json
from app.services.nutrition_normalizer import normalize_nutrition
from app.services.prompts import build_nutrition_prompt


logger = logging.getLogger(__name__)

TEXT_ERROR_CONTEXT = "Failed to analyze meal text"
IMAGE_ERROR_CONTEXT = "Failed to analyze meal image"

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

# Pillow format name -> media type accepted by the vision model
SUPPORTED_IMAGE_FORMATS = {
    "JPEG": "image/jpeg",
    # Multi-picture JPEG from phones and cameras; the first frame is a plain JPEG
    "MPO": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")


def retry_on_transient_error(max_attempts=2, base_delay=1.0):
    """
    Retry decorator for analysis calls that failed with a transient kind.

    Only ClassifiedErrors flagged transient (rate limits, transport failures)
    are retried. Credential and input errors are raised immediately.

    Args:
        max_attempts: Maximum attempts including the first (default 2)
        base_delay: Base delay in seconds for exponential backoff (default 1.0)
    """
    max_attempts = max(1, max_attempts)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except ClassifiedError as e:
                    if not e.transient or attempt == max_attempts - 1:
                        raise

                    # Exponential backoff with jitter
                    delay = base_delay * (2**attempt)
                    jitter = delay * 0.1 * (2 * random.random() - 1)
                    sleep_time = delay + jitter

                    logger.warning(
                        "%s (%s) on attempt %d/%d, retrying in %.1fs...",
                        e.kind.value,
                        e.code,
                        attempt + 1,
                        max_attempts,
                        sleep_time,
                    )
                    await asyncio.sleep(sleep_time)

        return wrapper

    return decorator


class NutritionModelClient(Protocol):
    """Narrow interface to the generative model. Returns raw response text."""

    async def generate(self, prompt: str) -> str: ...

    async def generate_with_image(
        self, prompt: str, image_bytes: bytes, mime_type: str
    ) -> str: ...


class ClaudeNutritionClient:
    """NutritionModelClient backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        text_model: str,
        vision_model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout: float = 60,
        connect_timeout: float = 10,
    ):
        self.client = AsyncAnthropic(
            api_key=api_key,
            timeout=httpx.Timeout(timeout=timeout, connect=connect_timeout),
        )
        self.text_model = text_model
        self.vision_model = vision_model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        response = await self.client.messages.create(
            model=self.text_model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return self._response_text(response)

    async def generate_with_image(
        self, prompt: str, image_bytes: bytes, mime_type: str
    ) -> str:
        response = await self.client.messages.create(
            model=self.vision_model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": mime_type,
                                "data": base64.standard_b64encode(image_bytes).decode(
                                    "utf-8"
                                ),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )
        return self._response_text(response)

    @staticmethod
    def _response_text(response) -> str:
        """Concatenate all text blocks of a response."""
        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return text


class NutritionAnalysisService:
    """
    Meal nutrition analysis for text descriptions and meal photos.

    The credential and model names are passed in at construction; nothing here
    reads process configuration. Use from_settings() at the application edge.
    """

    def __init__(
        self,
        api_key: Optional[str],
        text_model: str = "claude-sonnet-4-5-20250929",
        vision_model: str = "claude-sonnet-4-5-20250929",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout: float = 60,
        connect_timeout: float = 10,
        client: Optional[NutritionModelClient] = None,
    ):
        self.api_key = api_key
        self.text_model = text_model
        self.vision_model = vision_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._client = client

    @classmethod
    def from_settings(
        cls, config: Settings = settings, client: Optional[NutritionModelClient] = None
    ) -> "NutritionAnalysisService":
        return cls(
            api_key=config.anthropic_api_key,
            text_model=config.text_model,
            vision_model=config.vision_model,
            temperature=config.analysis_temperature,
            max_tokens=config.analysis_max_tokens,
            timeout=config.anthropic_timeout,
            connect_timeout=config.anthropic_connect_timeout,
            client=client,
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def analyze_meal_text(self, meal_text: str) -> AnalysisResult:
        """
        Estimate nutrition for a free-text meal description.

        Args:
            meal_text: Non-empty meal description, e.g. "2 rotis and dal"

        Returns:
            AnalysisResult with per-dish nutrition and totals

        Raises:
            ClassifiedError: MissingCredentialError, UnauthorizedError,
                RateLimitError, InvalidModelResponseError,
                ServiceUnavailableError or BadInputError
        """
        try:
            logger.info("Starting meal text analysis")
            client = self._get_client()
            prompt = build_nutrition_prompt(meal_text=meal_text)

            logger.info("Sending text analysis request (model=%s)", self.text_model)
            raw_text = await client.generate(prompt)

            return self._parse_and_normalize(raw_text)
        except Exception as e:
            raise self._classify(e, TEXT_ERROR_CONTEXT) from e

    async def analyze_meal_image(
        self,
        image_data: Union[bytes, bytearray, str],
        mime_type: str = DEFAULT_IMAGE_MIME_TYPE,
    ) -> AnalysisResult:
        """
        Estimate nutrition for a meal photo.

        Args:
            image_data: Raw image bytes, or a base64 string (a data URL
                prefix is allowed)
            mime_type: Declared MIME type; the detected format wins if they
                disagree

        Returns:
            AnalysisResult with per-dish nutrition and totals

        Raises:
            ClassifiedError: as analyze_meal_text(); BadInputError with code
                invalid_image for undecodable or unsupported images
        """
        try:
            logger.info("Starting meal image analysis (declared type=%s)", mime_type)
            client = self._get_client()
            image_bytes = self._decode_image(image_data)
            media_type = self._detect_media_type(image_bytes, mime_type)
            prompt = build_nutrition_prompt(is_image=True)

            logger.info(
                "Sending image analysis request (model=%s, %d bytes)",
                self.vision_model,
                len(image_bytes),
            )
            raw_text = await client.generate_with_image(prompt, image_bytes, media_type)

            return self._parse_and_normalize(raw_text)
        except Exception as e:
            raise self._classify(e, IMAGE_ERROR_CONTEXT) from e

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _get_client(self) -> NutritionModelClient:
        """Check the credential, then build the model client on first use."""
        if not isinstance(self.api_key, str) or not self.api_key.strip():
            raise MissingCredentialError(
                "Anthropic API key not configured: set ANTHROPIC_API_KEY in your .env"
            )

        if self._client is None:
            self._client = ClaudeNutritionClient(
                api_key=self.api_key.strip(),
                text_model=self.text_model,
                vision_model=self.vision_model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
                connect_timeout=self.connect_timeout,
            )
        return self._client

    def _parse_and_normalize(self, raw_text: str) -> AnalysisResult:
        logger.debug("Raw model response: %s", raw_text)

        parsed = extract_json(raw_text)
        result = normalize_nutrition(parsed)

        logger.info(
            "Meal analyzed: %d dish(es), %s kcal total",
            len(result.dishes),
            result.calories,
        )
        return result

    @staticmethod
    def _decode_image(image_data) -> bytes:
        if isinstance(image_data, (bytes, bytearray)):
            data = bytes(image_data)
        elif isinstance(image_data, str):
            encoded = _DATA_URL_PREFIX.sub("", image_data.strip())
            try:
                data = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise BadInputError(
                    "Invalid image data: not valid base64", code="invalid_image"
                ) from e
        else:
            raise BadInputError("Invalid image data format", code="invalid_image")

        if not data:
            raise BadInputError("Invalid image data: empty payload", code="invalid_image")
        return data

    @staticmethod
    def _detect_media_type(image_bytes: bytes, declared: str) -> str:
        """Identify the image with Pillow and return its media type."""
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                image_format = img.format
                img.verify()
        except Exception as e:
            raise BadInputError(
                "Invalid image data: could not decode image", code="invalid_image"
            ) from e

        media_type = SUPPORTED_IMAGE_FORMATS.get(image_format)
        if media_type is None:
            raise BadInputError(
                f"Unsupported image format: {image_format}. "
                f"Allowed: {sorted(set(SUPPORTED_IMAGE_FORMATS.values()))}",
                code="invalid_image",
            )

        if declared and declared.lower().replace("image/jpg", "image/jpeg") != media_type:
            logger.warning(
                "Declared image type %s does not match detected %s, using detected",
                declared,
                media_type,
            )
        return media_type

    @staticmethod
    def _classify(error: Exception, context: str) -> ClassifiedError:
        classified = classify_error(error, context)
        logger.error(
            "%s: kind=%s code=%s cause=%r",
            context,
            classified.kind.value,
            classified.code,
            classified.cause,
        )
        return classified
