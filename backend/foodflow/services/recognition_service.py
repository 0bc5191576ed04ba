"""
FoodFlow Backend: Ingredient Recognition Service
=================================================

What:  Validates recognition input and hands it to the vision provider.
Who:   Called by the /ingredients/recognition routes.

Upload Validation (cheapest check first):
    1. Non-empty
    2. Size against settings.max_image_size
    3. Decodes as an image (Pillow verify), format JPEG or PNG
    4. Dimensions within MAX_DIMENSION (decompression bombs)

    Uploads are never written to disk; the bytes go straight to Gemini.
"""

import logging
from io import BytesIO
from typing import Dict, Optional

from PIL import Image, UnidentifiedImageError

from foodflow.config import settings
from foodflow.exceptions import ValidationError
from foodflow.schemas.recognition import RecognitionResponse
from foodflow.services.gemini_service import gemini_service
from foodflow.services.vision_base import VisionService

logger = logging.getLogger(__name__)

# Pillow format name → MIME type sent to the provider
ALLOWED_FORMATS: Dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
}

MAX_DIMENSION = 8192


class RecognitionService:
    """Input validation in front of a VisionService."""

    def __init__(self, vision: Optional[VisionService] = None):
        self.vision = vision or gemini_service

    def validate_image(self, content: bytes, content_length: Optional[int] = None) -> str:
        """
        Check an uploaded image and return its MIME type.

        Raises:
            ValidationError: empty, too large, not an image, or not JPEG/PNG
        """
        max_mb = settings.max_image_size / (1024 * 1024)

        if not content:
            raise ValidationError(message="The uploaded image is empty.", field="file")

        if content_length and content_length > settings.max_image_size:
            raise ValidationError(
                message=f"Image exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if len(content) > settings.max_image_size:
            raise ValidationError(
                message=f"Image ({len(content) / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": len(content)},
            )

        try:
            with Image.open(BytesIO(content)) as img:
                image_format = img.format
                width, height = img.size
                img.verify()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            logger.info("Rejected upload that is not a readable image: %s", str(e))
            raise ValidationError(
                message="The file must be a valid image (PNG or JPEG).",
                field="file",
            )

        if image_format not in ALLOWED_FORMATS:
            raise ValidationError(
                message=f"Image format '{image_format}' is not supported. Use PNG or JPEG.",
                field="file",
                context={"detected_format": image_format, "allowed": sorted(ALLOWED_FORMATS)},
            )

        if width > MAX_DIMENSION or height > MAX_DIMENSION:
            raise ValidationError(
                message=f"Image dimensions {width}x{height} exceed {MAX_DIMENSION}x{MAX_DIMENSION}.",
                field="file",
            )

        return ALLOWED_FORMATS[image_format]

    async def recognize_image(
        self, content: bytes, content_length: Optional[int] = None
    ) -> RecognitionResponse:
        mime_type = self.validate_image(content, content_length)
        ingredients = await self.vision.recognize_from_image(content, mime_type)
        return RecognitionResponse(ingredients=ingredients, source="image")

    async def recognize_text(self, text: str) -> RecognitionResponse:
        ingredients = await self.vision.recognize_from_text(text)
        return RecognitionResponse(ingredients=ingredients, source="text")


# ── Singleton Instance ────────────────────────────────────────────────────
recognition_service = RecognitionService()
