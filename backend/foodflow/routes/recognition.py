"""
FoodFlow Backend: Ingredient Recognition Route Handlers
========================================================

What:  Turns a photo or a piece of text into a list of ingredients.
Who:   Called by the "what's in my fridge" screen.

Error responses (handled by global exception handlers):
    HTTP 400: Empty text, empty/oversized/non-image upload (ValidationError)
    HTTP 503: Gemini unavailable (LLMServiceError / CircuitBreakerOpenError)
"""

import logging

from fastapi import APIRouter, File, UploadFile

from foodflow.schemas.common import ErrorResponse
from foodflow.schemas.recognition import RecognitionResponse, TextRecognitionRequest
from foodflow.services.recognition_service import recognition_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingredients/recognition", tags=["Recognition"])

_ERROR_RESPONSES = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    503: {"description": "Recognition service unavailable", "model": ErrorResponse},
}


@router.post(
    "/text",
    response_model=RecognitionResponse,
    responses=_ERROR_RESPONSES,
    summary="Recognise ingredients in free text",
)
async def recognize_text(body: TextRecognitionRequest) -> RecognitionResponse:
    logger.info("Received text recognition request: %d chars", len(body.text))
    return await recognition_service.recognize_text(body.text)


@router.post(
    "/image",
    response_model=RecognitionResponse,
    responses=_ERROR_RESPONSES,
    summary="Recognise ingredients in a photo",
    description="Upload a PNG or JPEG photo (fridge, pantry, receipt).",
)
async def recognize_image(
    file: UploadFile = File(..., description="PNG or JPEG image"),
) -> RecognitionResponse:
    content = await file.read()

    logger.info(
        "Received image recognition request: filename=%s, size=%d bytes",
        file.filename or "unknown",
        len(content),
    )

    try:
        return await recognition_service.recognize_image(content, content_length=file.size)
    finally:
        await file.close()
