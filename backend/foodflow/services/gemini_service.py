"""
FoodFlow Backend: Google Gemini Ingredient Recognition
=======================================================

What:  VisionService implementation backed by Google Gemini.
How:   Sends a photo or a piece of text with a prompt that asks for a JSON
       array of ingredients, then parses and validates the answer.
Who:   Instantiated once at import; called by RecognitionService.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker so a Gemini outage fails fast instead of stacking
       30s retry chains on every request
    3. Per-call request ids in the logs for correlating retries

Output Parsing:
    Models wrap JSON in prose or ``` fences often enough that the reply is
    never parsed as-is. parse_ingredient_payload() pulls out the first JSON
    array and validates each element; elements that fail validation are
    dropped with a warning instead of failing the whole request.
"""

import json
import logging
import time
import uuid
from typing import Any, List, Optional

import google.generativeai as genai
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from foodflow.config import settings
from foodflow.exceptions import CircuitBreakerOpenError, LLMServiceError
from foodflow.schemas.recognition import RecognizedIngredient
from foodflow.services.vision_base import VisionService

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()


def parse_ingredient_payload(text: Optional[str]) -> List[RecognizedIngredient]:
    """
    Turn a model reply into validated ingredients.

    Accepts bare JSON, fenced JSON and JSON surrounded by prose. Returns an
    empty list when no array can be found or decoded.
    """
    if not text:
        return []

    start = text.find("[")
    if start == -1:
        logger.warning("Gemini reply contained no JSON array (%d chars)", len(text))
        return []

    try:
        items, _ = _DECODER.raw_decode(text, start)
    except json.JSONDecodeError as e:
        logger.warning("Gemini reply JSON could not be decoded: %s", str(e))
        return []

    if not isinstance(items, list):
        return []

    ingredients: List[RecognizedIngredient] = []
    for item in items:
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            logger.warning("Skipping non-object ingredient entry: %r", item)
            continue
        try:
            ingredients.append(RecognizedIngredient.model_validate(item))
        except PydanticValidationError as e:
            logger.warning("Skipping invalid ingredient entry %r: %s", item, e.errors()[0]["msg"])
    return ingredients


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the Gemini API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow one request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Thread Safety:
        Plain counters, one breaker per process. uvicorn async workers run
        every request of a process on the same event loop thread.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        """
        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before testing recovery
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if the circuit is OPEN and the recovery
            timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        """Record a failed call; may trigger CLOSED → OPEN."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(VisionService):
    """
    Gemini-backed ingredient recognition.

    Error Handling Chain:
        API call fails → tenacity retries (retry_max_attempts, with backoff)
        → all retries fail → circuit breaker failure recorded → LLMServiceError
        → threshold reached → later calls rejected instantly (503)
        → recovery timeout → one test call (HALF_OPEN)
    """

    IMAGE_PROMPT = """You are a kitchen assistant. Identify every food ingredient
visible in this photo (fridge shelves, pantry, groceries or a receipt).

Return ONLY a JSON array. Each element must be an object with the keys:
  "name"      - ingredient name in singular, lowercase English
  "category"  - one of: vegetable, fruit, meat, fish, dairy, grain, spice, condiment, other
  "quantity"  - estimated amount as a string, or null if unknown
  "unit"      - unit of the quantity (g, ml, pcs, ...), or null
If no ingredients are visible, return []."""

    TEXT_PROMPT = """You are a kitchen assistant. Extract every food ingredient
mentioned in the text below.

Return ONLY a JSON array. Each element must be an object with the keys
"name", "category", "quantity" and "unit" (use null when unknown).
If the text mentions no ingredients, return [].

Text:
"""

    def __init__(self):
        # The SDK keeps the API key in module-level state
        if settings.gemini_api_key and settings.gemini_api_key != "your_gemini_api_key_here":
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def recognize_from_image(
        self, image_bytes: bytes, mime_type: str
    ) -> List[RecognizedIngredient]:
        parts = [self.IMAGE_PROMPT, {"mime_type": mime_type, "data": image_bytes}]
        return await self._recognize(parts, source="image")

    async def recognize_from_text(self, text: str) -> List[RecognizedIngredient]:
        return await self._recognize([self.TEXT_PROMPT + text], source="text")

    async def _recognize(self, parts: List[Any], source: str) -> List[RecognizedIngredient]:
        """
        Circuit breaker check, retried call, reply parsing.

        Raises:
            CircuitBreakerOpenError: Circuit is open
            LLMServiceError: Gemini failed after all retry attempts
        """
        request_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        logger.info("[%s] Starting Gemini %s recognition", request_id, source)

        try:
            reply = await self._call_gemini_with_retry(parts, request_id)
            self.circuit_breaker.record_success()
        except CircuitBreakerOpenError:
            raise
        except RetryError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All Gemini retries exhausted: %s",
                request_id,
                str(e.last_attempt.exception()) if e.last_attempt else "Unknown error",
            )
            raise LLMServiceError(
                message="Ingredient recognition failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": settings.retry_max_attempts},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Unexpected Gemini error: %s",
                request_id,
                str(e),
                exc_info=True,
            )
            raise LLMServiceError(
                message="An unexpected error occurred during ingredient recognition.",
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

        ingredients = parse_ingredient_payload(reply)
        logger.info("[%s] Recognised %d ingredients", request_id, len(ingredients))
        return ingredients

    @retry(
        retry=retry_if_exception_type(Exception),  # the SDK raises generic exceptions for API errors
        stop=stop_after_attempt(settings.retry_max_attempts),
        # wait = min(max_wait, min_wait * 2^attempt) + random(0, 1)
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    async def _call_gemini_with_retry(self, parts: List[Any], request_id: str) -> str:
        """
        The actual API call, kept apart so the circuit breaker check in
        _recognize() is not retried along with it.
        """
        start_time = time.time()

        try:
            response = await self.model.generate_content_async(
                parts,
                request_options={"timeout": 60},
            )
            duration_ms = (time.time() - start_time) * 1000
            reply = response.text.strip() if response.text else ""

            logger.info(
                "[%s] Gemini call completed in %.0fms, reply %d chars",
                request_id,
                duration_ms,
                len(reply),
            )
            return reply

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                duration_ms,
                str(e),
            )
            raise

    async def health_check(self) -> bool:
        """
        Check if the Gemini API is reachable.

        Lists models (no token cost) rather than generating anything.
        """
        try:
            models = genai.list_models()
            model_names = [m.name for m in models]
            target = f"models/{settings.gemini_model}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, which must be shared across requests
gemini_service = GeminiService()
