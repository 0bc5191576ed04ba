"""
FoodFlow Backend: Abstract Vision Service Interface
====================================================

What:  Contract for providers that turn a photo or free text into a list
       of ingredients.
How:   Concrete implementations inherit from VisionService and implement
       the recognition methods with their own retry and error translation.
Who:   RecognitionService calls it; the health endpoint calls health_check().
"""

from abc import ABC, abstractmethod
from typing import List

from foodflow.schemas.recognition import RecognizedIngredient


class VisionService(ABC):
    """
    Abstract interface for AI ingredient recognition.

    Contract:
        - Recognition methods return validated RecognizedIngredient items;
          an empty list means nothing was recognised
        - Provider failures are wrapped in LLMServiceError
        - CircuitBreakerOpenError is raised when the provider is being
          protected after repeated failures

    Implementations:
        - GeminiService: Google Gemini (default)
    """

    @abstractmethod
    async def recognize_from_image(
        self, image_bytes: bytes, mime_type: str
    ) -> List[RecognizedIngredient]:
        """
        Recognise ingredients visible in a photo (fridge shelf, receipt, pantry).

        Args:
            image_bytes: Raw image content, already validated by RecognitionService
            mime_type: "image/jpeg" or "image/png"
        """
        ...

    @abstractmethod
    async def recognize_from_text(self, text: str) -> List[RecognizedIngredient]:
        """Extract ingredients from free text such as a shopping note."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Lightweight reachability test that consumes no generation quota.

        Returns: True if the provider is reachable, False otherwise.
        """
        ...
