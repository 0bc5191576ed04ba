"""
FoodFlow Backend: Ingredient Recognition Schemas
=================================================

What:  Request and response shapes for /ingredients/recognition.

The model is asked for `{name, category, quantity, unit}` objects. Models
return quantities both as numbers and as strings ("2", 2, "a pinch"), so
`quantity` is normalised to a string.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from foodflow.schemas.common import CamelModel


class TextRecognitionRequest(BaseModel):
    text: str = Field(
        min_length=1,
        max_length=5000,
        description="Free text (a shopping note, a recipe paragraph) to extract ingredients from",
    )

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("text must not be blank")
        return stripped


class RecognizedIngredient(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    category: Optional[str] = Field(default=None, max_length=50)
    quantity: Optional[str] = Field(default=None, max_length=50)
    unit: Optional[str] = Field(default=None, max_length=30)

    @field_validator("quantity", mode="before")
    @classmethod
    def quantity_as_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("ingredient name must not be blank")
        return stripped


class RecognitionResponse(CamelModel):
    ingredients: List[RecognizedIngredient]
    source: str = Field(description="'text' or 'image'")
