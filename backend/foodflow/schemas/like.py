"""Request/response schemas for the recipe like endpoints."""

from pydantic import Field

from foodflow.schemas.common import CamelModel


class LikeResponse(CamelModel):
    """
    Result of a like toggle, and of the like-status query.

    `like_count` is the reconciled COUNT(*) of like rows at the end of the
    caller's transaction, never a client-side increment.
    """
    liked: bool = Field(description="Whether the caller likes the recipe after this call")
    like_count: int = Field(ge=0, description="Number of users who like the recipe")


class LikeCountResponse(CamelModel):
    like_count: int = Field(ge=0, description="Reconciled number of likes")
