"""
FoodFlow Backend: Recipe Like Route Handlers
=============================================

What:  Like toggle, like status and like count for a recipe.
Who:   Called by the recipe detail page's heart button.

Caching:
    None of these responses are cacheable; every one reflects the like rows
    at request time.
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from foodflow.database import get_db_session
from foodflow.routes.deps import get_current_user_id
from foodflow.schemas.common import ErrorResponse
from foodflow.schemas.like import LikeCountResponse, LikeResponse
from foodflow.services.like_service import like_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes", tags=["Likes"])


@router.post(
    "/{recipe_id}/like",
    response_model=LikeResponse,
    responses={
        200: {"description": "Like state after the toggle", "model": LikeResponse},
        400: {"description": "Missing or invalid X-User-Id", "model": ErrorResponse},
        404: {"description": "Recipe not found", "model": ErrorResponse},
        500: {"description": "Persistence failure or timeout", "model": ErrorResponse},
    },
    summary="Like or unlike a recipe",
    description=(
        "Toggles the caller's like on the recipe. Returns whether the caller now "
        "likes it and the reconciled like count. The first like by someone other "
        "than the owner notifies the owner."
    ),
)
async def toggle_like(
    recipe_id: int,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> LikeResponse:
    result = await like_service.toggle_like(db=db, recipe_id=recipe_id, user_id=user_id)
    response.headers["Cache-Control"] = "no-store"
    return result


@router.get(
    "/{recipe_id}/like",
    response_model=LikeResponse,
    responses={
        404: {"description": "Recipe not found", "model": ErrorResponse},
    },
    summary="Get the caller's like status for a recipe",
)
async def get_like_status(
    recipe_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> LikeResponse:
    return await like_service.get_like_status(db=db, recipe_id=recipe_id, user_id=user_id)


@router.get(
    "/{recipe_id}/like-count",
    response_model=LikeCountResponse,
    responses={
        404: {"description": "Recipe not found", "model": ErrorResponse},
    },
    summary="Get the number of likes of a recipe",
    description="Counts the like rows directly; does not modify the recipe.",
)
async def get_like_count(
    recipe_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> LikeCountResponse:
    return await like_service.get_like_count(db=db, recipe_id=recipe_id)
