# Importing the package registers every table on Base.metadata
from foodflow.models.user import User
from foodflow.models.recipe import (
    RECIPE_STATUS_DRAFT,
    RECIPE_STATUS_PUBLIC,
    Recipe,
    RecipeLike,
)
from foodflow.models.notification import NOTIFICATION_TYPE_LIKE, Notification

__all__ = [
    "User",
    "Recipe",
    "RecipeLike",
    "Notification",
    "RECIPE_STATUS_DRAFT",
    "RECIPE_STATUS_PUBLIC",
    "NOTIFICATION_TYPE_LIKE",
]
