"""
FoodFlow Backend: Shared Route Dependencies
============================================

What:  Caller identification for the like and notification endpoints.
How:   The authenticated user id arrives in the X-User-Id header, set by
       the auth gateway in front of this service.
"""

from typing import Optional

from fastapi import Header

from foodflow.exceptions import ValidationError

USER_ID_HEADER = "X-User-Id"


async def get_current_user_id(
    x_user_id: Optional[str] = Header(
        default=None,
        alias=USER_ID_HEADER,
        description="Id of the authenticated user making the request",
    ),
) -> int:
    """
    Parse the caller's user id.

    Raises:
        ValidationError: Header missing, or not a positive integer (→ 400)
    """
    if x_user_id is None or not x_user_id.strip():
        raise ValidationError(message=f"{USER_ID_HEADER} header is required", field=USER_ID_HEADER)

    try:
        user_id = int(x_user_id.strip())
    except ValueError:
        raise ValidationError(
            message=f"{USER_ID_HEADER} header must be an integer",
            field=USER_ID_HEADER,
        )

    if user_id <= 0:
        raise ValidationError(
            message=f"{USER_ID_HEADER} header must be a positive integer",
            field=USER_ID_HEADER,
        )
    return user_id
