"""Request-scoped dependencies and route guards."""

import logging
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from rights.core.config import settings
from rights.core.database import get_db
from rights.core.errors import NotFoundError, RightsError, StorageError, ValidationError
from rights.models.catalog import ActionKey
from rights.services.resolver import PermissionResolver

logger = logging.getLogger(__name__)


async def get_current_user_id(request: Request) -> int:
    """Caller identity as supplied by the upstream authentication layer."""
    raw = request.headers.get(settings.USER_ID_HEADER)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        user_id = int(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    if user_id <= 0:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    return user_id


async def get_resolver(db: AsyncSession = Depends(get_db)) -> PermissionResolver:
    """One resolver per request, so memoized decisions never outlive it."""
    return PermissionResolver(db)


def require_permission(page_key: str, action: ActionKey) -> Callable:
    """Guard dependency: 403 unless the caller may perform ``action`` on ``page_key``."""

    async def guard(
        user_id: int = Depends(get_current_user_id),
        resolver: PermissionResolver = Depends(get_resolver),
    ) -> int:
        if not await resolver.resolve_action(user_id, page_key, action):
            logger.info(f"Access denied: user {user_id} {page_key}/{action.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You don't have permission to access this resource.",
            )
        return user_id

    return guard


def require_settings(action: ActionKey) -> Callable:
    return require_permission(settings.SETTINGS_PAGE_KEY, action)


def to_http_exception(error: RightsError) -> HTTPException:
    """Map an engine error to its HTTP status, keeping the identifying context."""
    if isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, StorageError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.to_dict())
