"""Acting-user resolution for API requests.

Authentication happens upstream: the gateway in front of the exchange
verifies the caller and forwards their user id in the ``X-User-Id`` header.
This module only turns that header into the acting user for an endpoint,
and checks it against the ``admin_users`` setting where an endpoint mints
or overwrites items.
"""
import logging

from fastapi import Depends, Header, HTTPException, status

from config import settings_conf

logger = logging.getLogger(__name__)

USER_HEADER = 'X-User-Id'


async def get_current_user(x_user_id: str = Header(default='', alias=USER_HEADER)) -> str:
    """FastAPI dependency for getting the acting user.

    Returns:
        The user id forwarded by the gateway

    Raises:
        HTTPException: If the header is missing or blank
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {USER_HEADER} header"
        )
    return user_id


def is_admin(user_id: str) -> bool:
    return user_id in settings_conf.get('admin_users', ())


def forbidden(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"kind": "NotOwner", "message": message}
    )


async def get_admin_user(user_id: str = Depends(get_current_user)) -> str:
    """FastAPI dependency for endpoints reserved to administrators.

    Raises:
        HTTPException: 403 if the acting user is not listed in ``admin_users``
    """
    if not is_admin(user_id):
        logger.warning(f"Rejected admin request from {user_id}")
        raise forbidden(f"User {user_id} is not an administrator")
    return user_id


def require_owner_or_admin(user_id: str, acting_user: str) -> None:
    """Raise 403 unless ``acting_user`` owns ``user_id``'s resources or is an admin."""
    if acting_user != user_id and not is_admin(acting_user):
        raise forbidden(f"User {acting_user} cannot modify the inventory of {user_id}")


__all__ = ['get_current_user', 'get_admin_user', 'require_owner_or_admin', 'is_admin', 'USER_HEADER']
