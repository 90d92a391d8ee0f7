"""Translation of engine errors into HTTP responses."""
from fastapi import HTTPException, status

from errors import ExchangeError

STATUS_BY_KIND = {
    'NotFound': status.HTTP_404_NOT_FOUND,
    'NotParticipant': status.HTTP_403_FORBIDDEN,
    'NotOwner': status.HTTP_403_FORBIDDEN,
    'InvalidState': status.HTTP_409_CONFLICT,
    'AlreadyProcessed': status.HTTP_409_CONFLICT,
    'InsufficientInventory': status.HTTP_400_BAD_REQUEST,
    'InsufficientBalance': status.HTTP_400_BAD_REQUEST,
    'InvalidRequest': status.HTTP_400_BAD_REQUEST,
}


def to_http_exception(error: ExchangeError) -> HTTPException:
    """Build the HTTPException for an engine error.

    The response body is ``{"detail": {"kind": ..., "message": ...}}``.
    """
    return HTTPException(
        status_code=STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST),
        detail=error.to_dict()
    )
