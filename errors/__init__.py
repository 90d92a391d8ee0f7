"""Error kinds shared by every exchange engine module.

Each engine package defines its own base exception (``TradeError``,
``ListingError``, ...) and concrete errors that combine that base with one
of the kinds below, so callers can catch either by module or by kind:

    try:
        await manager.cancel_trade(trade_id, user_id)
    except InvalidStateError:
        ...
"""
from typing import Optional

__all__ = [
    'ExchangeError',
    'NotFoundError',
    'NotParticipantError',
    'NotOwnerError',
    'InvalidStateError',
    'InsufficientInventoryError',
    'InsufficientBalanceError',
    'AlreadyProcessedError',
    'InvalidRequestError',
]


class ExchangeError(Exception):
    """Base class for every business-rule failure raised by the engine."""

    kind = 'ExchangeError'

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.kind
        super().__init__(self.message)

    def to_dict(self):
        return {'kind': self.kind, 'message': self.message}


class NotFoundError(ExchangeError):
    """Trade, listing, order, user or item is absent."""
    kind = 'NotFound'


class NotParticipantError(ExchangeError):
    """User is neither side of a trade."""
    kind = 'NotParticipant'


class NotOwnerError(ExchangeError):
    """User does not own the listing, order or item."""
    kind = 'NotOwner'


class InvalidStateError(ExchangeError):
    """Operation attempted against a non-pending or non-active entity."""
    kind = 'InvalidState'


class InsufficientInventoryError(ExchangeError):
    kind = 'InsufficientInventory'


class InsufficientBalanceError(ExchangeError):
    kind = 'InsufficientBalance'


class AlreadyProcessedError(ExchangeError):
    """Double-action guard, e.g. buying a listing that is no longer active."""
    kind = 'AlreadyProcessed'


class InvalidRequestError(ExchangeError):
    """Arguments rejected before touching any state."""
    kind = 'InvalidRequest'
