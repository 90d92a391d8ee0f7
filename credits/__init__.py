"""Credit ledger for user balances.

Balances live on the external user directory row; the exchange only reads
them and moves credits between users as part of its own transactions.
"""
import logging
from typing import Optional

from database import Store, get_store, retry_on_conflict
from errors import ExchangeError, InsufficientBalanceError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


class CreditError(ExchangeError):
    """Base exception for credit operations."""
    pass


class UserNotFoundError(CreditError, NotFoundError):
    pass


class InsufficientCreditsError(CreditError, InsufficientBalanceError):
    def __init__(self, user_id: str, balance: int, required: int):
        self.user_id = user_id
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient balance for {user_id}: has {balance}, needs {required}")


class InvalidCreditAmountError(CreditError, InvalidRequestError):
    pass


class CreditLedger:
    """Balance operations bound to an open store session."""

    def __init__(self, session):
        self.users = session.users

    async def _user(self, user_id: str):
        user = await self.users.get(user_id, for_update=True)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def get_balance(self, user_id: str) -> int:
        return (await self._user(user_id)).balance

    async def debit(self, user_id: str, amount: int) -> int:
        """Take ``amount`` credits from a user.

        Returns:
            The new balance

        Raises:
            UserNotFoundError: If the user does not exist
            InsufficientCreditsError: If the balance is below ``amount``
        """
        if amount < 0:
            raise InvalidCreditAmountError(f"Cannot debit a negative amount ({amount})")
        user = await self._user(user_id)
        if user.balance < amount:
            raise InsufficientCreditsError(user_id, user.balance, amount)
        balance = user.balance - amount
        await self.users.update_balance(user_id, balance)
        logger.debug(f"Debited {amount} from {user_id} (balance {balance})")
        return balance

    async def credit(self, user_id: str, amount: int) -> int:
        """Give ``amount`` credits to a user and return the new balance."""
        if amount < 0:
            raise InvalidCreditAmountError(f"Cannot credit a negative amount ({amount})")
        user = await self._user(user_id)
        balance = user.balance + amount
        await self.users.update_balance(user_id, balance)
        logger.debug(f"Credited {amount} to {user_id} (balance {balance})")
        return balance


class CreditManager:
    def __init__(self, store: Optional[Store] = None):
        self.store = store

    async def ensure_store(self) -> Store:
        if not self.store:
            self.store = await get_store()
        return self.store

    async def get_balance(self, user_id: str) -> int:
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await CreditLedger(session).get_balance(user_id)

    @retry_on_conflict
    async def debit(self, user_id: str, amount: int) -> int:
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await CreditLedger(session).debit(user_id, amount)

    @retry_on_conflict
    async def credit(self, user_id: str, amount: int) -> int:
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await CreditLedger(session).credit(user_id, amount)


__all__ = [
    'CreditLedger',
    'CreditManager',
    'CreditError',
    'UserNotFoundError',
    'InsufficientCreditsError',
    'InvalidCreditAmountError',
]
