"""
PayDesk - Account Service

Accounts are the owner scope every other record hangs off.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.account import Account
from paydesk.utils.error_handling import AccountNotFoundException


class AccountService:
    """Service for account lookups and creation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_account(self, name: str) -> Account:
        account = Account(name=name)
        self.db.add(account)
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def get_account(self, account_id: uuid.UUID) -> Account:
        """Get an account or raise AccountNotFoundException."""
        result = await self.db.execute(select(Account).where(Account.id == account_id))
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundException(account_id)
        return account
