"""
PayDesk - FastAPI Dependencies

The owner scope comes from the URL path; every scoped route resolves it here.
"""

import uuid

from fastapi import Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.models.account import Account
from paydesk.services.account_service import AccountService


async def get_account(
    account_id: uuid.UUID = Path(..., description="Owner account ID"),
    db: AsyncSession = Depends(get_async_session),
) -> Account:
    """Resolve the account in the path or raise AccountNotFoundException (404)."""
    return await AccountService(db).get_account(account_id)
