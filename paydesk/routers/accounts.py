"""
PayDesk - Account Router
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import get_account
from paydesk.models.account import Account
from paydesk.services.account_service import AccountService


router = APIRouter()


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class AccountResponse(BaseModel):
    id: UUID
    name: str
    created_at: datetime

    class Config:
        from_attributes = True


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def create_account(
    account_data: AccountCreate,
    db: AsyncSession = Depends(get_async_session),
):
    return await AccountService(db).create_account(account_data.name)


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account",
)
async def get_account_details(account: Account = Depends(get_account)):
    return account
