"""
PayDesk - Salary Slip Router

Salary slip maintenance, period copy and document downloads.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import get_account
from paydesk.models.account import Account
from paydesk.schemas.payroll import (
    SalarySlipCreate,
    SalarySlipUpdate,
    SalarySlipResponse,
    PeriodCopyRequest,
    PeriodCopyResponse,
    MonthName,
)
from paydesk.services.archive_service import PeriodArchiveService
from paydesk.services.document_pdf_service import SalarySlipPDFService
from paydesk.services.payroll_service import PayrollService
from paydesk.utils.error_handling import SalarySlipNotFoundException
from paydesk.utils.responses import attachment_response


router = APIRouter()


# ===========================================
# PERIOD OPERATIONS
# ===========================================

@router.post(
    "/salary-slips/copy-period",
    response_model=PeriodCopyResponse,
    summary="Copy salary slips into another period",
    description=(
        "Replicate the given slips into the target month and year. Employees "
        "that already have a slip there are skipped. All new slips are created "
        "together or not at all."
    ),
)
async def copy_period(
    account_id: uuid.UUID,
    request: PeriodCopyRequest,
    db: AsyncSession = Depends(get_async_session),
):
    result = await PayrollService(db).copy_period(
        account_id,
        request.source_slip_ids,
        request.target_month,
        request.target_year,
    )
    return PeriodCopyResponse(
        created=result.created,
        skipped=result.skipped,
        created_ids=result.created_ids,
        skipped_employee_ids=result.skipped_employee_ids,
    )


@router.get(
    "/salary-slips/archive",
    summary="Download all salary slips of a period as ZIP",
)
async def salary_slip_archive(
    account_id: uuid.UUID,
    month: MonthName = Query(..., description="English month name, e.g. January"),
    year: int = Query(..., ge=1900, le=9999),
    db: AsyncSession = Depends(get_async_session),
):
    archive = await PeriodArchiveService(db).salary_slip_archive(account_id, month, year)
    return attachment_response(archive)


# ===========================================
# SALARY SLIP ENDPOINTS
# ===========================================

@router.post(
    "/salary-slips",
    response_model=SalarySlipResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a salary slip",
)
async def create_salary_slip(
    account_id: uuid.UUID,
    slip_data: SalarySlipCreate,
    db: AsyncSession = Depends(get_async_session),
):
    return await PayrollService(db).create_salary_slip(account_id, slip_data.model_dump())


@router.get(
    "/salary-slips",
    response_model=List[SalarySlipResponse],
    summary="List salary slips",
)
async def list_salary_slips(
    account: Account = Depends(get_account),
    month: Optional[MonthName] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    employee_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
):
    return await PayrollService(db).list_salary_slips(
        account.id, month=month, year=year, employee_id=employee_id,
    )


@router.get(
    "/salary-slips/{slip_id}",
    response_model=SalarySlipResponse,
    summary="Get salary slip",
)
async def get_salary_slip(
    account_id: uuid.UUID,
    slip_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    slip = await PayrollService(db).get_salary_slip(account_id, slip_id)
    if not slip:
        raise SalarySlipNotFoundException(slip_id)
    return slip


@router.put(
    "/salary-slips/{slip_id}",
    response_model=SalarySlipResponse,
    summary="Update salary slip",
)
async def update_salary_slip(
    account_id: uuid.UUID,
    slip_id: uuid.UUID,
    slip_data: SalarySlipUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    return await PayrollService(db).update_salary_slip(
        account_id, slip_id, slip_data.model_dump(exclude_unset=True),
    )


@router.delete(
    "/salary-slips/{slip_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete salary slip",
)
async def delete_salary_slip(
    account_id: uuid.UUID,
    slip_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    await PayrollService(db).delete_salary_slip(account_id, slip_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/salary-slips/{slip_id}/pdf",
    summary="Download a salary slip as PDF",
)
async def salary_slip_pdf(
    account_id: uuid.UUID,
    slip_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    slip = await PayrollService(db).get_salary_slip(account_id, slip_id)
    if not slip:
        raise SalarySlipNotFoundException(slip_id)
    document = SalarySlipPDFService().render(slip, slip.employee)
    return attachment_response(document)
