"""
PayDesk - Employee Roster Router

Roster import/export and manual employee maintenance for one account.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.config import settings
from paydesk.database import get_async_session
from paydesk.dependencies import get_account
from paydesk.models.account import Account
from paydesk.models.payroll import EmployeeStatus
from paydesk.schemas.payroll import (
    EmployeeCreate,
    EmployeeUpdate,
    EmployeeResponse,
    EmployeeListResponse,
    ImportResultResponse,
    RowErrorResponse,
)
from paydesk.services.payroll_service import PayrollService
from paydesk.services.reconciliation_service import ImportResult, RosterReconciler
from paydesk.services.roster_csv import export_filename, export_roster_csv, template_csv
from paydesk.utils.error_handling import EmployeeNotFoundException, PayloadTooLargeException
from paydesk.utils.responses import content_disposition


router = APIRouter()


def _import_response(result: ImportResult) -> ImportResultResponse:
    return ImportResultResponse(
        dry_run=result.dry_run,
        inserted=result.inserted,
        updated=result.updated,
        unchanged=result.unchanged,
        deleted=result.deleted,
        skipped_deletions=result.skipped_deletions,
        skipped_national_ids=result.skipped_national_ids,
        errors=[
            RowErrorResponse(row=error.row, field=error.field, message=error.message)
            for error in result.errors
        ],
    )


# ===========================================
# ROSTER IMPORT / EXPORT
# ===========================================

@router.post(
    "/employees/import",
    response_model=ImportResultResponse,
    summary="Import employee roster",
    description=(
        "Reconcile the account's roster with an uploaded CSV: update existing "
        "employees, add new ones and remove those missing from the file unless "
        "salary slips reference them. Use dry_run to preview the counts."
    ),
)
async def import_employees(
    account_id: uuid.UUID,
    file: UploadFile = File(..., description="CSV file with the employee roster"),
    dry_run: bool = Query(False, description="Plan the import without writing"),
    db: AsyncSession = Depends(get_async_session),
):
    """Import the roster from CSV."""
    if file.filename and not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are supported",
        )

    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise PayloadTooLargeException(len(content), settings.max_upload_bytes)

    reconciler = RosterReconciler(db)
    if dry_run:
        result = await reconciler.preview(account_id, content)
    else:
        result = await reconciler.import_csv(account_id, content)
    return _import_response(result)


@router.get(
    "/employees/export",
    summary="Export employee roster to CSV",
    description="Export the account's roster in a format the import accepts.",
)
async def export_employees(
    account: Account = Depends(get_account),
    db: AsyncSession = Depends(get_async_session),
):
    employees = await PayrollService(db).all_employees(account.id)
    csv_text = export_roster_csv(employees)

    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": content_disposition(export_filename(date.today()))},
    )


@router.get(
    "/employees/import-template",
    summary="Download the roster import template",
)
async def import_template(account: Account = Depends(get_account)):
    return Response(
        content=template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": content_disposition("employee-import-template.csv")},
    )


# ===========================================
# EMPLOYEE ENDPOINTS
# ===========================================

@router.post(
    "/employees",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new employee",
)
async def create_employee(
    account_id: uuid.UUID,
    employee_data: EmployeeCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.create_employee(account_id, employee_data.model_dump())


@router.get(
    "/employees",
    response_model=EmployeeListResponse,
    summary="List employees",
)
async def list_employees(
    account: Account = Depends(get_account),
    employee_status: Optional[EmployeeStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search by name, national ID or position"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    employees, total = await service.list_employees(
        account.id, status=employee_status, search=search, page=page, per_page=per_page,
    )
    return EmployeeListResponse(
        items=[EmployeeResponse.model_validate(employee) for employee in employees],
        total=total,
    )


@router.get(
    "/employees/{employee_id}",
    response_model=EmployeeResponse,
    summary="Get employee details",
)
async def get_employee(
    account_id: uuid.UUID,
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    employee = await PayrollService(db).get_employee(account_id, employee_id)
    if not employee:
        raise EmployeeNotFoundException(employee_id)
    return employee


@router.put(
    "/employees/{employee_id}",
    response_model=EmployeeResponse,
    summary="Update employee",
)
async def update_employee(
    account_id: uuid.UUID,
    employee_id: uuid.UUID,
    employee_data: EmployeeUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.update_employee(
        account_id, employee_id, employee_data.model_dump(exclude_unset=True),
    )


@router.delete(
    "/employees/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete employee",
    description="Refused with 409 while salary slips reference the employee.",
)
async def delete_employee(
    account_id: uuid.UUID,
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    await PayrollService(db).delete_employee(account_id, employee_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
