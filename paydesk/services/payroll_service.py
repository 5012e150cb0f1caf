"""
PayDesk - Payroll Service

Roster maintenance and salary slips:
- Employee CRUD (delete refused while salary slips reference the employee)
- Salary slip CRUD with the total recomputed from its eight components
- Period copy: replicate a set of slips into another (month, year) as one
  all-or-nothing batch, skipping employees that already have a slip there

Every write runs inside the account's write section (see utils.concurrency).
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.payroll import (
    Employee, EmployeeStatus, Gender, SalarySlip,
    SALARY_COMPONENTS, SLIP_HEADER_FIELDS,
    compute_salary_total, normalize_month,
)
from paydesk.utils.concurrency import run_write_batch
from paydesk.utils.error_handling import (
    DuplicateEntryException,
    EmployeeNotFoundException,
    NotFoundException,
    ReferencedRecordException,
    SalarySlipNotFoundException,
)

logger = logging.getLogger(__name__)


@dataclass
class PeriodCopyResult:
    """Outcome of replicating slips into a target period."""
    created_ids: List[uuid.UUID] = field(default_factory=list)
    skipped_employee_ids: List[uuid.UUID] = field(default_factory=list)

    @property
    def created(self) -> int:
        return len(self.created_ids)

    @property
    def skipped(self) -> int:
        return len(self.skipped_employee_ids)


class PayrollService:
    """Service for roster and salary slip operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # EMPLOYEE MANAGEMENT
    # ===========================================

    async def _ensure_unique_national_id(
        self,
        account_id: uuid.UUID,
        national_id: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Employee.id).where(
            and_(
                Employee.account_id == account_id,
                Employee.national_id == national_id,
            )
        )
        if exclude_id:
            query = query.where(Employee.id != exclude_id)
        existing = await self.db.execute(query)
        if existing.first():
            raise DuplicateEntryException("Employee", "national_id", national_id)

    async def create_employee(
        self,
        account_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> Employee:
        """Create a new employee."""
        data = dict(data)
        data["status"] = EmployeeStatus(data["status"])
        if data.get("gender"):
            data["gender"] = Gender(data["gender"])

        async def work() -> Employee:
            await self._ensure_unique_national_id(account_id, data["national_id"])
            employee = Employee(account_id=account_id, **data)
            self.db.add(employee)
            await self.db.flush()
            return employee

        employee = await run_write_batch(self.db, account_id, work, description="employee create")
        await self.db.refresh(employee)
        return employee

    async def get_employee(
        self,
        account_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Optional[Employee]:
        """Get employee by ID."""
        result = await self.db.execute(
            select(Employee).where(
                and_(
                    Employee.id == employee_id,
                    Employee.account_id == account_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def list_employees(
        self,
        account_id: uuid.UUID,
        status: Optional[EmployeeStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Employee], int]:
        """List employees with filters and pagination."""
        query = select(Employee).where(Employee.account_id == account_id)

        if status:
            query = query.where(Employee.status == status)

        if search:
            search_term = f"%{search}%"
            query = query.where(
                or_(
                    Employee.name.ilike(search_term),
                    Employee.national_id.ilike(search_term),
                    Employee.position.ilike(search_term),
                )
            )

        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar()

        query = query.order_by(Employee.name, Employee.national_id)
        query = query.offset((page - 1) * per_page).limit(per_page)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def all_employees(self, account_id: uuid.UUID) -> List[Employee]:
        result = await self.db.execute(
            select(Employee)
            .where(Employee.account_id == account_id)
            .order_by(Employee.name, Employee.national_id)
        )
        return list(result.scalars().all())

    async def update_employee(
        self,
        account_id: uuid.UUID,
        employee_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> Employee:
        """Update employee details."""
        data = dict(data)
        if data.get("status") is not None:
            data["status"] = EmployeeStatus(data["status"])
        if data.get("gender") is not None:
            data["gender"] = Gender(data["gender"])

        async def work() -> Employee:
            employee = await self.get_employee(account_id, employee_id)
            if employee is None:
                raise EmployeeNotFoundException(employee_id)
            if data.get("national_id") and data["national_id"] != employee.national_id:
                await self._ensure_unique_national_id(account_id, data["national_id"], exclude_id=employee.id)
            for key, value in data.items():
                if hasattr(employee, key):
                    setattr(employee, key, value)
            await self.db.flush()
            return employee

        employee = await run_write_batch(self.db, account_id, work, description="employee update")
        await self.db.refresh(employee)
        return employee

    async def count_salary_slips(self, account_id: uuid.UUID, employee_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(SalarySlip.id)).where(
                and_(
                    SalarySlip.account_id == account_id,
                    SalarySlip.employee_id == employee_id,
                )
            )
        )
        return result.scalar() or 0

    async def delete_employee(self, account_id: uuid.UUID, employee_id: uuid.UUID) -> None:
        """
        Delete an employee.

        Refused with ReferencedRecordException while any salary slip
        references the employee.
        """
        async def work() -> None:
            employee = await self.get_employee(account_id, employee_id)
            if employee is None:
                raise EmployeeNotFoundException(employee_id)
            slip_count = await self.count_salary_slips(account_id, employee_id)
            if slip_count:
                raise ReferencedRecordException(
                    "Employee", employee_id, "salary slips", slip_count,
                )
            await self.db.delete(employee)
            await self.db.flush()

        await run_write_batch(self.db, account_id, work, description="employee delete")
        logger.info(f"Deleted employee {employee_id} from account {account_id}")

    # ===========================================
    # SALARY SLIPS
    # ===========================================

    async def _ensure_period_free(
        self,
        account_id: uuid.UUID,
        employee_id: uuid.UUID,
        month: str,
        year: int,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(SalarySlip.id).where(
            and_(
                SalarySlip.account_id == account_id,
                SalarySlip.employee_id == employee_id,
                SalarySlip.month == month,
                SalarySlip.year == year,
            )
        )
        if exclude_id:
            query = query.where(SalarySlip.id != exclude_id)
        existing = await self.db.execute(query)
        if existing.first():
            raise DuplicateEntryException("SalarySlip", "period", f"{month} {year}")

    async def create_salary_slip(
        self,
        account_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> SalarySlip:
        """Create a salary slip. Any total in ``data`` is ignored."""
        data = dict(data)
        data.pop("total_salary", None)
        data["month"] = normalize_month(data["month"])

        async def work() -> SalarySlip:
            employee = await self.get_employee(account_id, data["employee_id"])
            if employee is None:
                raise EmployeeNotFoundException(data["employee_id"])
            await self._ensure_period_free(account_id, employee.id, data["month"], data["year"])

            slip = SalarySlip(account_id=account_id, **data)
            slip.total_salary = compute_salary_total(slip)
            self.db.add(slip)
            await self.db.flush()
            return slip

        slip = await run_write_batch(self.db, account_id, work, description="salary slip create")
        await self.db.refresh(slip)
        return slip

    async def get_salary_slip(
        self,
        account_id: uuid.UUID,
        slip_id: uuid.UUID,
    ) -> Optional[SalarySlip]:
        """Get salary slip by ID."""
        result = await self.db.execute(
            select(SalarySlip).where(
                and_(
                    SalarySlip.id == slip_id,
                    SalarySlip.account_id == account_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def list_salary_slips(
        self,
        account_id: uuid.UUID,
        month: Optional[str] = None,
        year: Optional[int] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> List[SalarySlip]:
        """List salary slips ordered by employee name, then slip id."""
        query = (
            select(SalarySlip)
            .join(Employee, SalarySlip.employee_id == Employee.id)
            .where(SalarySlip.account_id == account_id)
        )
        if month:
            query = query.where(SalarySlip.month == normalize_month(month))
        if year:
            query = query.where(SalarySlip.year == year)
        if employee_id:
            query = query.where(SalarySlip.employee_id == employee_id)

        query = query.order_by(Employee.name, SalarySlip.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_salary_slip(
        self,
        account_id: uuid.UUID,
        slip_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> SalarySlip:
        """Update a salary slip and recompute its total."""
        required = set(SALARY_COMPONENTS) | {"month", "year", "company_name"}
        data = {
            k: v for k, v in data.items()
            if k != "total_salary" and not (k in required and v is None)
        }
        if data.get("month"):
            data["month"] = normalize_month(data["month"])

        async def work() -> SalarySlip:
            slip = await self.get_salary_slip(account_id, slip_id)
            if slip is None:
                raise SalarySlipNotFoundException(slip_id)

            month = data.get("month") or slip.month
            year = data.get("year") or slip.year
            if (month, year) != (slip.month, slip.year):
                await self._ensure_period_free(account_id, slip.employee_id, month, year, exclude_id=slip.id)

            for key, value in data.items():
                if hasattr(slip, key) and key not in ("id", "account_id", "employee_id"):
                    setattr(slip, key, value)
            slip.total_salary = compute_salary_total(slip)
            await self.db.flush()
            return slip

        slip = await run_write_batch(self.db, account_id, work, description="salary slip update")
        await self.db.refresh(slip)
        return slip

    async def delete_salary_slip(self, account_id: uuid.UUID, slip_id: uuid.UUID) -> None:
        async def work() -> None:
            slip = await self.get_salary_slip(account_id, slip_id)
            if slip is None:
                raise SalarySlipNotFoundException(slip_id)
            await self.db.delete(slip)
            await self.db.flush()

        await run_write_batch(self.db, account_id, work, description="salary slip delete")

    # ===========================================
    # PERIOD COPY
    # ===========================================

    def _replicate_slip(self, source: SalarySlip, month: str, year: int) -> SalarySlip:
        """New slip for the same employee in another period."""
        values = {name: getattr(source, name) for name in SALARY_COMPONENTS + SLIP_HEADER_FIELDS}
        copy = SalarySlip(
            account_id=source.account_id,
            employee_id=source.employee_id,
            month=month,
            year=year,
            **values,
        )
        copy.total_salary = compute_salary_total(copy)
        return copy

    async def copy_period(
        self,
        account_id: uuid.UUID,
        source_slip_ids: Sequence[uuid.UUID],
        target_month: str,
        target_year: int,
    ) -> PeriodCopyResult:
        """
        Replicate the given slips into (target_month, target_year).

        Employees that already have a slip in the target period, in the
        database or earlier in this batch, are skipped and reported. The new
        slips are committed together or not at all.
        """
        target_month = normalize_month(target_month)
        slip_ids = list(dict.fromkeys(source_slip_ids))

        async def work() -> PeriodCopyResult:
            result = await self.db.execute(
                select(SalarySlip).where(
                    and_(
                        SalarySlip.account_id == account_id,
                        SalarySlip.id.in_(slip_ids),
                    )
                )
            )
            sources = {slip.id: slip for slip in result.scalars().all()}
            missing = [slip_id for slip_id in slip_ids if slip_id not in sources]
            if missing:
                raise NotFoundException(
                    "SalarySlip",
                    missing[0],
                    message=f"{len(missing)} source salary slip(s) not found in this account",
                )

            employee_ids = {slip.employee_id for slip in sources.values()}
            live_result = await self.db.execute(
                select(Employee.id).where(
                    and_(
                        Employee.account_id == account_id,
                        Employee.id.in_(employee_ids),
                    )
                )
            )
            live_employees = set(live_result.scalars().all())

            taken_result = await self.db.execute(
                select(SalarySlip.employee_id).where(
                    and_(
                        SalarySlip.account_id == account_id,
                        SalarySlip.month == target_month,
                        SalarySlip.year == target_year,
                        SalarySlip.employee_id.in_(employee_ids),
                    )
                )
            )
            taken = set(taken_result.scalars().all())

            outcome = PeriodCopyResult()
            staged: List[SalarySlip] = []
            for slip_id in slip_ids:
                source = sources[slip_id]
                if source.employee_id not in live_employees:
                    raise EmployeeNotFoundException(source.employee_id)
                if source.employee_id in taken:
                    outcome.skipped_employee_ids.append(source.employee_id)
                    continue
                copy = self._replicate_slip(source, target_month, target_year)
                self.db.add(copy)
                await self.db.flush()
                staged.append(copy)
                taken.add(source.employee_id)

            outcome.created_ids = [slip.id for slip in staged]
            return outcome

        outcome = await run_write_batch(self.db, account_id, work, description="period copy")
        logger.info(
            f"Period copy for account {account_id} into {target_month} {target_year}: "
            f"{outcome.created} created, {outcome.skipped} skipped"
        )
        return outcome
