"""
PayDesk - Roster Reconciliation Service

Brings an account's persisted roster in line with an uploaded one.

Rows are matched on national ID:
- matched and different: every roster field is overwritten from the file
- matched and identical: left alone
- only in the file: inserted
- only in the database: deleted, unless a salary slip references the
  employee, in which case it is kept and reported as a skipped deletion

Planning is a pure function; applying the plan is one atomic write batch.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Set, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.payroll import Employee, SalarySlip
from paydesk.services.account_service import AccountService
from paydesk.services.roster_csv import (
    EmployeeCandidate,
    ParseResult,
    RowError,
    ROSTER_FIELDS,
    parse_roster_csv,
)
from paydesk.utils.concurrency import run_write_batch

logger = logging.getLogger(__name__)


# ===========================================
# PLANNING
# ===========================================

@dataclass
class ReconciliationPlan:
    """Three-way diff of a roster. Every key appears in at most one list."""
    to_insert: List[EmployeeCandidate] = field(default_factory=list)
    to_update: List[Tuple[Employee, EmployeeCandidate]] = field(default_factory=list)
    to_delete: List[Employee] = field(default_factory=list)
    unchanged: List[Employee] = field(default_factory=list)
    skipped_deletions: List[Employee] = field(default_factory=list)


def changed_fields(employee, candidate: EmployeeCandidate) -> List[str]:
    """Roster fields whose persisted value differs from the candidate's."""
    return [
        name for name in ROSTER_FIELDS
        if getattr(employee, name) != getattr(candidate, name)
    ]


def plan_reconciliation(
    persisted: Iterable[Employee],
    candidates: Sequence[EmployeeCandidate],
    referenced_ids: Set[uuid.UUID],
) -> ReconciliationPlan:
    """
    Classify candidates and persisted employees by national ID.

    ``referenced_ids`` holds the ids of employees that salary slips point at;
    those are never planned for deletion.
    """
    plan = ReconciliationPlan()
    by_key = {employee.national_id: employee for employee in persisted}
    incoming_keys = set()

    for candidate in candidates:
        incoming_keys.add(candidate.national_id)
        employee = by_key.get(candidate.national_id)
        if employee is None:
            plan.to_insert.append(candidate)
        elif changed_fields(employee, candidate):
            plan.to_update.append((employee, candidate))
        else:
            plan.unchanged.append(employee)

    for key, employee in by_key.items():
        if key in incoming_keys:
            continue
        if employee.id in referenced_ids:
            plan.skipped_deletions.append(employee)
        else:
            plan.to_delete.append(employee)

    return plan


# ===========================================
# RESULT
# ===========================================

@dataclass
class ImportResult:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    skipped_deletions: int = 0
    skipped_national_ids: List[str] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)
    dry_run: bool = False

    @classmethod
    def from_plan(cls, plan: ReconciliationPlan, errors: List[RowError], dry_run: bool = False) -> "ImportResult":
        return cls(
            inserted=len(plan.to_insert),
            updated=len(plan.to_update),
            unchanged=len(plan.unchanged),
            deleted=len(plan.to_delete),
            skipped_deletions=len(plan.skipped_deletions),
            skipped_national_ids=sorted(e.national_id for e in plan.skipped_deletions),
            errors=list(errors),
            dry_run=dry_run,
        )


# ===========================================
# SERVICE
# ===========================================

class RosterReconciler:
    """Applies uploaded rosters to an account."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_roster(self, account_id: uuid.UUID) -> List[Employee]:
        result = await self.db.execute(
            select(Employee).where(Employee.account_id == account_id)
        )
        return list(result.scalars().all())

    async def _referenced_employee_ids(self, account_id: uuid.UUID) -> Set[uuid.UUID]:
        result = await self.db.execute(
            select(SalarySlip.employee_id)
            .where(SalarySlip.account_id == account_id)
            .distinct()
        )
        return set(result.scalars().all())

    async def _plan(self, account_id: uuid.UUID, parsed: ParseResult) -> ReconciliationPlan:
        roster = await self._load_roster(account_id)
        referenced = await self._referenced_employee_ids(account_id)
        return plan_reconciliation(roster, parsed.candidates, referenced)

    async def _apply(self, account_id: uuid.UUID, plan: ReconciliationPlan) -> None:
        for employee in plan.to_delete:
            await self.db.delete(employee)

        for employee, candidate in plan.to_update:
            for name, value in candidate.as_record().items():
                setattr(employee, name, value)

        for candidate in plan.to_insert:
            self.db.add(Employee(account_id=account_id, **candidate.as_record()))

        await self.db.flush()

    async def preview(self, account_id: uuid.UUID, raw: Union[bytes, str]) -> ImportResult:
        """Parse and plan without writing anything."""
        parsed = parse_roster_csv(raw)
        await AccountService(self.db).get_account(account_id)
        plan = await self._plan(account_id, parsed)
        return ImportResult.from_plan(plan, parsed.errors, dry_run=True)

    async def import_csv(self, account_id: uuid.UUID, raw: Union[bytes, str]) -> ImportResult:
        """
        Reconcile the account's roster against uploaded CSV content.

        Structural problems abort before anything is read. The plan is
        computed and applied inside the account's write section, and
        committed in one transaction.
        """
        parsed = parse_roster_csv(raw)

        async def work() -> ReconciliationPlan:
            plan = await self._plan(account_id, parsed)
            await self._apply(account_id, plan)
            return plan

        plan = await run_write_batch(self.db, account_id, work, description="roster import")
        result = ImportResult.from_plan(plan, parsed.errors)

        logger.info(
            f"Roster import for account {account_id}: "
            f"{result.inserted} inserted, {result.updated} updated, "
            f"{result.unchanged} unchanged, {result.deleted} deleted, "
            f"{result.skipped_deletions} kept (referenced), {len(result.errors)} row errors"
        )
        return result
