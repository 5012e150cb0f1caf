"""
PayDesk - Tests for the payroll service

Tests for:
- Employee CRUD and the referenced-delete rule
- Salary slip totals (always the sum of the components)
- Period copy: skipping, idempotence, all-or-nothing
- Write batch retry on connection failures and one writer per account
"""

import asyncio
import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from paydesk.models.payroll import Employee, EmployeeStatus, SalarySlip, compute_salary_total, normalize_month
from paydesk.services.payroll_service import PayrollService
from paydesk.utils.concurrency import ScopeLockRegistry, run_write_batch
from paydesk.utils.error_handling import (
    ConnectionException,
    DataIntegrityException,
    DatabaseException,
    DuplicateEntryException,
    EmployeeNotFoundException,
    NotFoundException,
    ReferencedRecordException,
    is_connection_error,
)

from tests.fixtures.factories import make_employee, make_slip


def slip_data(employee_id, **overrides) -> dict:
    data = dict(
        employee_id=employee_id,
        month="february",
        year=2026,
        company_name="PT Maju Jaya",
        basic_salary=Decimal("4000000.00"),
        position_allowance=Decimal("500000.00"),
        family_allowance=Decimal("0"),
        child_allowance=Decimal("0"),
        food_allowance=Decimal("300000.50"),
        bonus=Decimal("0"),
        thr=Decimal("0"),
        others=Decimal("99.50"),
    )
    data.update(overrides)
    return data


async def count_slips(db_session, month: str, year: int) -> int:
    result = await db_session.execute(
        select(func.count(SalarySlip.id)).where(
            SalarySlip.month == month, SalarySlip.year == year,
        )
    )
    return result.scalar()


class RecordingSession:
    """Stands in for an AsyncSession: every account exists and commits are logged."""

    def __init__(self, name: str, events: list):
        self.name = name
        self.events = events

    async def execute(self, statement):
        await asyncio.sleep(0)
        return SimpleNamespace(scalar_one_or_none=lambda: SimpleNamespace())

    async def commit(self):
        self.events.append(f"{self.name} commit")

    async def rollback(self):
        self.events.append(f"{self.name} rollback")


class TestMonthNames:
    def test_normalize_month(self):
        assert normalize_month(" march ") == "March"
        with pytest.raises(ValueError):
            normalize_month("Smarch")


class TestEmployees:
    """Employee maintenance."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, db_session, test_account):
        service = PayrollService(db_session)
        employee = await service.create_employee(test_account.id, {
            "name": "Ani",
            "national_id": "3171000000000001",
            "position": "Staff",
            "status": "CONTRACT",
            "address": "Jl. A",
            "phone": "0812",
        })
        assert employee.status == EmployeeStatus.CONTRACT
        assert employee.created_at is not None

        employees, total = await service.list_employees(test_account.id, search="3171")
        assert total == 1
        assert employees[0].id == employee.id

    @pytest.mark.asyncio
    async def test_duplicate_national_id(self, db_session, test_employee):
        with pytest.raises(DuplicateEntryException):
            await PayrollService(db_session).create_employee(test_employee.account_id, {
                "name": "Someone Else",
                "national_id": test_employee.national_id,
                "position": "Staff",
                "status": "FULL_TIME",
                "address": "Jl. B",
                "phone": "0813",
            })

    @pytest.mark.asyncio
    async def test_same_national_id_in_another_account(self, db_session, test_employee, other_account):
        employee = await PayrollService(db_session).create_employee(other_account.id, {
            "name": "Budi Santoso",
            "national_id": test_employee.national_id,
            "position": "Staff",
            "status": "FULL_TIME",
            "address": "Jl. B",
            "phone": "0813",
        })
        assert employee.account_id == other_account.id

    @pytest.mark.asyncio
    async def test_update_employee(self, db_session, test_employee):
        employee = await PayrollService(db_session).update_employee(
            test_employee.account_id, test_employee.id, {"position": "Senior Accountant"},
        )
        assert employee.position == "Senior Accountant"

    @pytest.mark.asyncio
    async def test_delete_referenced_employee_is_refused(self, db_session, test_salary_slip):
        service = PayrollService(db_session)
        with pytest.raises(ReferencedRecordException) as exc_info:
            await service.delete_employee(test_salary_slip.account_id, test_salary_slip.employee_id)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["reference_count"] == 1
        assert await service.get_employee(test_salary_slip.account_id, test_salary_slip.employee_id)

    @pytest.mark.asyncio
    async def test_delete_unreferenced_employee(self, db_session, test_employee):
        service = PayrollService(db_session)
        await service.delete_employee(test_employee.account_id, test_employee.id)
        assert await service.get_employee(test_employee.account_id, test_employee.id) is None

    @pytest.mark.asyncio
    async def test_database_refuses_orphaning_slips(self, db_session, test_salary_slip):
        """The RESTRICT foreign key holds even if the service check is bypassed."""
        employee = await db_session.get(Employee, test_salary_slip.employee_id)
        await db_session.delete(employee)
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()


class TestSalarySlips:
    """Slip totals are derived, never supplied."""

    @pytest.mark.asyncio
    async def test_total_is_sum_of_components(self, db_session, test_employee):
        slip = await PayrollService(db_session).create_salary_slip(
            test_employee.account_id,
            slip_data(test_employee.id, total_salary=Decimal("1")),
        )
        assert slip.month == "February"
        assert slip.total_salary == Decimal("4800100.00")
        assert slip.total_salary == compute_salary_total(slip)

    @pytest.mark.asyncio
    async def test_update_recomputes_total(self, db_session, test_salary_slip):
        slip = await PayrollService(db_session).update_salary_slip(
            test_salary_slip.account_id,
            test_salary_slip.id,
            {"bonus": Decimal("1000000.00"), "total_salary": Decimal("5")},
        )
        assert slip.total_salary == Decimal("7250000.00")

    @pytest.mark.asyncio
    async def test_one_slip_per_employee_per_period(self, db_session, test_salary_slip):
        with pytest.raises(DuplicateEntryException):
            await PayrollService(db_session).create_salary_slip(
                test_salary_slip.account_id,
                slip_data(test_salary_slip.employee_id, month="January"),
            )

    @pytest.mark.asyncio
    async def test_slip_for_unknown_employee(self, db_session, test_account):
        with pytest.raises(EmployeeNotFoundException):
            await PayrollService(db_session).create_salary_slip(
                test_account.id, slip_data(uuid.uuid4()),
            )

    @pytest.mark.asyncio
    async def test_list_ordered_by_employee_name(self, db_session, test_account):
        zed = make_employee(test_account.id, "2", "Zed")
        ani = make_employee(test_account.id, "1", "Ani")
        db_session.add_all([zed, ani])
        await db_session.flush()
        db_session.add_all([make_slip(test_account.id, zed.id), make_slip(test_account.id, ani.id)])
        await db_session.commit()

        slips = await PayrollService(db_session).list_salary_slips(test_account.id, month="january", year=2026)
        assert [s.employee.name for s in slips] == ["Ani", "Zed"]


class TestPeriodCopy:
    """Replicating slips into another period."""

    async def _roster_with_slips(self, db_session, account_id, count: int):
        employees = [make_employee(account_id, str(i), f"Employee {i}") for i in range(count)]
        db_session.add_all(employees)
        await db_session.flush()
        slips = [make_slip(account_id, e.id, bonus=Decimal(i)) for i, e in enumerate(employees)]
        db_session.add_all(slips)
        await db_session.commit()
        return slips

    @pytest.mark.asyncio
    async def test_copy_creates_slips_with_same_amounts(self, db_session, test_account):
        slips = await self._roster_with_slips(db_session, test_account.id, 3)
        service = PayrollService(db_session)

        result = await service.copy_period(test_account.id, [s.id for s in slips], "february", 2026)

        assert result.created == 3
        assert result.skipped == 0
        for source, new_id in zip(slips, result.created_ids):
            copy = await service.get_salary_slip(test_account.id, new_id)
            assert (copy.month, copy.year) == ("February", 2026)
            assert copy.employee_id == source.employee_id
            assert copy.company_name == source.company_name
            assert copy.bonus == source.bonus
            assert copy.total_salary == compute_salary_total(copy) == source.total_salary

    @pytest.mark.asyncio
    async def test_copy_is_idempotent(self, db_session, test_account):
        slips = await self._roster_with_slips(db_session, test_account.id, 2)
        service = PayrollService(db_session)
        ids = [s.id for s in slips]

        first = await service.copy_period(test_account.id, ids, "March", 2026)
        second = await service.copy_period(test_account.id, ids, "March", 2026)

        assert (first.created, first.skipped) == (2, 0)
        assert (second.created, second.skipped) == (0, 2)
        assert await count_slips(db_session, "March", 2026) == 2

    @pytest.mark.asyncio
    async def test_duplicate_source_ids_are_copied_once(self, db_session, test_salary_slip):
        result = await PayrollService(db_session).copy_period(
            test_salary_slip.account_id,
            [test_salary_slip.id, test_salary_slip.id],
            "April",
            2026,
        )
        assert result.created == 1

    @pytest.mark.asyncio
    async def test_copy_into_same_period_skips(self, db_session, test_salary_slip):
        result = await PayrollService(db_session).copy_period(
            test_salary_slip.account_id, [test_salary_slip.id], "January", 2026,
        )
        assert result.created == 0
        assert result.skipped_employee_ids == [test_salary_slip.employee_id]

    @pytest.mark.asyncio
    async def test_unknown_source_slip_aborts(self, db_session, test_salary_slip):
        with pytest.raises(NotFoundException):
            await PayrollService(db_session).copy_period(
                test_salary_slip.account_id, [test_salary_slip.id, uuid.uuid4()], "May", 2026,
            )
        assert await count_slips(db_session, "May", 2026) == 0

    @pytest.mark.asyncio
    async def test_slips_of_another_account_are_not_found(self, db_session, test_salary_slip, other_account):
        with pytest.raises(NotFoundException):
            await PayrollService(db_session).copy_period(
                other_account.id, [test_salary_slip.id], "May", 2026,
            )

    @pytest.mark.asyncio
    async def test_failure_mid_batch_leaves_nothing(self, db_session, test_account, monkeypatch):
        """The third of five copies breaks the period key after two copies were inserted."""
        slips = await self._roster_with_slips(db_session, test_account.id, 5)
        first_employee_id = slips[0].employee_id
        service = PayrollService(db_session)
        original = service._replicate_slip
        calls = []

        def clashing_replicate(source, month, year):
            calls.append(source.id)
            copy = original(source, month, year)
            if len(calls) == 3:
                copy.employee_id = first_employee_id
            return copy

        inserted = []

        def record_inserts(session, flush_context):
            inserted.extend(
                obj for obj in session.new
                if isinstance(obj, SalarySlip) and obj.month == "June"
            )

        monkeypatch.setattr(service, "_replicate_slip", clashing_replicate)
        event.listen(db_session.sync_session, "after_flush", record_inserts)
        try:
            with pytest.raises(DataIntegrityException):
                await service.copy_period(test_account.id, [s.id for s in slips], "June", 2026)
        finally:
            event.remove(db_session.sync_session, "after_flush", record_inserts)

        assert len(calls) == 3
        assert len(inserted) == 2
        assert await count_slips(db_session, "June", 2026) == 0
        assert await count_slips(db_session, "January", 2026) == 5

    @pytest.mark.asyncio
    async def test_error_before_any_insert_leaves_nothing(self, db_session, test_account, monkeypatch):
        slips = await self._roster_with_slips(db_session, test_account.id, 3)
        service = PayrollService(db_session)
        original = service._replicate_slip
        calls = []

        def failing_replicate(source, month, year):
            calls.append(source.id)
            if len(calls) == 2:
                raise RuntimeError("simulated failure")
            return original(source, month, year)

        monkeypatch.setattr(service, "_replicate_slip", failing_replicate)

        with pytest.raises(RuntimeError):
            await service.copy_period(test_account.id, [s.id for s in slips], "July", 2026)

        assert await count_slips(db_session, "July", 2026) == 0


class TestWriteBatch:
    """Serialised, retried write batches."""

    @pytest.mark.asyncio
    async def test_connection_failure_is_retried(self, db_session, test_account):
        attempts = []

        async def work():
            attempts.append(1)
            if len(attempts) < 3:
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
            return "done"

        result = await run_write_batch(
            db_session, test_account.id, work,
            max_retries=3, retry_delay=0, locks=ScopeLockRegistry(),
        )
        assert result == "done"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, db_session, test_account):
        async def work():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(ConnectionException) as exc_info:
            await run_write_batch(db_session, test_account.id, work, max_retries=2, retry_delay=0)

        assert exc_info.value.status_code == 503
        assert exc_info.value.details["attempts"] == 2

    @pytest.mark.asyncio
    async def test_other_database_errors_are_not_retried(self, db_session, test_account):
        attempts = []

        async def work():
            attempts.append(1)
            raise OperationalError("SELECT 1", {}, Exception("no such table: nowhere"))

        with pytest.raises(DatabaseException) as exc_info:
            await run_write_batch(db_session, test_account.id, work, max_retries=3, retry_delay=0)

        assert not isinstance(exc_info.value, ConnectionException)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_integrity_errors_become_conflicts(self, db_session, test_account):
        async def work():
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(DataIntegrityException) as exc_info:
            await run_write_batch(db_session, test_account.id, work)
        assert exc_info.value.status_code == 409

    def test_is_connection_error(self):
        assert is_connection_error(ConnectionRefusedError())
        assert is_connection_error(OperationalError("x", {}, Exception("server closed the connection")))
        assert not is_connection_error(IntegrityError("x", {}, Exception("duplicate key")))
        assert not is_connection_error(ValueError("nope"))

    def test_same_account_shares_a_lock(self):
        registry = ScopeLockRegistry()
        account_id = uuid.uuid4()
        assert registry.lock_for(account_id) is registry.lock_for(account_id)
        assert registry.lock_for(account_id) is not registry.lock_for(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_same_account_batches_run_one_after_another(self, db_session, test_account):
        registry = ScopeLockRegistry()
        events = []

        async def first():
            events.append("first start")
            await asyncio.sleep(0.05)
            events.append("first end")

        async def second():
            events.append("second start")

        def record_commit(session):
            events.append("commit")

        event.listen(db_session.sync_session, "after_commit", record_commit)
        try:
            await asyncio.gather(
                run_write_batch(db_session, test_account.id, first, locks=registry),
                run_write_batch(db_session, test_account.id, second, locks=registry),
            )
        finally:
            event.remove(db_session.sync_session, "after_commit", record_commit)

        assert events == ["first start", "first end", "commit", "second start", "commit"]

    @pytest.mark.asyncio
    async def test_different_accounts_do_not_block_each_other(self):
        registry = ScopeLockRegistry()
        events = []
        both_started = asyncio.Event()

        def writer(name):
            async def work():
                events.append(f"{name} start")
                if sum(entry.endswith("start") for entry in events) == 2:
                    both_started.set()
                # Times out if the other account's batch is held back
                await asyncio.wait_for(both_started.wait(), timeout=2)
            return work

        await asyncio.gather(
            run_write_batch(RecordingSession("a", events), uuid.uuid4(), writer("a"), locks=registry),
            run_write_batch(RecordingSession("b", events), uuid.uuid4(), writer("b"), locks=registry),
        )

        assert events[:2] == ["a start", "b start"]
        assert sorted(events[2:]) == ["a commit", "b commit"]
