"""
PayDesk - Test Configuration

Pytest fixtures and configuration.
Tests run against an in-memory SQLite database shared through a StaticPool.
"""

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from paydesk.database import Base, enable_sqlite_foreign_keys, get_async_session
from paydesk.models.account import Account
from paydesk.models.payroll import Employee, Gender, SalarySlip
from paydesk.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from main import app
from tests.fixtures.factories import make_employee, make_slip


TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(test_engine)

# Create test session factory
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def test_account(db_session: AsyncSession) -> Account:
    """Create a test account."""
    account = Account(id=uuid4(), name="PT Maju Jaya")
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture
async def other_account(db_session: AsyncSession) -> Account:
    """A second account, for scope isolation checks."""
    account = Account(id=uuid4(), name="CV Sinar Abadi")
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture
async def test_employee(db_session: AsyncSession, test_account: Account) -> Employee:
    """Create a test employee."""
    employee = make_employee(
        test_account.id,
        "3171234567890001",
        "Budi Santoso",
        position="Accountant",
        email="budi@company.co.id",
        gender=Gender.MALE,
        date_of_birth=date(1990, 4, 12),
        bank="BCA",
        bank_number=1234567890,
    )
    db_session.add(employee)
    await db_session.commit()
    await db_session.refresh(employee)
    return employee


@pytest_asyncio.fixture
async def test_salary_slip(
    db_session: AsyncSession,
    test_account: Account,
    test_employee: Employee,
) -> SalarySlip:
    """Create a test salary slip for January 2026."""
    slip = make_slip(test_account.id, test_employee.id)
    db_session.add(slip)
    await db_session.commit()
    await db_session.refresh(slip)
    return slip


@pytest_asyncio.fixture
async def test_invoice(db_session: AsyncSession, test_account: Account) -> Invoice:
    """Create a test invoice issued in March 2026."""
    invoice = Invoice(
        id=uuid4(),
        account_id=test_account.id,
        invoice_no="INV-202603-0001",
        status=InvoiceStatus.PENDING,
        issue_date=date(2026, 3, 5),
        due_date=date(2026, 4, 4),
        our_name="PT Maju Jaya",
        our_address="Jl. Sudirman No. 10, Jakarta",
        client_name="Acme Corp",
        client_email="billing@acme.example",
        total=Decimal("1500.00"),
    )
    invoice.items.append(InvoiceItem(
        description="Consulting",
        quantity=Decimal("10"),
        price=Decimal("150.00"),
        total=Decimal("1500.00"),
        sort_order=0,
    ))
    db_session.add(invoice)
    await db_session.commit()
    await db_session.refresh(invoice, attribute_names=["items"])
    return invoice
