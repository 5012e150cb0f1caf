"""
PayDesk - API Tests

End-to-end tests through the FastAPI app with the database session overridden.
"""

import io
import uuid
import zipfile
from decimal import Decimal

import pytest
from httpx import AsyncClient

from paydesk.config import settings


def scoped(account_id, path: str) -> str:
    return f"/api/v1/accounts/{account_id}{path}"


ROSTER = (
    "Name,National ID,Position,Status,Address,Phone\n"
    "Ani,3171000000000001,Staff,FULL_TIME,Jl. A,0812\n"
    "Budi,3171000000000002,Staff,CONTRACT,Jl. B,0813\n"
)


class TestHealthAndAccounts:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_create_and_get_account(self, client: AsyncClient):
        response = await client.post("/api/v1/accounts", json={"name": "PT Maju Jaya"})
        assert response.status_code == 201
        account_id = response.json()["id"]

        response = await client.get(f"/api/v1/accounts/{account_id}")
        assert response.status_code == 200
        assert response.json()["name"] == "PT Maju Jaya"

    @pytest.mark.asyncio
    async def test_unknown_account_is_404(self, client: AsyncClient):
        response = await client.get(scoped(uuid.uuid4(), "/employees"))
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ACCOUNT_NOT_FOUND"


class TestRosterEndpoints:

    @pytest.mark.asyncio
    async def test_import_then_export(self, client: AsyncClient, test_account):
        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            files={"file": ("roster.csv", ROSTER.encode(), "text/csv")},
        )
        assert response.status_code == 200
        body = response.json()
        assert (body["inserted"], body["updated"], body["deleted"]) == (2, 0, 0)
        assert body["errors"] == []

        response = await client.get(scoped(test_account.id, "/employees/export"))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "employees-" in response.headers["content-disposition"]

        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            files={"file": ("export.csv", response.content, "text/csv")},
        )
        body = response.json()
        assert (body["inserted"], body["updated"], body["deleted"], body["unchanged"]) == (0, 0, 0, 2)

    @pytest.mark.asyncio
    async def test_employees_created_through_the_api_reimport_unchanged(self, client: AsyncClient, test_account):
        base = {"position": "Staff", "status": "FULL_TIME", "address": "Jl. A", "phone": "0812"}
        await client.post(scoped(test_account.id, "/employees"), json={
            **base, "name": "Ani", "national_id": "3171000000000001", "religion": "",
        })
        await client.post(scoped(test_account.id, "/employees"), json={
            **base, "name": "Siti ", "national_id": " 3171000000000002", "address": "Jl. B\r",
        })

        exported = await client.get(scoped(test_account.id, "/employees/export"))
        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            params={"dry_run": "true"},
            files={"file": ("export.csv", exported.content, "text/csv")},
        )

        body = response.json()
        assert (body["inserted"], body["updated"], body["deleted"], body["unchanged"]) == (0, 0, 0, 2)

    @pytest.mark.asyncio
    async def test_dry_run(self, client: AsyncClient, test_account):
        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            params={"dry_run": "true"},
            files={"file": ("roster.csv", ROSTER.encode(), "text/csv")},
        )
        assert response.json()["dry_run"] is True
        assert response.json()["inserted"] == 2

        listing = await client.get(scoped(test_account.id, "/employees"))
        assert listing.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_missing_columns_is_422(self, client: AsyncClient, test_account):
        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            files={"file": ("roster.csv", b"Name,Position\nAni,Staff\n", "text/csv")},
        )
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_FORMAT"
        assert "National ID" in detail["details"]["missing_columns"]

    @pytest.mark.asyncio
    async def test_non_csv_upload_is_rejected(self, client: AsyncClient, test_account):
        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            files={"file": ("roster.xlsx", b"PK\x03\x04", "application/octet-stream")},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_oversized_upload_is_413(self, client: AsyncClient, test_account, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_bytes", 32)
        response = await client.post(
            scoped(test_account.id, "/employees/import"),
            files={"file": ("roster.csv", ROSTER.encode(), "text/csv")},
        )
        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_import_template(self, client: AsyncClient, test_account):
        response = await client.get(scoped(test_account.id, "/employees/import-template"))
        assert response.status_code == 200
        assert response.text.startswith("name,nationalId,")


class TestEmployeeEndpoints:

    @pytest.mark.asyncio
    async def test_create_list_get_update(self, client: AsyncClient, test_account):
        payload = {
            "name": "Ani",
            "national_id": "3171000000000001",
            "position": "Staff",
            "status": "PROBATION",
            "address": "Jl. A",
            "phone": "0812",
            "email": "ani@example.com",
        }
        response = await client.post(scoped(test_account.id, "/employees"), json=payload)
        assert response.status_code == 201
        employee_id = response.json()["id"]

        response = await client.get(scoped(test_account.id, "/employees"), params={"status": "PROBATION"})
        assert response.json()["total"] == 1

        response = await client.put(
            scoped(test_account.id, f"/employees/{employee_id}"), json={"position": "Lead"},
        )
        assert response.status_code == 200
        assert response.json()["position"] == "Lead"

        response = await client.get(scoped(test_account.id, f"/employees/{employee_id}"))
        assert response.json()["email"] == "ani@example.com"

    @pytest.mark.asyncio
    async def test_strings_are_trimmed_and_blanks_stored_as_null(self, client: AsyncClient, test_employee):
        url = scoped(test_employee.account_id, f"/employees/{test_employee.id}")

        response = await client.put(url, json={"position": "  Senior Accountant ", "religion": "  "})
        assert response.status_code == 200
        assert response.json()["position"] == "Senior Accountant"
        assert response.json()["religion"] is None

    @pytest.mark.asyncio
    async def test_required_field_cannot_be_blanked(self, client: AsyncClient, test_employee):
        response = await client.put(
            scoped(test_employee.account_id, f"/employees/{test_employee.id}"), json={"name": "   "},
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_duplicate_national_id_is_409(self, client: AsyncClient, test_employee):
        response = await client.post(scoped(test_employee.account_id, "/employees"), json={
            "name": "Other",
            "national_id": test_employee.national_id,
            "position": "Staff",
            "status": "FULL_TIME",
            "address": "Jl. A",
            "phone": "0812",
        })
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_delete_referenced_employee_is_409(self, client: AsyncClient, test_salary_slip):
        response = await client.delete(
            scoped(test_salary_slip.account_id, f"/employees/{test_salary_slip.employee_id}")
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "CANNOT_DELETE"

    @pytest.mark.asyncio
    async def test_delete_employee(self, client: AsyncClient, test_employee):
        response = await client.delete(scoped(test_employee.account_id, f"/employees/{test_employee.id}"))
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_employee_of_another_account_is_404(self, client: AsyncClient, test_employee, other_account):
        response = await client.get(scoped(other_account.id, f"/employees/{test_employee.id}"))
        assert response.status_code == 404


class TestSalarySlipEndpoints:

    @pytest.mark.asyncio
    async def test_create_ignores_supplied_total(self, client: AsyncClient, test_employee):
        response = await client.post(scoped(test_employee.account_id, "/salary-slips"), json={
            "employee_id": str(test_employee.id),
            "month": "march",
            "year": 2026,
            "company_name": "PT Maju Jaya",
            "basic_salary": "1000.00",
            "bonus": "250.50",
            "total_salary": "99999",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["month"] == "March"
        assert Decimal(body["total_salary"]) == Decimal("1250.50")

    @pytest.mark.asyncio
    async def test_invalid_month_is_422(self, client: AsyncClient, test_employee):
        response = await client.post(scoped(test_employee.account_id, "/salary-slips"), json={
            "employee_id": str(test_employee.id),
            "month": "Smarch",
            "year": 2026,
            "company_name": "PT Maju Jaya",
        })
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_copy_period(self, client: AsyncClient, test_salary_slip):
        url = scoped(test_salary_slip.account_id, "/salary-slips/copy-period")
        payload = {
            "source_slip_ids": [str(test_salary_slip.id)],
            "target_month": "February",
            "target_year": 2026,
        }

        first = await client.post(url, json=payload)
        second = await client.post(url, json=payload)

        assert first.status_code == 200
        assert (first.json()["created"], first.json()["skipped"]) == (1, 0)
        assert (second.json()["created"], second.json()["skipped"]) == (0, 1)

        listing = await client.get(
            scoped(test_salary_slip.account_id, "/salary-slips"),
            params={"month": "February", "year": 2026},
        )
        assert len(listing.json()) == 1
        assert Decimal(listing.json()[0]["total_salary"]) == Decimal("6500000.00")

    @pytest.mark.asyncio
    async def test_copy_period_with_unknown_slip_is_404(self, client: AsyncClient, test_account):
        response = await client.post(scoped(test_account.id, "/salary-slips/copy-period"), json={
            "source_slip_ids": [str(uuid.uuid4())],
            "target_month": "February",
            "target_year": 2026,
        })
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_slip_pdf(self, client: AsyncClient, test_salary_slip):
        response = await client.get(
            scoped(test_salary_slip.account_id, f"/salary-slips/{test_salary_slip.id}/pdf")
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert "Salary-Budi%20Santoso-January-2026.pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_period_archive(self, client: AsyncClient, test_salary_slip):
        response = await client.get(
            scoped(test_salary_slip.account_id, "/salary-slips/archive"),
            params={"month": "january", "year": 2026},
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert archive.namelist() == ["Salary-Budi Santoso-January-2026.pdf"]

    @pytest.mark.asyncio
    async def test_empty_period_archive_is_404(self, client: AsyncClient, test_account):
        response = await client.get(
            scoped(test_account.id, "/salary-slips/archive"),
            params={"month": "January", "year": 2026},
        )
        assert response.status_code == 404


class TestInvoiceEndpoints:

    @pytest.mark.asyncio
    async def test_create_invoice_computes_totals(self, client: AsyncClient, test_account):
        response = await client.post(scoped(test_account.id, "/invoices"), json={
            "issue_date": "2026-03-10",
            "our_name": "PT Maju Jaya",
            "client_name": "Acme Corp",
            "client_email": "billing@acme.com",
            "items": [
                {"description": "Consulting", "quantity": "3", "price": "100.10"},
                {"description": "Support", "price": "49.90"},
            ],
        })
        assert response.status_code == 201
        body = response.json()
        assert body["invoice_no"] == "INV-202603-0001"
        assert Decimal(body["total"]) == Decimal("350.20")
        assert [item["description"] for item in body["items"]] == ["Consulting", "Support"]

    @pytest.mark.asyncio
    async def test_invoice_pdf_and_archive(self, client: AsyncClient, test_invoice):
        response = await client.get(scoped(test_invoice.account_id, f"/invoices/{test_invoice.id}/pdf"))
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

        response = await client.get(
            scoped(test_invoice.account_id, "/invoices/archive"),
            params={"month": "March", "year": 2026},
        )
        assert response.status_code == 200
        assert response.headers["content-disposition"].startswith('attachment; filename="Invoice-March-2026.zip"')

    @pytest.mark.asyncio
    async def test_list_and_search_invoices(self, client: AsyncClient, test_invoice):
        url = scoped(test_invoice.account_id, "/invoices")

        response = await client.get(url)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["invoice_no"] == "INV-202603-0001"

        response = await client.get(url, params={"search": "globex"})
        assert response.json() == {"items": [], "total": 0}

        response = await client.get(url, params={"status": "PAID"})
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_update_invoice_recomputes_total(self, client: AsyncClient, test_invoice):
        response = await client.put(
            scoped(test_invoice.account_id, f"/invoices/{test_invoice.id}"),
            json={"items": [
                {"description": "Review", "quantity": "2", "price": "125.25"},
                {"description": "Travel", "price": "10.00"},
            ]},
        )
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["total"]) == Decimal("260.50")
        assert len(body["items"]) == 2
        assert body["client_name"] == "Acme Corp"

    @pytest.mark.asyncio
    async def test_update_invoice_rejects_cleared_client(self, client: AsyncClient, test_invoice):
        response = await client.put(
            scoped(test_invoice.account_id, f"/invoices/{test_invoice.id}"),
            json={"client_name": None},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_change_invoice_status(self, client: AsyncClient, test_invoice):
        response = await client.patch(
            scoped(test_invoice.account_id, f"/invoices/{test_invoice.id}/status"),
            json={"status": "PAID"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "PAID"

    @pytest.mark.asyncio
    async def test_delete_invoice(self, client: AsyncClient, test_invoice):
        url = scoped(test_invoice.account_id, f"/invoices/{test_invoice.id}")

        response = await client.delete(url)
        assert response.status_code == 204

        response = await client.get(url)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invoice_stats(self, client: AsyncClient, test_invoice):
        response = await client.get(scoped(test_invoice.account_id, "/invoices/stats"))
        assert response.status_code == 200
        body = response.json()
        assert body["total_invoices"] == 1
        assert Decimal(body["total_revenue"]) == Decimal("0")
        assert body["status_counts"] == {"PENDING": 1, "PAID": 0, "OVERDUE": 0, "CANCELLED": 0}

    @pytest.mark.asyncio
    async def test_invoice_stats_for_unknown_account(self, client: AsyncClient):
        response = await client.get(scoped(uuid.uuid4(), "/invoices/stats"))
        assert response.status_code == 404
