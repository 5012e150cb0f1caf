"""
PayDesk - Roster CSV Parser and Exporter

Reads an uploaded employee roster into validated candidates and writes the
persisted roster back out in a form the parser accepts again.

Header cells are matched after lower-casing and dropping everything that is
not a letter or digit, so the import template form (``nationalId``) and the
export form (``National ID``) land on the same column. Unknown columns are
ignored.

A file that cannot be read as a roster raises ImportStructureException.
A bad row never raises: it is reported as a RowError and left out.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from paydesk.models.payroll import Employee, EmployeeStatus, Gender, sanitize_text
from paydesk.utils.error_handling import ImportStructureException


# ===========================================
# COLUMNS
# ===========================================

@dataclass(frozen=True)
class RosterColumn:
    field: str
    export_header: str
    template_header: str
    required: bool = False
    aliases: tuple = ()

    def keys(self) -> List[str]:
        return [normalize_header(self.export_header), normalize_header(self.template_header)] + [
            normalize_header(alias) for alias in self.aliases
        ]


def normalize_header(value: str) -> str:
    return re.sub(r"[^0-9a-z]", "", (value or "").lower())


ROSTER_COLUMNS = (
    RosterColumn("name", "Name", "name", required=True),
    RosterColumn("national_id", "National ID", "nationalId", required=True, aliases=("nik",)),
    RosterColumn("position", "Position", "position", required=True),
    RosterColumn("status", "Status", "status", required=True),
    RosterColumn("address", "Address", "address", required=True),
    RosterColumn("phone", "Phone", "phone", required=True),
    RosterColumn("email", "Email", "email"),
    RosterColumn("gender", "Gender", "gender"),
    RosterColumn("date_of_birth", "Date of Birth", "dateOfBirth"),
    RosterColumn("birth_location", "Birth Location", "birthLocation"),
    RosterColumn("joined_date", "Joined Date", "joinedDate"),
    RosterColumn("last_education", "Last Education", "lastEducation"),
    RosterColumn("religion", "Religion", "religion"),
    RosterColumn("bank", "Bank", "bank"),
    RosterColumn("bank_number", "Bank Account Number", "bankNumber"),
)

# Fields compared and overwritten when a roster is reconciled
ROSTER_FIELDS = tuple(column.field for column in ROSTER_COLUMNS)

REQUIRED_FIELDS = tuple(column.field for column in ROSTER_COLUMNS if column.required)

EXPORT_HEADERS = [column.export_header for column in ROSTER_COLUMNS] + ["Created At", "Updated At"]

_HEADER_LOOKUP: Dict[str, str] = {}
for _column in ROSTER_COLUMNS:
    for _key in _column.keys():
        _HEADER_LOOKUP.setdefault(_key, _column.field)

_COLUMN_BY_FIELD = {column.field: column for column in ROSTER_COLUMNS}

_ISO_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$")


# ===========================================
# CANDIDATE MODEL
# ===========================================

class EmployeeCandidate(BaseModel):
    """One validated roster row, ready to be matched by national ID."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    national_id: str = Field(..., min_length=1, max_length=50)
    position: str = Field(..., min_length=1)
    status: EmployeeStatus
    address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = None
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    birth_location: Optional[str] = None
    joined_date: Optional[date] = None
    last_education: Optional[str] = None
    religion: Optional[str] = None
    bank: Optional[str] = None
    bank_number: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def sanitize_strings(cls, data):
        if isinstance(data, dict):
            return {
                key: sanitize_text(value) if isinstance(value, str) else value
                for key, value in data.items()
            }
        return data

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            normalized = re.sub(r"[\s\-]+", "_", v.strip()).upper()
            if normalized not in EmployeeStatus.__members__:
                allowed = ", ".join(EmployeeStatus.__members__)
                raise ValueError(f"must be one of {allowed}")
            return EmployeeStatus[normalized]
        return v

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, v):
        if isinstance(v, str):
            normalized = v.strip().upper()
            if normalized not in Gender.__members__:
                raise ValueError("must be MALE or FEMALE")
            return Gender[normalized]
        return v

    @field_validator("date_of_birth", "joined_date", mode="before")
    @classmethod
    def parse_iso_date(cls, v):
        if isinstance(v, str):
            match = _ISO_DATE.match(v.strip())
            if not match:
                raise ValueError("must be an ISO date (YYYY-MM-DD)")
            try:
                return date.fromisoformat(match.group(1))
            except ValueError:
                raise ValueError("is not a valid calendar date")
        return v

    @field_validator("bank_number", mode="before")
    @classmethod
    def parse_bank_number(cls, v):
        if isinstance(v, str):
            digits = re.sub(r"[\s\-]", "", v)
            if not digits:
                return None
            if not digits.isdigit():
                raise ValueError("must contain digits only")
            return int(digits)
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        local, at, domain = v.partition("@")
        if not at or not local or not domain or "@" in domain:
            raise ValueError("is not a valid email address")
        return v

    def as_record(self) -> Dict[str, object]:
        """Values for every roster field, absent ones as None."""
        return {name: getattr(self, name) for name in ROSTER_FIELDS}


@dataclass(frozen=True)
class RowError:
    row: int
    field: Optional[str]
    message: str


@dataclass
class ParseResult:
    candidates: List[EmployeeCandidate] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)


# ===========================================
# PARSER
# ===========================================

def _decode(raw: Union[bytes, str]) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ImportStructureException(
                f"File is not valid UTF-8 text (byte {e.start})"
            )
    return raw[1:] if raw.startswith("\ufeff") else raw


def _row_errors(row_number: int, exc: ValidationError) -> List[RowError]:
    errors = []
    for error in exc.errors():
        field_name = str(error["loc"][0]) if error["loc"] else None
        if error["type"] == "missing" or (field_name in REQUIRED_FIELDS and error.get("input") is None):
            message = "is required"
        else:
            message = error["msg"]
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors.append(RowError(row=row_number, field=field_name, message=message))
    return errors


def parse_roster_csv(raw: Union[bytes, str]) -> ParseResult:
    """
    Parse roster CSV content into candidates and row errors.

    Row numbers are physical line numbers of the file, the header being row 1.
    """
    text = _decode(raw)
    if not text.strip():
        raise ImportStructureException("The uploaded file is empty")

    reader = csv.reader(io.StringIO(text, newline=""))
    result = ParseResult()

    header: Optional[List[str]] = None
    header_fields: Dict[int, str] = {}
    seen_ids: Dict[str, int] = {}
    last_line = 0

    try:
        for cells in reader:
            row_number = last_line + 1
            last_line = reader.line_num

            if not any(cell.strip() for cell in cells):
                continue

            if header is None:
                header = cells
                for index, cell in enumerate(cells):
                    canonical = _HEADER_LOOKUP.get(normalize_header(cell))
                    if canonical and canonical not in header_fields.values():
                        header_fields[index] = canonical
                missing = [
                    _COLUMN_BY_FIELD[name].export_header
                    for name in REQUIRED_FIELDS
                    if name not in header_fields.values()
                ]
                if missing:
                    raise ImportStructureException(
                        f"Missing required columns: {', '.join(missing)}",
                        missing_columns=missing,
                    )
                continue

            data = {
                name: cells[index] if index < len(cells) else ""
                for index, name in header_fields.items()
            }
            try:
                candidate = EmployeeCandidate.model_validate(data)
            except ValidationError as e:
                result.errors.extend(_row_errors(row_number, e))
                continue

            first_row = seen_ids.get(candidate.national_id)
            if first_row is not None:
                result.errors.append(RowError(
                    row=row_number,
                    field="national_id",
                    message=f"duplicate national ID {candidate.national_id}, first seen on row {first_row}",
                ))
                continue
            seen_ids[candidate.national_id] = row_number
            result.candidates.append(candidate)
    except csv.Error as e:
        raise ImportStructureException(f"Malformed CSV near line {reader.line_num}: {e}")

    if header is None:
        raise ImportStructureException("The uploaded file has no header row")

    return result


# ===========================================
# EXPORT
# ===========================================

def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (EmployeeStatus, Gender)):
        return value.value
    return str(value)


def export_roster_csv(employees: Iterable[Employee]) -> str:
    """Write the roster as CSV text, ordered by name."""
    output = io.StringIO(newline="")
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)

    for employee in sorted(employees, key=lambda e: (e.name.lower(), e.national_id)):
        writer.writerow(
            [_cell(getattr(employee, name)) for name in ROSTER_FIELDS]
            + [_cell(employee.created_at), _cell(employee.updated_at)]
        )

    return output.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    return f"employees-{(today or date.today()).isoformat()}.csv"


def template_csv() -> str:
    """Import template: the template headers and two sample rows."""
    output = io.StringIO(newline="")
    writer = csv.writer(output)
    writer.writerow([column.template_header for column in ROSTER_COLUMNS])
    writer.writerow([
        "Budi Santoso", "3171234567890001", "Accountant", "FULL_TIME",
        "Jl. Merdeka No. 1, Jakarta", "081234567890", "budi@company.co.id", "MALE",
        "1990-04-12", "Bandung", "2021-01-04", "S1 Accounting", "Islam", "BCA", "1234567890",
    ])
    writer.writerow([
        "Siti Rahma", "3171234567890002", "Staff", "PROBATION",
        "Jl. Sudirman No. 5, Jakarta", "081298765432", "", "FEMALE",
        "1996-09-30", "Surabaya", "2024-07-01", "D3 Administration", "Islam", "Mandiri", "",
    ])
    return output.getvalue()
