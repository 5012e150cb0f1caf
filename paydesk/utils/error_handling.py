"""
PayDesk - Errors

Every failure a PayDesk operation reports is an AppException subclass carrying
an ErrorCode and an HTTP status. The handlers registered by
setup_exception_handlers turn those, plus FastAPI, validation and SQLAlchemy
errors, into one JSON error shape.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
    InterfaceError,
    DisconnectionError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("paydesk.errors")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class ErrorCode(str, Enum):
    """Machine-readable codes returned in the `code` field of error bodies"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_FORMAT = "INVALID_FORMAT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # Missing or clashing records (404/409)
    NOT_FOUND = "NOT_FOUND"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    SALARY_SLIP_NOT_FOUND = "SALARY_SLIP_NOT_FOUND"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Referenced records
    CANNOT_DELETE = "CANNOT_DELETE"

    # Document Errors (500)
    DOCUMENT_RENDER_ERROR = "DOCUMENT_RENDER_ERROR"

    # Database Errors (500/503)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """An error with a code, an HTTP status and optional details"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = _utc_timestamp()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """The JSON error body"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Input rejected before any write (422)"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class ImportStructureException(ValidationException):
    """
    The uploaded roster cannot be read at all (encoding, missing header row,
    missing required columns). The whole import is aborted.
    """

    def __init__(self, message: str, missing_columns: Optional[List[str]] = None):
        details = {}
        if missing_columns:
            details["missing_columns"] = missing_columns
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_FORMAT,
            details=details,
        )


class PayloadTooLargeException(AppException):
    """Uploaded file exceeds the configured size limit"""

    def __init__(self, size: int, limit: int):
        super().__init__(
            code=ErrorCode.PAYLOAD_TOO_LARGE,
            message=f"Uploaded file is {size} bytes, the limit is {limit} bytes",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            details={"size": size, "limit": limit},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """A record is missing or belongs to another account"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class AccountNotFoundException(NotFoundException):
    """Account not found"""

    def __init__(self, account_id: Union[str, UUID]):
        super().__init__(
            resource_type="Account",
            resource_id=account_id,
            code=ErrorCode.ACCOUNT_NOT_FOUND,
        )


class EmployeeNotFoundException(NotFoundException):
    """Employee not found"""

    def __init__(self, employee_id: Union[str, UUID]):
        super().__init__(
            resource_type="Employee",
            resource_id=employee_id,
            code=ErrorCode.EMPLOYEE_NOT_FOUND,
        )


class SalarySlipNotFoundException(NotFoundException):
    """Salary slip not found"""

    def __init__(self, slip_id: Union[str, UUID]):
        super().__init__(
            resource_type="SalarySlip",
            resource_id=slip_id,
            code=ErrorCode.SALARY_SLIP_NOT_FOUND,
        )


class InvoiceNotFoundException(NotFoundException):
    """Invoice not found"""

    def __init__(self, invoice_id: Union[str, UUID]):
        super().__init__(
            resource_type="Invoice",
            resource_id=invoice_id,
            code=ErrorCode.INVOICE_NOT_FOUND,
        )


class ConflictException(AppException):
    """The request clashes with stored data (409)"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class DuplicateEntryException(ConflictException):
    """A unique key such as a national ID is already taken"""

    def __init__(
        self,
        resource_type: str,
        field: str,
        value: str,
    ):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            resource_type=resource_type,
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"field": field, "value": value},
        )


class ReferencedRecordException(ConflictException):
    """Record cannot be deleted while other records reference it"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Union[str, UUID],
        referenced_by: str,
        reference_count: int,
    ):
        super().__init__(
            message=(
                f"{resource_type} '{resource_id}' cannot be deleted: "
                f"it is referenced by {reference_count} {referenced_by}"
            ),
            resource_type=resource_type,
            code=ErrorCode.CANNOT_DELETE,
            details={
                "resource_id": str(resource_id),
                "referenced_by": referenced_by,
                "reference_count": reference_count,
            },
        )


# ============================================================================
# Document Exceptions
# ============================================================================

class DocumentRenderException(AppException):
    """A document could not be rendered; archives built from it are abandoned"""

    def __init__(self, document: str, original_error: Optional[Exception] = None):
        reason = str(original_error) if original_error else "unknown error"
        super().__init__(
            code=ErrorCode.DOCUMENT_RENDER_ERROR,
            message=f"Failed to render {document}: {reason}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"document": document},
            original_error=original_error,
        )


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseException(AppException):
    """A write batch failed in the database"""

    def __init__(
        self,
        message: str = "A database error occurred",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        original_error: Optional[Exception] = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details,
            original_error=original_error,
        )


class ConnectionException(DatabaseException):
    """Database connection error. The batch was rolled back and may be retried."""

    def __init__(
        self,
        message: str = "Unable to connect to database",
        original_error: Optional[Exception] = None,
        attempts: Optional[int] = None,
    ):
        details = {"retryable": True}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            message=message,
            code=ErrorCode.CONNECTION_ERROR,
            original_error=original_error,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
        )


class DataIntegrityException(DatabaseException):
    """A database constraint rejected the write batch"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message=message,
            code=ErrorCode.DATA_INTEGRITY_ERROR,
            original_error=original_error,
            status_code=status.HTTP_409_CONFLICT,
        )


def is_connection_error(exc: BaseException) -> bool:
    """
    True for failures that mean the database could not be reached or the
    connection dropped mid-batch. Constraint violations are never retried.
    """
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, DisconnectionError):
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        return bool(getattr(exc, "connection_invalidated", False)) or _looks_like_connection_failure(exc)
    return isinstance(exc, (ConnectionError, TimeoutError))


def _looks_like_connection_failure(exc: SQLAlchemyError) -> bool:
    text = str(getattr(exc, "orig", None) or exc).lower()
    markers = (
        "connection refused",
        "could not connect",
        "connection reset",
        "server closed the connection",
        "connection is closed",
        "terminating connection",
        "timeout",
        "database is locked",
    )
    return any(marker in text for marker in markers)


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Wrap an error body in a JSONResponse"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": _utc_timestamp(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Give plain HTTPExceptions the common error shape"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        413: ErrorCode.PAYLOAD_TOO_LARGE,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
        503: ErrorCode.CONNECTION_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation errors field by field"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Pick a status and code for database errors that escaped a service"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        status_code = status.HTTP_409_CONFLICT
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
        elif "foreign key" in error_str:
            error_message = "Record is referenced by or references a missing record"
    elif is_connection_error(exc):
        error_message = "Database is unavailable"
        error_code = ErrorCode.CONNECTION_ERROR
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log and hide anything unexpected behind INTERNAL_ERROR"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # Don't expose internal error details
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Install the PayDesk error handlers on the app"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "ImportStructureException",
    "PayloadTooLargeException",

    # Resource
    "NotFoundException",
    "AccountNotFoundException",
    "EmployeeNotFoundException",
    "SalarySlipNotFoundException",
    "InvoiceNotFoundException",
    "ConflictException",
    "DuplicateEntryException",
    "ReferencedRecordException",

    # Documents
    "DocumentRenderException",

    # Database
    "DatabaseException",
    "ConnectionException",
    "DataIntegrityException",
    "is_connection_error",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
