"""
NominaHub - Error Handling Module

Centralized error handling for the payroll engine and its HTTP surface:
- Error code enum and AppException base
- Payroll calculation errors (per-employee fatal, catalog fatal, warnings)
- Standardized JSON error responses for FastAPI
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("nominahub.errors")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"

    # Payroll input errors (422)
    MISSING_INPUT = "MISSING_INPUT"
    INACTIVE_EMPLOYEE = "INACTIVE_EMPLOYEE"

    # Formula / catalog errors (422)
    UNKNOWN_VARIABLE = "UNKNOWN_VARIABLE"
    UNKNOWN_FUNCTION = "UNKNOWN_FUNCTION"
    FORMULA_SYNTAX_ERROR = "FORMULA_SYNTAX_ERROR"
    CATALOG_ERROR = "CATALOG_ERROR"

    # Arithmetic / tax domain errors (422)
    DIVISION_BY_ZERO = "DIVISION_BY_ZERO"
    INVALID_TAX_BASE = "INVALID_TAX_BASE"
    NEGATIVE_NET_PAY = "NEGATIVE_NET_PAY"
    PAYROLL_CALCULATION_FAILED = "PAYROLL_CALCULATION_FAILED"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

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

    def __reduce__(self):
        # Worker processes send failures back to the parent by pickle.
        return (_rebuild_exception, (type(self), self.args, self.__dict__))

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
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


def _rebuild_exception(cls, args, state):
    exc = cls.__new__(cls)
    exc.args = args
    exc.__dict__.update(state)
    return exc


# ============================================================================
# Payroll Exceptions
# ============================================================================

class PayrollError(AppException):
    """
    Base for errors that abort a single employee's calculation.

    `concept` names the catalog entry being evaluated when the error
    happened, when there was one.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        concept: Optional[str] = None,
    ):
        _details = dict(details or {})
        if concept:
            _details["concept"] = concept
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
            field=field,
        )
        self.concept = concept

    @property
    def kind(self) -> str:
        return type(self).__name__

    def for_concept(self, concept: Optional[str]) -> "PayrollError":
        """Attach the concept being evaluated, unless one is already set."""
        if concept and not self.concept:
            self.concept = concept
            self.details["concept"] = concept
        return self


class MissingInputError(PayrollError):
    """Required employee/period field absent or non-positive"""

    def __init__(self, field: str, value: Any = None, message: Optional[str] = None):
        super().__init__(
            message=message or f"Required input '{field}' is missing or not positive",
            code=ErrorCode.MISSING_INPUT,
            field=field,
            details={"provided": None if value is None else str(value)},
        )


class InactiveEmployeeError(PayrollError):
    """Payroll requested for an employee who is not active"""

    def __init__(self, employee_id: Any, status_value: str):
        super().__init__(
            message=f"Employee '{employee_id}' has status '{status_value}' and cannot be paid",
            code=ErrorCode.INACTIVE_EMPLOYEE,
            field="estatus",
            details={"employee_id": str(employee_id), "estatus": status_value},
        )


class UnknownVariableError(PayrollError):
    """A formula references a variable that is not in the context"""

    def __init__(self, variable: str, concept: Optional[str] = None):
        where = f" in concept '{concept}'" if concept else ""
        super().__init__(
            message=f"Unknown variable '{variable}'{where}",
            code=ErrorCode.UNKNOWN_VARIABLE,
            details={"variable": variable},
            concept=concept,
        )
        self.variable = variable


class UnknownFunctionError(PayrollError):
    """A formula calls a function that is not MIN/MAX or a tax table"""

    def __init__(self, function: str, concept: Optional[str] = None):
        where = f" in concept '{concept}'" if concept else ""
        super().__init__(
            message=f"Unknown function '{function}'{where}",
            code=ErrorCode.UNKNOWN_FUNCTION,
            details={"function": function},
            concept=concept,
        )
        self.function = function


class FormulaSyntaxError(PayrollError):
    """Formula text cannot be parsed"""

    def __init__(self, formula: str, position: int, reason: str, concept: Optional[str] = None):
        super().__init__(
            message=f"Syntax error at position {position}: {reason}",
            code=ErrorCode.FORMULA_SYNTAX_ERROR,
            details={"formula": formula, "position": position, "reason": reason},
            concept=concept,
        )
        self.formula = formula
        self.position = position
        self.reason = reason


class DivisionByZeroError(PayrollError):
    """Formula divides by zero"""

    def __init__(self, formula: str, concept: Optional[str] = None):
        where = f" in concept '{concept}'" if concept else ""
        super().__init__(
            message=f"Division by zero{where}",
            code=ErrorCode.DIVISION_BY_ZERO,
            details={"formula": formula},
            concept=concept,
        )


class InvalidTaxBaseError(PayrollError):
    """Tax table called with a base outside its domain"""

    def __init__(self, table: str, base: Any, reason: str, concept: Optional[str] = None):
        super().__init__(
            message=f"Invalid base for {table}: {base} ({reason})",
            code=ErrorCode.INVALID_TAX_BASE,
            details={"table": table, "base": str(base), "reason": reason},
            concept=concept,
        )
        self.table = table


class NegativeNetPayError(PayrollError):
    """Deductions exceed earnings and flooring is disabled"""

    def __init__(self, earnings: Decimal, deductions: Decimal):
        super().__init__(
            message=(
                f"Deductions {deductions} exceed earnings {earnings}; "
                "net pay would be negative"
            ),
            code=ErrorCode.NEGATIVE_NET_PAY,
            details={"earnings": str(earnings), "deductions": str(deductions)},
        )


class CatalogError(AppException):
    """
    Structural problem in a concept catalog.

    Detected once when the catalog is resolved; aborts the whole batch
    before any employee runs.
    """

    def __init__(
        self,
        message: str,
        concept: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        _details = dict(details or {})
        if concept:
            _details["concept"] = concept
        super().__init__(
            code=ErrorCode.CATALOG_ERROR,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
            original_error=original_error,
        )
        self.concept = concept


class PayrollCalculationException(AppException):
    """HTTP-facing wrapper for a failed employee calculation"""

    def __init__(
        self,
        message: str,
        employee_id: Any,
        error_code: ErrorCode,
        details: Dict[str, Any],
    ):
        super().__init__(
            code=ErrorCode.PAYROLL_CALCULATION_FAILED,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"employee_id": str(employee_id), "error_code": error_code.value, **details},
        )


class UnrecognizedIncidentTypeWarning(UserWarning):
    """Incident type has no variable mapping; the incident is zeroed"""


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
    """Create a standardized error response"""
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

    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    logger.error(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
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
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
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
    """Handle Pydantic validation errors"""
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
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# ============================================================================
# Utility Functions
# ============================================================================

def require_positive(value: Any, field: str) -> Decimal:
    """Validate a required, strictly positive amount"""
    if value is None:
        raise MissingInputError(field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError:
        raise MissingInputError(field, value)
    if not amount.is_finite() or amount <= 0:
        raise MissingInputError(field, value)
    return amount


# Export all exceptions for easy importing
__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Payroll
    "PayrollError",
    "MissingInputError",
    "InactiveEmployeeError",
    "UnknownVariableError",
    "UnknownFunctionError",
    "FormulaSyntaxError",
    "DivisionByZeroError",
    "InvalidTaxBaseError",
    "NegativeNetPayError",
    "CatalogError",
    "PayrollCalculationException",
    "UnrecognizedIncidentTypeWarning",

    # Handlers
    "create_error_response",
    "setup_exception_handlers",

    # Utilities
    "require_positive",
]
