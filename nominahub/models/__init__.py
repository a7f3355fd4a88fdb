"""
NominaHub - Domain Models

Immutable payroll records shared by the engine, the API and the workers.
"""

from nominahub.models.payroll import (
    AuditEntry,
    CalculationFailure,
    CalculationOutcome,
    CalculationState,
    Concept,
    ConceptKind,
    Employee,
    EmployeeStatus,
    Incident,
    PayrollLine,
    PayrollResult,
    Period,
    PeriodFrequency,
    SalaryZone,
)

__all__ = [
    "AuditEntry",
    "CalculationFailure",
    "CalculationOutcome",
    "CalculationState",
    "Concept",
    "ConceptKind",
    "Employee",
    "EmployeeStatus",
    "Incident",
    "PayrollLine",
    "PayrollResult",
    "Period",
    "PeriodFrequency",
    "SalaryZone",
]
