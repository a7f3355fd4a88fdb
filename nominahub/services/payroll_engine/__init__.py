"""
NominaHub - Payroll Engine

Catalog-driven calculation of earnings, statutory deductions (ISR, IMSS)
and net pay for one employee or a whole period.
"""

from nominahub.services.payroll_engine.audit_trail import AuditTrail
from nominahub.services.payroll_engine.batch_service import (
    BatchItem,
    BatchItemStatus,
    BatchJob,
    BatchResult,
    PayrollBatchRunner,
    run_payroll_batch,
)
from nominahub.services.payroll_engine.concept_resolver import (
    ResolvedCatalog,
    ResolvedConcept,
    resolve_catalog,
)
from nominahub.services.payroll_engine.context_builder import (
    VariableContext,
    build_variable_context,
)
from nominahub.services.payroll_engine.formula_evaluator import (
    CompiledFormula,
    compile_formula,
    evaluate_formula,
)
from nominahub.services.payroll_engine.incident_processor import process_incidents
from nominahub.services.payroll_engine.payroll_calculator import (
    PayrollCalculator,
    calculate_payroll,
)
from nominahub.services.payroll_engine.seed_catalog import (
    DEFAULT_CONCEPTS,
    DEFAULT_TENANT,
    get_default_catalog,
)

__all__ = [
    "AuditTrail",
    "BatchItem",
    "BatchItemStatus",
    "BatchJob",
    "BatchResult",
    "PayrollBatchRunner",
    "run_payroll_batch",
    "ResolvedCatalog",
    "ResolvedConcept",
    "resolve_catalog",
    "VariableContext",
    "build_variable_context",
    "CompiledFormula",
    "compile_formula",
    "evaluate_formula",
    "process_incidents",
    "PayrollCalculator",
    "calculate_payroll",
    "DEFAULT_CONCEPTS",
    "DEFAULT_TENANT",
    "get_default_catalog",
]
