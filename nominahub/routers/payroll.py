"""
NominaHub - Payroll Router

API endpoints for payroll calculation and concept catalog management.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, status
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from nominahub.config import settings
from nominahub.models.payroll import CalculationFailure
from nominahub.schemas.payroll import (
    BatchRequest,
    BatchResponse,
    CalculateRequest,
    CatalogResponse,
    CatalogValidateRequest,
    ConceptInput,
    PayrollResultResponse,
)
from nominahub.services.payroll_engine.batch_service import PayrollBatchRunner
from nominahub.services.payroll_engine.concept_resolver import ResolvedCatalog, resolve_catalog
from nominahub.services.payroll_engine.payroll_calculator import PayrollCalculator
from nominahub.services.payroll_engine.seed_catalog import get_default_catalog
from nominahub.utils.error_handling import ErrorCode, PayrollCalculationException

logger = logging.getLogger(__name__)

router = APIRouter()


# ===========================================
# HELPER FUNCTIONS
# ===========================================

def load_catalog(tenant_id: str, concepts: Optional[List[ConceptInput]]) -> ResolvedCatalog:
    """Resolve a posted catalog, or fall back to the default statutory one."""
    if not concepts:
        return get_default_catalog()
    return resolve_catalog(tenant_id, [concept.to_domain() for concept in concepts])


def failure_exception(failure: CalculationFailure) -> PayrollCalculationException:
    return PayrollCalculationException(
        message=f"Payroll calculation failed for employee {failure.employee_id}: {failure.message}",
        employee_id=failure.employee_id,
        error_code=ErrorCode(failure.error_code),
        details=jsonable_encoder({
            "concept": failure.concept,
            "errorKind": failure.error_kind,
            "lastState": failure.last_state.value,
            "auditTrail": [entry.to_dict() for entry in failure.audit_trail],
        }),
    )


# ===========================================
# CALCULATION ENDPOINTS
# ===========================================

@router.post(
    "/calculate",
    response_model=PayrollResultResponse,
    response_model_exclude_none=True,
    summary="Calculate payroll for one employee",
    tags=["Payroll"],
)
async def calculate(request: CalculateRequest):
    """
    Calculate earnings, ISR, IMSS and net pay for one employee and period.

    Returns 422 with the failing concept, error code and partial audit
    trail when the calculation fails, or when the posted catalog is invalid.
    """
    catalog = load_catalog(request.tenant_id, request.catalog)
    calculator = PayrollCalculator(
        catalog,
        floor_net_pay_at_zero=settings.floor_net_pay_at_zero,
        include_zero_lines=settings.include_zero_lines,
    )
    outcome = calculator.calculate(
        request.employee.to_domain(),
        request.period.to_domain(),
        [incident.to_domain() for incident in request.incidents],
        request.year_to_date,
    )
    if not outcome.ok:
        raise failure_exception(outcome)
    return PayrollResultResponse.from_result(outcome, include_audit=request.include_audit)


@router.post(
    "/batch",
    response_model=BatchResponse,
    response_model_exclude_none=True,
    summary="Calculate payroll for a period",
    tags=["Payroll"],
)
async def calculate_batch(request: BatchRequest):
    """
    Calculate every employee of one period against a single catalog snapshot.

    Per-employee failures are reported in `failures`; they never abort the
    batch. An invalid catalog aborts before any employee is calculated.
    """
    catalog = load_catalog(request.tenant_id, request.catalog)
    runner = PayrollBatchRunner(
        catalog,
        executor=request.executor or settings.batch_executor,
        max_workers=request.max_workers or settings.batch_workers,
        floor_net_pay_at_zero=settings.floor_net_pay_at_zero,
        include_zero_lines=settings.include_zero_lines,
    )
    timeout = request.timeout_seconds or settings.batch_timeout
    batch = await run_in_threadpool(
        runner.run,
        request.period.to_domain(),
        [employee.to_job() for employee in request.employees],
        timeout,
    )
    return BatchResponse.from_batch(batch, include_audit=request.include_audit)


# ===========================================
# CATALOG ENDPOINTS
# ===========================================

@router.get(
    "/catalog/default",
    response_model=CatalogResponse,
    summary="Default statutory catalog",
    tags=["Payroll - Catalog"],
)
async def default_catalog():
    """List the default concepts in evaluation order."""
    return CatalogResponse.from_catalog(get_default_catalog())


@router.post(
    "/catalog/validate",
    response_model=CatalogResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate a tenant catalog",
    tags=["Payroll - Catalog"],
)
async def validate_catalog(request: CatalogValidateRequest):
    """
    Resolve a catalog without calculating anything.

    Reports syntax errors, unknown functions, forward references and
    dependency cycles as 422 CATALOG_ERROR.
    """
    catalog = resolve_catalog(request.tenant_id, [concept.to_domain() for concept in request.concepts])
    logger.info(f"Catalog for tenant {request.tenant_id} validated: {len(catalog)} concepts")
    return CatalogResponse.from_catalog(catalog)
