"""
NominaHub - Celery Tasks

Background payroll batch calculation.
"""

import logging
from typing import Any, Dict

from celery import shared_task

logger = logging.getLogger(__name__)


# ===========================================
# PAYROLL TASKS
# ===========================================

@shared_task(name='nominahub.tasks.celery_tasks.calculate_payroll_batch_task')
def calculate_payroll_batch_task(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Calculate a payroll batch inside a worker.

    `payload` has the same shape as the body of POST /api/v1/payroll/batch.
    The batch runs serially: the Celery worker pool already provides the
    parallelism. An invalid catalog is returned as an error document
    rather than raised, so the result backend always holds JSON.
    """
    from nominahub.routers.payroll import load_catalog
    from nominahub.schemas.payroll import BatchRequest, BatchResponse
    from nominahub.services.payroll_engine.batch_service import PayrollBatchRunner, EXECUTOR_SERIAL
    from nominahub.config import settings
    from nominahub.utils.error_handling import CatalogError

    request = BatchRequest.model_validate(payload)
    logger.info(
        f"Payroll batch task started for period {request.period.id}: "
        f"{len(request.employees)} employees"
    )

    try:
        catalog = load_catalog(request.tenant_id, request.catalog)
    except CatalogError as e:
        logger.error(f"Payroll batch for period {request.period.id} rejected: {e.message}")
        return {"error": e.to_dict()}

    runner = PayrollBatchRunner(
        catalog,
        executor=EXECUTOR_SERIAL,
        floor_net_pay_at_zero=settings.floor_net_pay_at_zero,
        include_zero_lines=settings.include_zero_lines,
    )
    batch = runner.run(
        request.period.to_domain(),
        [employee.to_job() for employee in request.employees],
        timeout=request.timeout_seconds or settings.batch_timeout,
    )
    response = BatchResponse.from_batch(batch, include_audit=request.include_audit)
    return response.model_dump(mode="json", by_alias=True, exclude_none=True)
