"""
NominaHub - Payroll Batch Service

Runs the payroll calculator for many employees of one period on a worker
pool sized to the CPU count.

- Each employee is an independent unit of work; one failure never affects
  the others.
- The resolved catalog is handed to each worker once, when the worker
  starts, and is not reloaded for the lifetime of the batch.
- Cancellation is cooperative: cancel() stops new submissions, in-flight
  calculations run to completion, and jobs never started are reported as
  skipped.
- A timeout, when given, is enforced here by the same mechanism.
"""

import logging
import os
import threading
import time
from concurrent.futures import (
    FIRST_COMPLETED,
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from nominahub.models.payroll import (
    CalculationFailure,
    CalculationOutcome,
    CalculationState,
    Employee,
    Incident,
    PayrollResult,
    Period,
)
from nominahub.services.payroll_engine.concept_resolver import ResolvedCatalog
from nominahub.services.payroll_engine.payroll_calculator import PayrollCalculator

logger = logging.getLogger(__name__)

EXECUTOR_PROCESS = "process"
EXECUTOR_THREAD = "thread"
EXECUTOR_SERIAL = "serial"
EXECUTORS = (EXECUTOR_PROCESS, EXECUTOR_THREAD, EXECUTOR_SERIAL)

# Poll interval while waiting on in-flight work, so cancel() is noticed promptly.
_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class BatchJob:
    employee: Employee
    incidents: Tuple[Incident, ...] = ()
    year_to_date: Optional[Mapping[str, Decimal]] = None


class BatchItemStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BatchItem:
    index: int
    employee_id: str
    status: BatchItemStatus
    outcome: Optional[CalculationOutcome] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    period_id: str
    catalog_fingerprint: str
    items: Tuple[BatchItem, ...]
    cancelled: bool = False
    timed_out: bool = False
    duration_ms: float = 0.0

    def _with_status(self, status: BatchItemStatus) -> List[BatchItem]:
        return [item for item in self.items if item.status == status]

    @property
    def results(self) -> List[PayrollResult]:
        return [item.outcome for item in self._with_status(BatchItemStatus.COMPLETED)]

    @property
    def failures(self) -> List[CalculationFailure]:
        return [item.outcome for item in self._with_status(BatchItemStatus.FAILED)]

    @property
    def skipped(self) -> List[BatchItem]:
        return self._with_status(BatchItemStatus.SKIPPED)

    def summary(self) -> Dict[str, Any]:
        return {
            "total": len(self.items),
            "completed": len(self._with_status(BatchItemStatus.COMPLETED)),
            "failed": len(self._with_status(BatchItemStatus.FAILED)),
            "skipped": len(self.skipped),
            "cancelled": self.cancelled,
            "timedOut": self.timed_out,
            "durationMs": round(self.duration_ms, 3),
        }


# ===========================================
# PROCESS WORKER
# ===========================================

_worker_calculator: Optional[PayrollCalculator] = None


def _init_worker(catalog: ResolvedCatalog, floor_net_pay_at_zero: bool, include_zero_lines: bool) -> None:
    global _worker_calculator
    _worker_calculator = PayrollCalculator(
        catalog,
        floor_net_pay_at_zero=floor_net_pay_at_zero,
        include_zero_lines=include_zero_lines,
    )


def _calculate_in_worker(job: BatchJob, period: Period) -> CalculationOutcome:
    return _worker_calculator.calculate(job.employee, period, job.incidents, job.year_to_date)


# ===========================================
# BATCH RUNNER
# ===========================================

class PayrollBatchRunner:
    """
    Calculate payroll for a batch of employees against one catalog snapshot.

    A runner that has been cancelled stays cancelled; create a new runner
    for the next batch.
    """

    def __init__(
        self,
        catalog: ResolvedCatalog,
        executor: str = EXECUTOR_PROCESS,
        max_workers: Optional[int] = None,
        floor_net_pay_at_zero: bool = True,
        include_zero_lines: bool = False,
    ):
        if executor not in EXECUTORS:
            raise ValueError(f"Unknown executor '{executor}'; expected one of {EXECUTORS}")
        self.catalog = catalog
        self.executor = executor
        self.max_workers = max_workers or os.cpu_count() or 1
        self.floor_net_pay_at_zero = floor_net_pay_at_zero
        self.include_zero_lines = include_zero_lines
        self.calculator = PayrollCalculator(
            catalog,
            floor_net_pay_at_zero=floor_net_pay_at_zero,
            include_zero_lines=include_zero_lines,
        )
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop submitting new calculations. In-flight ones still finish."""
        logger.info("Payroll batch cancellation requested")
        self._cancel.set()

    def _make_executor(self) -> Executor:
        if self.executor == EXECUTOR_PROCESS:
            return ProcessPoolExecutor(
                max_workers=self.max_workers,
                initializer=_init_worker,
                initargs=(self.catalog, self.floor_net_pay_at_zero, self.include_zero_lines),
            )
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="payroll")

    def _submit(self, pool: Executor, job: BatchJob, period: Period) -> Future:
        if self.executor == EXECUTOR_PROCESS:
            return pool.submit(_calculate_in_worker, job, period)
        return pool.submit(self.calculator.calculate, job.employee, period, job.incidents, job.year_to_date)

    @staticmethod
    def _item(index: int, job: BatchJob, outcome: CalculationOutcome) -> BatchItem:
        status = BatchItemStatus.COMPLETED if outcome.ok else BatchItemStatus.FAILED
        return BatchItem(index, str(job.employee.id), status, outcome)

    def _item_from_future(self, index: int, job: BatchJob, future: Future, period: Period) -> BatchItem:
        try:
            outcome = future.result()
        except Exception as exc:
            # The worker itself failed (e.g. a broken process pool).
            logger.error(f"Worker failed for employee {job.employee.id}: {exc}", exc_info=exc)
            outcome = CalculationFailure(
                employee_id=str(job.employee.id),
                period_id=str(period.id),
                error=exc,
                last_state=CalculationState.STARTED,
                audit_trail=(),
            )
        return self._item(index, job, outcome)

    def run(
        self,
        period: Period,
        jobs: Iterable[BatchJob],
        timeout: Optional[float] = None,
    ) -> BatchResult:
        """
        Calculate every job for `period`.

        Results are returned in submission order. Jobs not started before
        cancellation or the timeout are SKIPPED.
        """
        jobs = list(jobs)
        items: List[Optional[BatchItem]] = [None] * len(jobs)
        started = time.monotonic()
        deadline = started + timeout if timeout else None
        timed_out = False

        def should_stop() -> bool:
            nonlocal timed_out
            if self._cancel.is_set():
                return True
            if deadline is not None and time.monotonic() >= deadline:
                timed_out = True
                return True
            return False

        logger.info(
            f"Starting payroll batch for period {period.id}: {len(jobs)} employees, "
            f"executor={self.executor}, workers={self.max_workers}"
        )

        if self.executor == EXECUTOR_SERIAL:
            for index, job in enumerate(jobs):
                if should_stop():
                    break
                outcome = self.calculator.calculate(job.employee, period, job.incidents, job.year_to_date)
                items[index] = self._item(index, job, outcome)
        else:
            window = self.max_workers * 2
            with self._make_executor() as pool:
                pending: Dict[Future, int] = {}
                next_index = 0
                while True:
                    while next_index < len(jobs) and len(pending) < window and not should_stop():
                        pending[self._submit(pool, jobs[next_index], period)] = next_index
                        next_index += 1
                    if not pending:
                        break
                    done, _ = wait(list(pending), timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
                    for future in done:
                        index = pending.pop(future)
                        items[index] = self._item_from_future(index, jobs[index], future, period)

        reason = "timeout" if timed_out else "cancelled"
        final_items = tuple(
            item if item is not None
            else BatchItem(index, str(jobs[index].employee.id), BatchItemStatus.SKIPPED, reason=reason)
            for index, item in enumerate(items)
        )

        result = BatchResult(
            period_id=str(period.id),
            catalog_fingerprint=self.catalog.fingerprint,
            items=final_items,
            cancelled=self._cancel.is_set(),
            timed_out=timed_out,
            duration_ms=(time.monotonic() - started) * 1000,
        )
        summary = result.summary()
        logger.info(
            f"Payroll batch for period {period.id} finished: {summary['completed']} completed, "
            f"{summary['failed']} failed, {summary['skipped']} skipped in {summary['durationMs']} ms"
        )
        return result


def run_payroll_batch(
    catalog: ResolvedCatalog,
    period: Period,
    jobs: Iterable[BatchJob],
    executor: Optional[str] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> BatchResult:
    """Run a batch with defaults taken from application settings."""
    from nominahub.config import settings

    runner = PayrollBatchRunner(
        catalog,
        executor=executor or settings.batch_executor,
        max_workers=max_workers or settings.batch_workers,
        floor_net_pay_at_zero=settings.floor_net_pay_at_zero,
        include_zero_lines=settings.include_zero_lines,
    )
    return runner.run(period, jobs, timeout=timeout if timeout is not None else settings.batch_timeout)
