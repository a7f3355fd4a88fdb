"""
NominaHub - Payroll Calculator

Orchestrates one (employee, period) calculation through a strictly linear
sequence of states:

    CONTEXT_BUILT -> INCIDENTS_APPLIED -> EARNINGS_EVALUATED
    -> BASE_GRAVABLE_COMPUTED -> STATUTORY_DEDUCTIONS_EVALUATED
    -> OTHER_DEDUCTIONS_EVALUATED -> TOTALED -> DONE

Any error moves the run to the terminal FAILED state; the caller receives
a CalculationFailure carrying the error, the last state reached before
it, the concept being evaluated and the audit trail so far. Nothing is retried.

Each step extends an immutable VariableContext, so a calculator (and the
resolved catalog it holds) can be shared across threads and processes.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from nominahub.models.payroll import (
    CalculationFailure,
    CalculationOutcome,
    CalculationState,
    Concept,
    ConceptKind,
    Employee,
    Incident,
    PayrollLine,
    PayrollResult,
    Period,
    PeriodFrequency,
)
from nominahub.services.payroll_engine.audit_trail import AuditTrail
from nominahub.services.payroll_engine.concept_resolver import (
    ResolvedCatalog,
    ResolvedConcept,
    resolve_catalog,
)
from nominahub.services.payroll_engine.context_builder import (
    VariableContext,
    build_variable_context,
)
from nominahub.services.payroll_engine.incident_processor import process_incidents
from nominahub.services.payroll_engine.seed_catalog import get_default_catalog
from nominahub.services.tax_calculators import TableFunction, build_function_table
from nominahub.utils.error_handling import AppException, NegativeNetPayError
from nominahub.utils.money import round_currency, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# LFT Art. 110: discretionary deductions above this share of earnings are flagged.
DISCRETIONARY_DEDUCTION_WARNING_RATIO = Decimal("0.30")


def _total(lines: Iterable[PayrollLine]) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


class _CalculationRun:
    """Mutable bookkeeping for one run; never shared between runs."""

    def __init__(
        self,
        calculator: "PayrollCalculator",
        employee: Employee,
        period: Period,
        incidents: Sequence[Incident],
        year_to_date: Mapping[str, Decimal],
    ):
        self.calculator = calculator
        self.catalog = calculator.catalog
        self.employee = employee
        self.period = period
        self.incidents = incidents
        self.year_to_date = year_to_date
        self.audit = AuditTrail()
        self.state = CalculationState.STARTED
        self.concept: Optional[str] = None

    # ===========================================
    # CONCEPT EVALUATION
    # ===========================================

    def evaluate_stage(
        self,
        concepts: Tuple[ResolvedConcept, ...],
        context: VariableContext,
        functions: Mapping[str, TableFunction],
    ) -> Tuple[List[Tuple[ResolvedConcept, PayrollLine]], VariableContext]:
        evaluated: List[Tuple[ResolvedConcept, PayrollLine]] = []
        for rc in concepts:
            self.concept = rc.code
            amount = rc.formula.evaluate(context, functions, rc.code)

            if rc.annual_cap is not None:
                amount = self.apply_annual_cap(rc, amount, context, functions)

            taxable, exempt = ZERO, ZERO
            if rc.kind == ConceptKind.PERCEPCION:
                taxable, exempt = self.split_exemption(rc, amount, context, functions)

            line = PayrollLine(rc.code, rc.name, rc.kind, amount, taxable, exempt)
            evaluated.append((rc, line))
            context = context.extend({rc.code: amount})
        self.concept = None
        return evaluated, context

    def apply_annual_cap(
        self,
        rc: ResolvedConcept,
        amount: Decimal,
        context: VariableContext,
        functions: Mapping[str, TableFunction],
    ) -> Decimal:
        cap = rc.annual_cap.evaluate(context, functions, rc.code)
        paid = round_currency(to_decimal(self.year_to_date.get(rc.code, ZERO)))
        remaining = max(cap - paid, ZERO)
        if amount > remaining:
            self.audit.record(
                "concept_evaluation",
                f"{rc.code} capped at {remaining} (annual cap {cap}, paid {paid})",
                level="warning",
                details={"concept": rc.code, "amount": str(amount), "cap": str(cap), "paid": str(paid)},
            )
            logger.warning(
                f"Annual cap applied to {rc.code} for employee {self.employee.id}: {amount} -> {remaining}"
            )
            return remaining
        return amount

    def split_exemption(
        self,
        rc: ResolvedConcept,
        amount: Decimal,
        context: VariableContext,
        functions: Mapping[str, TableFunction],
    ) -> Tuple[Decimal, Decimal]:
        """Return (taxable, exempt) with taxable + exempt == amount."""
        if rc.exemption is not None:
            limit = rc.exemption.evaluate(context, functions, rc.code)
            exempt = min(max(limit, ZERO), max(amount, ZERO))
        elif not rc.concept.taxable_isr:
            exempt = max(amount, ZERO)
        else:
            exempt = ZERO
        return amount - exempt, exempt

    # ===========================================
    # ORCHESTRATION
    # ===========================================

    def execute(self) -> CalculationOutcome:
        audit = self.audit
        try:
            with audit.phase("context_build", "Variable context built") as info:
                context = build_variable_context(self.employee, self.period)
                info["variables"] = len(context)
            self.state = CalculationState.CONTEXT_BUILT

            with audit.phase("incident_processing", "Incidents applied") as info:
                context = context.extend(process_incidents(self.incidents, self.period, audit))
                info["incidents"] = len(self.incidents)
            self.state = CalculationState.INCIDENTS_APPLIED

            functions = build_function_table(
                PeriodFrequency(self.period.frecuencia),
                self.period.reference_date.year,
                self.period.reference_date.month,
                context["UMA_DIARIA"],
            )

            with audit.phase("earnings_evaluation", "Earnings evaluated") as info:
                earnings, context = self.evaluate_stage(self.catalog.earnings, context, functions)
                info["concepts"] = len(earnings)
            self.state = CalculationState.EARNINGS_EVALUATED

            with audit.phase("base_gravable", "Taxable base computed") as info:
                earnings_lines = [line for _, line in earnings]
                base_gravable = sum((line.taxable for line in earnings_lines), ZERO)
                total_earnings = _total(earnings_lines)
                context = context.extend({
                    "BASE_GRAVABLE": base_gravable,
                    "TOTAL_PERCEPCIONES": total_earnings,
                    "TOTAL_GRAVADO": base_gravable,
                    "TOTAL_EXENTO": sum((line.exempt for line in earnings_lines), ZERO),
                    "PERCEPCIONES_INTEGRAN_SBC": _total(
                        line for rc, line in earnings if rc.concept.integra_sbc
                    ),
                })
                info["baseGravable"] = str(base_gravable)
            self.state = CalculationState.BASE_GRAVABLE_COMPUTED

            with audit.phase("statutory_deductions", "ISR and IMSS evaluated") as info:
                statutory, context = self.evaluate_stage(
                    self.catalog.statutory_deductions, context, functions
                )
                info["concepts"] = len(statutory)
            self.state = CalculationState.STATUTORY_DEDUCTIONS_EVALUATED

            with audit.phase("other_payments", "Other payments evaluated") as info:
                other_payments, context = self.evaluate_stage(
                    self.catalog.other_payments, context, functions
                )
                info["concepts"] = len(other_payments)

            with audit.phase("other_deductions", "Other deductions evaluated") as info:
                statutory_total = _total(line for _, line in statutory)
                other_payments_total = _total(line for _, line in other_payments)
                context = context.extend({
                    "TOTAL_DEDUCCIONES_LEY": statutory_total,
                    "TOTAL_OTROS_PAGOS": other_payments_total,
                    "SALARIO_NETO": total_earnings + other_payments_total - statutory_total,
                })
                other_deductions, context = self.evaluate_stage(
                    self.catalog.other_deductions, context, functions
                )
                info["concepts"] = len(other_deductions)
            self.state = CalculationState.OTHER_DEDUCTIONS_EVALUATED

            with audit.phase("totals", "Totals computed") as info:
                result = self.totals(
                    earnings_lines,
                    [line for _, line in statutory],
                    [line for _, line in other_payments],
                    [line for _, line in other_deductions],
                    base_gravable,
                )
                info["netoPagar"] = str(result["neto_pagar"])
            self.state = CalculationState.TOTALED

            self.state = CalculationState.DONE
            return PayrollResult(
                employee_id=str(self.employee.id),
                period_id=str(self.period.id),
                catalog_fingerprint=self.catalog.fingerprint,
                audit_trail=audit.freeze(),
                state=self.state,
                **result,
            )
        except Exception as exc:
            return self.fail(exc)

    def totals(
        self,
        earnings: List[PayrollLine],
        statutory: List[PayrollLine],
        other_payments: List[PayrollLine],
        other_deductions: List[PayrollLine],
        base_gravable: Decimal,
    ) -> Dict[str, object]:
        earnings_total = _total(earnings)
        other_payments_total = _total(other_payments)
        total_percepciones = earnings_total + other_payments_total

        discretionary = _total(other_deductions)
        if earnings_total > 0 and discretionary > earnings_total * DISCRETIONARY_DEDUCTION_WARNING_RATIO:
            self.audit.record(
                "totals",
                f"Non-statutory deductions ({discretionary}) exceed 30% of earnings ({earnings_total})",
                level="warning",
                details={"deductions": str(discretionary), "earnings": str(earnings_total)},
            )
            logger.warning(
                f"Employee {self.employee.id}: non-statutory deductions {discretionary} "
                f"exceed 30% of earnings {earnings_total}"
            )

        deductions = statutory + other_deductions
        total_deducciones = _total(deductions)
        if total_deducciones > total_percepciones:
            if not self.calculator.floor_net_pay_at_zero:
                raise NegativeNetPayError(total_percepciones, total_deducciones)
            deductions = self.trim_deductions(deductions, total_deducciones - total_percepciones)
            total_deducciones = _total(deductions)

        keep = self.calculator.include_zero_lines
        return {
            "percepciones": tuple(line for line in earnings if keep or line.amount != 0),
            "deducciones": tuple(line for line in deductions if keep or line.amount != 0),
            "otros_pagos": tuple(line for line in other_payments if keep or line.amount != 0),
            "total_percepciones": total_percepciones,
            "total_deducciones": total_deducciones,
            "total_otros_pagos": other_payments_total,
            "neto_pagar": total_percepciones - total_deducciones,
            "base_gravable": base_gravable,
        }

    def trim_deductions(self, deductions: List[PayrollLine], excess: Decimal) -> List[PayrollLine]:
        """Reduce deductions, last evaluated first, until net pay is zero."""
        trimmed = list(deductions)
        for index in range(len(trimmed) - 1, -1, -1):
            if excess <= 0:
                break
            line = trimmed[index]
            if line.amount <= 0:
                continue
            reduction = min(line.amount, excess)
            trimmed[index] = PayrollLine(line.code, line.name, line.kind, line.amount - reduction)
            excess -= reduction
            self.audit.record(
                "totals",
                f"Net pay floored at zero: {line.code} reduced by {reduction}",
                level="warning",
                details={"concept": line.code, "original": str(line.amount), "reduction": str(reduction)},
            )
            logger.warning(
                f"Employee {self.employee.id}: {line.code} reduced by {reduction} to avoid negative net pay"
            )
        return trimmed

    def fail(self, exc: Exception) -> CalculationFailure:
        concept = self.concept or getattr(exc, "concept", None)
        last_state, self.state = self.state, CalculationState.FAILED
        if isinstance(exc, AppException):
            logger.warning(
                f"Payroll calculation failed for employee {self.employee.id} "
                f"after {last_state.value}: {exc.code.value} - {exc.message}"
            )
        else:
            logger.exception(
                f"Unexpected error calculating payroll for employee {self.employee.id} "
                f"after {last_state.value}"
            )
        self.audit.record(
            "calculation",
            f"Calculation failed: {type(exc).__name__}",
            level="error",
            details={"concept": concept, "lastState": last_state.value},
        )
        return CalculationFailure(
            employee_id=str(self.employee.id),
            period_id=str(self.period.id),
            error=exc,
            last_state=last_state,
            audit_trail=self.audit.freeze(),
            concept=concept,
        )


class PayrollCalculator:
    """
    Payroll calculator bound to one resolved catalog.

    Stateless between calls; safe to share across threads.
    """

    def __init__(
        self,
        catalog: ResolvedCatalog,
        floor_net_pay_at_zero: bool = True,
        include_zero_lines: bool = False,
    ):
        self.catalog = catalog
        self.floor_net_pay_at_zero = floor_net_pay_at_zero
        self.include_zero_lines = include_zero_lines

    def calculate(
        self,
        employee: Employee,
        period: Period,
        incidents: Optional[Iterable[Incident]] = None,
        year_to_date: Optional[Mapping[str, Decimal]] = None,
    ) -> CalculationOutcome:
        """
        Calculate payroll for one employee and period.

        Returns a PayrollResult, or a CalculationFailure when any step
        fails. Never raises for per-employee errors.
        """
        run = _CalculationRun(self, employee, period, tuple(incidents or ()), year_to_date or {})
        return run.execute()


def calculate_payroll(
    employee: Employee,
    period: Period,
    incidents: Optional[Iterable[Incident]] = None,
    catalog: Union[ResolvedCatalog, Sequence[Concept], None] = None,
    tenant_id: str = "default",
    year_to_date: Optional[Mapping[str, Decimal]] = None,
    floor_net_pay_at_zero: bool = True,
    include_zero_lines: bool = False,
) -> CalculationOutcome:
    """
    Calculate payroll for one employee.

    `catalog` may be a ResolvedCatalog, a sequence of Concepts (resolved
    here, raising CatalogError if broken) or None for the default
    statutory catalog.
    """
    if catalog is None:
        resolved = get_default_catalog()
    elif isinstance(catalog, ResolvedCatalog):
        resolved = catalog
    else:
        resolved = resolve_catalog(tenant_id, catalog)

    calculator = PayrollCalculator(
        resolved,
        floor_net_pay_at_zero=floor_net_pay_at_zero,
        include_zero_lines=include_zero_lines,
    )
    return calculator.calculate(employee, period, incidents, year_to_date)
