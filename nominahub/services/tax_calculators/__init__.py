"""
NominaHub - Tax Calculators Package

Mexican payroll tax tables.

Modules:
- fiscal_config: UMA, minimum wages, period day counts
- isr_service: ISR withholding tables (2025, 2026) and employment subsidy
- imss_service: IMSS worker contributions by ramo

The formula evaluator reaches these tables through the named functions
returned by build_function_table().
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict

from nominahub.models.payroll import PeriodFrequency
from nominahub.services.tax_calculators.fiscal_config import (
    FREQUENCY_DAYS,
    UMAValues,
    get_minimum_wage,
    get_uma,
)
from nominahub.services.tax_calculators.isr_service import (
    IsrBracket,
    calculate_employment_subsidy,
    calculate_isr,
    isr_years,
    subsidy_years,
)
from nominahub.services.tax_calculators.imss_service import (
    ImssRamo,
    calculate_imss_worker,
)
from nominahub.utils.money import round_currency


@dataclass(frozen=True)
class TableFunction:
    """A named function callable from concept formulas."""
    name: str
    arity: int
    fn: Callable[..., Decimal]

    def __call__(self, *args: Decimal) -> Decimal:
        return self.fn(*args)


IMSS_FUNCTIONS: Dict[str, ImssRamo] = {
    "IMSS_ENF_MAT": ImssRamo.ENFERMEDAD_MATERNIDAD,
    "IMSS_PREST_DINERO": ImssRamo.PRESTACIONES_DINERO,
    "IMSS_GASTOS_MED_PENS": ImssRamo.GASTOS_MEDICOS_PENSIONADOS,
    "IMSS_INV_VIDA": ImssRamo.INVALIDEZ_VIDA,
    "IMSS_CES_VEJEZ": ImssRamo.CESANTIA_VEJEZ,
}


def tax_function_arities() -> Dict[str, int]:
    """Every table function name a catalog may call, with its arity."""
    arities = {"TABLA_ISR": 1, "SUBSIDIO_EMPLEO": 1}
    for year in isr_years():
        arities[f"TABLA_ISR_{year}"] = 1
    for year in subsidy_years():
        arities[f"SUBSIDIO_EMPLEO_{year}"] = 1
    for name in IMSS_FUNCTIONS:
        arities[name] = 2
    return arities


def build_function_table(
    frequency: PeriodFrequency,
    year: int,
    month: int,
    uma_diaria: Decimal,
) -> Dict[str, TableFunction]:
    """
    Bind the tax tables to one period.

    TABLA_ISR / SUBSIDIO_EMPLEO use the period's fiscal year; the
    year-suffixed names pin a specific table.
    """
    functions: Dict[str, TableFunction] = {}

    def isr_for(table_year: int) -> Callable[[Decimal], Decimal]:
        return lambda base: calculate_isr(base, frequency, table_year)

    def subsidy_for(table_year: int) -> Callable[[Decimal], Decimal]:
        return lambda base: calculate_employment_subsidy(base, frequency, table_year, month)

    def imss_for(ramo: ImssRamo) -> Callable[[Decimal, Decimal], Decimal]:
        return lambda sbc, dias: calculate_imss_worker(sbc, dias, ramo, uma_diaria)

    functions["TABLA_ISR"] = TableFunction("TABLA_ISR", 1, isr_for(year))
    functions["SUBSIDIO_EMPLEO"] = TableFunction("SUBSIDIO_EMPLEO", 1, subsidy_for(year))
    for table_year in isr_years():
        name = f"TABLA_ISR_{table_year}"
        functions[name] = TableFunction(name, 1, isr_for(table_year))
    for table_year in subsidy_years():
        name = f"SUBSIDIO_EMPLEO_{table_year}"
        functions[name] = TableFunction(name, 1, subsidy_for(table_year))
    for name, ramo in IMSS_FUNCTIONS.items():
        functions[name] = TableFunction(name, 2, imss_for(ramo))
    return functions


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_isr_withholding(
    base: Decimal,
    frequency: PeriodFrequency,
    year: int,
    month: int,
) -> Decimal:
    """
    ISR to withhold for a period: table ISR minus employment subsidy,
    never below zero.

    Args:
        base: Taxable base (base gravable) for the period
        frequency: Payroll frequency
        year: Fiscal year of the table
        month: Period month (selects the subsidy rule)

    Returns:
        Withholding rounded to cents
    """
    isr = calculate_isr(base, frequency, year)
    subsidy = calculate_employment_subsidy(base, frequency, year, month)
    return round_currency(max(isr - subsidy, Decimal("0")))


def calculate_imss_worker_total(
    sbc_diario: Decimal,
    dias: Decimal,
    uma_diaria: Decimal,
) -> Decimal:
    """
    Total worker IMSS contribution across all quotas, rounded per quota.
    """
    return sum(
        (
            round_currency(calculate_imss_worker(sbc_diario, dias, ramo, uma_diaria))
            for ramo in ImssRamo
        ),
        Decimal("0.00"),
    )


__all__ = [
    "FREQUENCY_DAYS",
    "UMAValues",
    "IsrBracket",
    "ImssRamo",
    "TableFunction",
    "build_function_table",
    "tax_function_arities",
    "calculate_isr",
    "calculate_employment_subsidy",
    "calculate_imss_worker",
    "calculate_isr_withholding",
    "calculate_imss_worker_total",
    "get_uma",
    "get_minimum_wage",
]
