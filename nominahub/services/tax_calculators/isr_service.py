"""
NominaHub - ISR Withholding Service

ISR (Impuesto Sobre la Renta) withholding on salaries, LISR Art. 96, and
the employment subsidy (subsidio para el empleo).

Tables are data keyed by fiscal year and period frequency:
- 2025: Anexo 8 RMF 2025 (unchanged from 2024)
- 2026: Anexo 8 RMF 2026

Tax = fixed fee of the bracket + (base - lower limit) x marginal rate.

Employment subsidy (Decree DOF 31/12/2024 and its 2026 update) is a flat
monthly credit paid when monthly income is at or below a ceiling. Both the
ceiling and the credit are prorated by period days / 30.4.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from nominahub.models.payroll import PeriodFrequency
from nominahub.services.tax_calculators.fiscal_config import proration_factor
from nominahub.utils.error_handling import InvalidTaxBaseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IsrBracket:
    """One row of an ISR withholding table."""
    lower: Decimal
    upper: Optional[Decimal]
    fixed_fee: Decimal
    rate: Decimal

    def calculate_tax(self, base: Decimal) -> Decimal:
        """Tax for a base that falls in this bracket."""
        return self.fixed_fee + (base - self.lower) * (self.rate / 100)


def _table(rows: Sequence[Tuple[str, Optional[str], str, str]]) -> Tuple[IsrBracket, ...]:
    return tuple(
        IsrBracket(
            lower=Decimal(lower),
            upper=Decimal(upper) if upper is not None else None,
            fixed_fee=Decimal(fixed),
            rate=Decimal(rate),
        )
        for lower, upper, fixed, rate in rows
    )


ISR_TABLES: Dict[int, Dict[PeriodFrequency, Tuple[IsrBracket, ...]]] = {
    2025: {
        PeriodFrequency.MENSUAL: _table([
            ("0.01", "746.04", "0", "1.92"),
            ("746.05", "6332.05", "14.32", "6.40"),
            ("6332.06", "11128.01", "371.83", "10.88"),
            ("11128.02", "12935.82", "893.63", "16.00"),
            ("12935.83", "15487.71", "1182.88", "17.92"),
            ("15487.72", "31236.49", "1640.18", "21.36"),
            ("31236.50", "49233.00", "5004.12", "23.52"),
            ("49233.01", "93993.90", "9236.89", "30.00"),
            ("93993.91", "125325.20", "22665.17", "32.00"),
            ("125325.21", "375975.61", "32691.18", "34.00"),
            ("375975.62", None, "117912.32", "35.00"),
        ]),
        PeriodFrequency.QUINCENAL: _table([
            ("0.01", "373.02", "0", "1.92"),
            ("373.03", "3166.03", "7.16", "6.40"),
            ("3166.04", "5564.01", "185.92", "10.88"),
            ("5564.02", "6467.91", "446.82", "16.00"),
            ("6467.92", "7743.86", "591.44", "17.92"),
            ("7743.87", "15618.25", "820.09", "21.36"),
            ("15618.26", "24616.50", "2502.06", "23.52"),
            ("24616.51", "46996.95", "4618.45", "30.00"),
            ("46996.96", "62662.60", "11332.59", "32.00"),
            ("62662.61", "187987.81", "16345.59", "34.00"),
            ("187987.82", None, "58956.16", "35.00"),
        ]),
        PeriodFrequency.CATORCENAL: _table([
            ("0.01", "348.15", "0", "1.92"),
            ("348.16", "2954.96", "6.68", "6.40"),
            ("2954.97", "5193.07", "173.52", "10.88"),
            ("5193.08", "6036.72", "417.03", "16.00"),
            ("6036.73", "7227.60", "552.01", "17.92"),
            ("7227.61", "14577.03", "765.42", "21.36"),
            ("14577.04", "22975.40", "2335.26", "23.52"),
            ("22975.41", "43863.82", "4310.55", "30.00"),
            ("43863.83", "58485.10", "10577.08", "32.00"),
            ("58485.11", "175455.29", "15255.88", "34.00"),
            ("175455.30", None, "55025.75", "35.00"),
        ]),
        PeriodFrequency.SEMANAL: _table([
            ("0.01", "174.08", "0", "1.92"),
            ("174.09", "1477.48", "3.34", "6.40"),
            ("1477.49", "2596.54", "86.76", "10.88"),
            ("2596.55", "3018.36", "208.52", "16.00"),
            ("3018.37", "3613.80", "276.01", "17.92"),
            ("3613.81", "7288.52", "382.71", "21.36"),
            ("7288.53", "11487.70", "1167.63", "23.52"),
            ("11487.71", "21931.91", "2155.27", "30.00"),
            ("21931.92", "29242.55", "5288.54", "32.00"),
            ("29242.56", "87727.64", "7627.94", "34.00"),
            ("87727.65", None, "27512.88", "35.00"),
        ]),
        PeriodFrequency.DIARIO: _table([
            ("0.01", "24.87", "0", "1.92"),
            ("24.88", "211.07", "0.48", "6.40"),
            ("211.08", "370.93", "12.39", "10.88"),
            ("370.94", "431.19", "29.79", "16.00"),
            ("431.20", "516.26", "39.43", "17.92"),
            ("516.27", "1041.22", "54.67", "21.36"),
            ("1041.23", "1641.10", "166.80", "23.52"),
            ("1641.11", "3133.13", "307.90", "30.00"),
            ("3133.14", "4177.51", "755.51", "32.00"),
            ("4177.52", "12532.52", "1089.71", "34.00"),
            ("12532.53", None, "3930.41", "35.00"),
        ]),
    },
    2026: {
        PeriodFrequency.MENSUAL: _table([
            ("0.01", "844.59", "0", "1.92"),
            ("844.60", "7168.45", "16.22", "6.40"),
            ("7168.46", "12599.66", "420.94", "10.88"),
            ("12599.67", "14643.97", "1011.68", "16.00"),
            ("14643.98", "17529.77", "1338.77", "17.92"),
            ("17529.78", "35360.60", "1856.47", "21.36"),
            ("35360.61", "55741.63", "5665.17", "23.52"),
            ("55741.64", "106431.92", "10459.38", "30.00"),
            ("106431.93", "141909.23", "25666.46", "32.00"),
            ("141909.24", "425727.71", "37019.30", "34.00"),
            ("425727.72", None, "133517.58", "35.00"),
        ]),
        PeriodFrequency.QUINCENAL: _table([
            ("0.01", "422.30", "0", "1.92"),
            ("422.31", "3584.23", "8.11", "6.40"),
            ("3584.24", "6299.83", "210.47", "10.88"),
            ("6299.84", "7321.99", "505.84", "16.00"),
            ("7322.00", "8764.89", "669.39", "17.92"),
            ("8764.90", "17680.30", "928.24", "21.36"),
            ("17680.31", "27870.82", "2832.59", "23.52"),
            ("27870.83", "53215.96", "5229.69", "30.00"),
            ("53215.97", "70954.62", "12833.23", "32.00"),
            ("70954.63", "212863.86", "18509.65", "34.00"),
            ("212863.87", None, "66758.79", "35.00"),
        ]),
        PeriodFrequency.CATORCENAL: _table([
            ("0.01", "394.14", "0", "1.92"),
            ("394.15", "3345.31", "7.56", "6.40"),
            ("3345.32", "5879.85", "196.44", "10.88"),
            ("5879.86", "6833.38", "472.11", "16.00"),
            ("6833.39", "8183.38", "624.64", "17.92"),
            ("8183.39", "16502.28", "866.56", "21.36"),
            ("16502.29", "26012.09", "2643.75", "23.52"),
            ("26012.10", "49667.56", "4880.90", "30.00"),
            ("49667.57", "66217.30", "11977.54", "32.00"),
            ("66217.31", "198651.89", "17273.46", "34.00"),
            ("198651.90", None, "62281.02", "35.00"),
        ]),
        PeriodFrequency.SEMANAL: _table([
            ("0.01", "197.07", "0", "1.92"),
            ("197.08", "1672.66", "3.78", "6.40"),
            ("1672.67", "2939.93", "98.22", "10.88"),
            ("2939.94", "3416.69", "236.06", "16.00"),
            ("3416.70", "4091.69", "312.32", "17.92"),
            ("4091.70", "8251.14", "433.28", "21.36"),
            ("8251.15", "13006.05", "1321.88", "23.52"),
            ("13006.06", "24833.78", "2440.45", "30.00"),
            ("24833.79", "33108.65", "5988.77", "32.00"),
            ("33108.66", "99325.95", "8636.73", "34.00"),
            ("99325.96", None, "31140.51", "35.00"),
        ]),
        PeriodFrequency.DIARIO: _table([
            ("0.01", "28.15", "0", "1.92"),
            ("28.16", "238.95", "0.54", "6.40"),
            ("238.96", "419.99", "14.03", "10.88"),
            ("420.00", "488.10", "33.72", "16.00"),
            ("488.11", "584.53", "44.62", "17.92"),
            ("584.54", "1178.74", "61.90", "21.36"),
            ("1178.75", "1858.01", "188.84", "23.52"),
            ("1858.02", "3547.68", "348.63", "30.00"),
            ("3547.69", "4729.81", "855.53", "32.00"),
            ("4729.82", "14189.42", "1233.81", "34.00"),
            ("14189.43", None, "4450.08", "35.00"),
        ]),
    },
}


@dataclass(frozen=True)
class SubsidyRule:
    """Employment subsidy in force for a range of months of one year."""
    year: int
    first_month: int
    last_month: int
    monthly_income_limit: Decimal
    monthly_amount: Decimal


SUBSIDY_RULES: List[SubsidyRule] = [
    # 13.8% of UMA 2024 monthly, rounded up
    SubsidyRule(2025, 1, 12, Decimal("10171.00"), Decimal("475.00")),
    # January 2026 still uses UMA 2025 (15.59% of 3439.46)
    SubsidyRule(2026, 1, 1, Decimal("11492.66"), Decimal("536.21")),
    # 15.02% of UMA 2026 monthly (3566.22)
    SubsidyRule(2026, 2, 12, Decimal("11492.66"), Decimal("535.65")),
]


def isr_years() -> List[int]:
    return sorted(ISR_TABLES)


def subsidy_years() -> List[int]:
    return sorted({rule.year for rule in SUBSIDY_RULES})


def get_isr_table(year: int, frequency: PeriodFrequency) -> Tuple[IsrBracket, ...]:
    tables = ISR_TABLES.get(year)
    if tables is None:
        raise InvalidTaxBaseError(f"TABLA_ISR_{year}", year, f"no ISR table for fiscal year {year}")
    return tables[PeriodFrequency(frequency)]


def find_bracket(brackets: Sequence[IsrBracket], base: Decimal) -> Optional[IsrBracket]:
    """Bracket with the largest lower limit not above the base."""
    match = None
    for bracket in brackets:
        if bracket.lower <= base:
            match = bracket
        else:
            break
    return match


def calculate_isr(base: Decimal, frequency: PeriodFrequency, year: int) -> Decimal:
    """
    ISR for a period's taxable base, before the employment subsidy.

    Returns an unrounded Decimal; callers round once at the end.
    """
    if base < 0:
        raise InvalidTaxBaseError(f"TABLA_ISR_{year}", base, "negative base")
    brackets = get_isr_table(year, frequency)
    bracket = find_bracket(brackets, base)
    if bracket is None:
        return Decimal("0")
    return bracket.calculate_tax(base)


def get_subsidy_rule(year: int, month: int) -> SubsidyRule:
    for rule in SUBSIDY_RULES:
        if rule.year == year and rule.first_month <= month <= rule.last_month:
            return rule
    raise InvalidTaxBaseError(
        f"SUBSIDIO_EMPLEO_{year}", year, f"no employment subsidy rule for {year}-{month:02d}"
    )


def calculate_employment_subsidy(
    base: Decimal,
    frequency: PeriodFrequency,
    year: int,
    month: int,
) -> Decimal:
    """
    Employment subsidy credit for a period's taxable base.

    Non-increasing in the base: the full prorated credit up to the
    prorated ceiling, zero above it.
    """
    if base < 0:
        raise InvalidTaxBaseError(f"SUBSIDIO_EMPLEO_{year}", base, "negative base")
    rule = get_subsidy_rule(year, month)
    factor = proration_factor(frequency)
    if base <= rule.monthly_income_limit * factor:
        return rule.monthly_amount * factor
    return Decimal("0")
