"""
NominaHub - Fiscal Parameters

UMA (Unidad de Medida y Actualización) values, general and border minimum
wages, and the day count of each payroll frequency.

UMA values take effect on February 1st of each year (INEGI publication in
the DOF); minimum wages take effect on January 1st (CONASAMI).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from nominahub.models.payroll import PeriodFrequency


@dataclass(frozen=True)
class UMAValues:
    """UMA in force from `effective_from`."""
    effective_from: date
    diaria: Decimal
    mensual: Decimal
    anual: Decimal

    @property
    def semanal(self) -> Decimal:
        return self.diaria * 7


@dataclass(frozen=True)
class MinimumWage:
    year: int
    general: Decimal
    frontera: Decimal


UMA_HISTORY: List[UMAValues] = [
    UMAValues(date(2023, 2, 1), Decimal("103.74"), Decimal("3153.70"), Decimal("37844.40")),
    UMAValues(date(2024, 2, 1), Decimal("108.57"), Decimal("3300.53"), Decimal("39606.36")),
    UMAValues(date(2025, 2, 1), Decimal("113.14"), Decimal("3439.46"), Decimal("41273.52")),
    UMAValues(date(2026, 2, 1), Decimal("117.31"), Decimal("3566.22"), Decimal("42794.64")),
]

MINIMUM_WAGES: Dict[int, MinimumWage] = {
    2023: MinimumWage(2023, Decimal("207.44"), Decimal("312.41")),
    2024: MinimumWage(2024, Decimal("248.93"), Decimal("374.89")),
    2025: MinimumWage(2025, Decimal("278.80"), Decimal("419.88")),
    2026: MinimumWage(2026, Decimal("315.04"), Decimal("440.87")),
}

# Days per period; monthly uses the 30.4 average (LISR Art. 96).
FREQUENCY_DAYS: Dict[PeriodFrequency, Decimal] = {
    PeriodFrequency.DIARIO: Decimal("1"),
    PeriodFrequency.SEMANAL: Decimal("7"),
    PeriodFrequency.CATORCENAL: Decimal("14"),
    PeriodFrequency.QUINCENAL: Decimal("15"),
    PeriodFrequency.MENSUAL: Decimal("30.4"),
}

MONTH_DAYS = Decimal("30.4")

# IMSS contribution ceiling (LSS Art. 28)
SBC_CAP_UMAS = Decimal("25")


def get_uma(on: date) -> Optional[UMAValues]:
    """UMA in force on a given date, or None before the earliest known value."""
    current = None
    for values in UMA_HISTORY:
        if values.effective_from <= on:
            current = values
        else:
            break
    return current


def get_minimum_wage(year: int) -> Optional[MinimumWage]:
    return MINIMUM_WAGES.get(year)


def frequency_days(frequency: PeriodFrequency) -> Decimal:
    return FREQUENCY_DAYS[PeriodFrequency(frequency)]


def proration_factor(frequency: PeriodFrequency) -> Decimal:
    """Share of a 30.4-day month covered by one period of this frequency."""
    return frequency_days(frequency) / MONTH_DAYS
