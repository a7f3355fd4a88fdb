"""
NominaHub - Variable Context Builder

Turns an Employee and a Period into the flat set of named numbers that
concept formulas are evaluated against.
"""

from decimal import Decimal, localcontext
from typing import Any, Dict, Iterator, Mapping, Optional

from nominahub.models.payroll import (
    Employee,
    EmployeeStatus,
    Period,
    PeriodFrequency,
    SalaryZone,
)
from nominahub.services.tax_calculators.fiscal_config import (
    SBC_CAP_UMAS,
    get_minimum_wage,
    get_uma,
)
from nominahub.utils.error_handling import (
    InactiveEmployeeError,
    MissingInputError,
    require_positive,
)
from nominahub.utils.money import to_decimal

HOURS_PER_DAY = Decimal("8")

# Names published by build_variable_context; concept codes may not reuse them.
BASE_VARIABLES = frozenset({
    "SALARIO_DIARIO",
    "SALARIO_HORA",
    "SALARIO_PERIODO",
    "DIAS_TRABAJADOS",
    "DIAS_PERIODO",
    "UMA_DIARIA",
    "UMA_SEMANAL",
    "UMA_MENSUAL",
    "UMA_ANUAL",
    "SALARIO_MINIMO",
    "SALARIO_MINIMO_FRONTERA",
    "SALARIO_MINIMO_ZONA",
    "SDI",
    "TOPE_SBC",
    "SBC_DIARIO",
    "SBC_PERIODO",
    "ANIO",
    "MES",
    "ANTIGUEDAD_ANOS",
    "AÑOS_SERVICIO",
})


class VariableContext(Mapping[str, Decimal]):
    """
    Immutable name -> Decimal mapping.

    extend() returns a new context; the receiver is never modified, so a
    context can be shared between concurrent calculations.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Decimal] = {
            name: to_decimal(value) for name, value in (values or {}).items()
        }

    def __getitem__(self, name: str) -> Decimal:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableContext({self._values!r})"

    def extend(self, values: Optional[Mapping[str, Any]] = None, **extra: Any) -> "VariableContext":
        merged = dict(self._values)
        merged.update(values or {})
        merged.update(extra)
        return VariableContext(merged)

    def as_dict(self) -> Dict[str, Decimal]:
        return dict(self._values)


def _non_negative(value: Any, field: str) -> Decimal:
    if value is None:
        raise MissingInputError(field)
    try:
        amount = to_decimal(value)
    except ValueError:
        raise MissingInputError(field, value)
    if amount < 0:
        raise MissingInputError(field, value, message=f"'{field}' cannot be negative")
    return amount


def build_variable_context(employee: Employee, period: Period) -> VariableContext:
    """
    Build the base variable context for one employee and period.

    Raises:
        InactiveEmployeeError: employee status is not "activo"
        MissingInputError: salary, SBC or period day counts are missing or
            invalid, or no fiscal parameters exist for the period date
    """
    try:
        status = EmployeeStatus(employee.estatus)
    except ValueError:
        raise MissingInputError("estatus", employee.estatus)
    if status != EmployeeStatus.ACTIVO:
        raise InactiveEmployeeError(employee.id, status.value)

    salario_diario = require_positive(employee.salario_diario, "salarioDiario")
    sdi = require_positive(employee.salario_diario_integrado, "salarioDiarioIntegrado")
    dias_periodo = require_positive(period.dias_periodo, "diasPeriodo")
    dias_trabajados = _non_negative(period.dias_laborales, "diasLaborales")

    try:
        PeriodFrequency(period.frecuencia)
    except ValueError:
        raise MissingInputError("frecuencia", period.frecuencia)

    reference_date = period.reference_date
    uma = get_uma(reference_date)
    if uma is None:
        raise MissingInputError(
            "fechaInicio", reference_date, message=f"No UMA value in force on {reference_date}"
        )
    minimum_wage = get_minimum_wage(reference_date.year)
    if minimum_wage is None:
        raise MissingInputError(
            "anio", reference_date.year, message=f"No minimum wage for {reference_date.year}"
        )

    try:
        zone = SalaryZone(employee.zona_salario)
    except ValueError:
        raise MissingInputError("zonaSalario", employee.zona_salario)
    zone_wage = minimum_wage.frontera if zone == SalaryZone.FRONTERA else minimum_wage.general

    with localcontext() as ctx:
        ctx.prec = 28
        tope_sbc = uma.diaria * SBC_CAP_UMAS
        sbc_diario = max(min(sdi, tope_sbc), zone_wage)

        values: Dict[str, Decimal] = {
            "SALARIO_DIARIO": salario_diario,
            "SALARIO_HORA": salario_diario / HOURS_PER_DAY,
            "SALARIO_PERIODO": salario_diario * dias_trabajados,
            "DIAS_TRABAJADOS": dias_trabajados,
            "DIAS_PERIODO": dias_periodo,
            "UMA_DIARIA": uma.diaria,
            "UMA_SEMANAL": uma.semanal,
            "UMA_MENSUAL": uma.mensual,
            "UMA_ANUAL": uma.anual,
            "SALARIO_MINIMO": minimum_wage.general,
            "SALARIO_MINIMO_FRONTERA": minimum_wage.frontera,
            "SALARIO_MINIMO_ZONA": zone_wage,
            "SDI": sdi,
            "TOPE_SBC": tope_sbc,
            "SBC_DIARIO": sbc_diario,
            "SBC_PERIODO": sbc_diario * dias_periodo,
            "ANIO": Decimal(period.anio),
            "MES": Decimal(period.mes),
        }

    if employee.antiguedad_anos is not None:
        seniority = _non_negative(employee.antiguedad_anos, "antiguedadAnos")
        values["ANTIGUEDAD_ANOS"] = seniority
        values["AÑOS_SERVICIO"] = seniority

    return VariableContext(values)
