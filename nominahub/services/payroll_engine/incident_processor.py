"""
NominaHub - Incident Processor

Maps attendance/pay incidents onto the variables concept formulas read.

Every known variable is seeded with zero, so a catalog can reference
HORAS_EXTRA_DOBLES or DIAS_AUSENTES for an employee without incidents.
Repeated incidents of the same type add up. Unknown or malformed
incidents are recorded as warnings in the audit trail and contribute
nothing; they never fail the calculation.
"""

import logging
import unicodedata
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from nominahub.models.payroll import Incident, Period
from nominahub.services.payroll_engine.audit_trail import AuditTrail
from nominahub.utils.error_handling import UnrecognizedIncidentTypeWarning
from nominahub.utils.money import to_decimal

logger = logging.getLogger(__name__)

PHASE = "incident_processing"

# LFT Art. 66-68: up to 9 hours a week are paid double, the excess triple.
DOUBLE_OVERTIME_WEEKLY_LIMIT = Decimal("9")
DAYS_PER_WEEK = Decimal("7")

# Incident type -> variable receiving its quantity
SIMPLE_INCIDENTS: Dict[str, str] = {
    "falta": "DIAS_AUSENTES",
    "faltas": "DIAS_AUSENTES",
    "ausencia": "DIAS_AUSENTES",
    "horas_no_laboradas": "HORAS_AUSENTES",
    "retardo": "RETARDOS",
    "retardos": "RETARDOS",
    "prima_dominical": "DOMINGOS_TRABAJADOS",
    "domingo_trabajado": "DOMINGOS_TRABAJADOS",
    "domingos_trabajados": "DOMINGOS_TRABAJADOS",
    "festivo_trabajado": "DIAS_FESTIVOS_TRABAJADOS",
    "festivos_trabajados": "DIAS_FESTIVOS_TRABAJADOS",
    "dia_festivo": "DIAS_FESTIVOS_TRABAJADOS",
    "vacaciones": "DIAS_VACACIONES",
    "aguinaldo": "DIAS_AGUINALDO",
    "vales_despensa": "MONTO_VALES",
    "vales": "MONTO_VALES",
    "bono": "MONTO_BONO",
    "comision": "MONTO_COMISION",
    "comisiones": "MONTO_COMISION",
    "ptu": "PTU_CALCULADO",
    "infonavit": "DESCUENTO_INFONAVIT",
    "fonacot": "DESCUENTO_FONACOT",
    "prestamo": "ABONO_PRESTAMO",
    "anticipo": "MONTO_ANTICIPO",
    "pension_alimenticia": "PORCENTAJE_PENSION",
}

DISABILITY_TYPES = {
    "enfermedad_general": "DIAS_INCAPACIDAD_EG",
    "eg": "DIAS_INCAPACIDAD_EG",
    "riesgo_trabajo": "DIAS_INCAPACIDAD_RT",
    "rt": "DIAS_INCAPACIDAD_RT",
    "maternidad": "DIAS_INCAPACIDAD_MAT",
    "mat": "DIAS_INCAPACIDAD_MAT",
}

INCIDENT_VARIABLES: Tuple[str, ...] = tuple(sorted(
    set(SIMPLE_INCIDENTS.values())
    | set(DISABILITY_TYPES.values())
    | {
        "HORAS_EXTRA_DOBLES",
        "HORAS_EXTRA_TRIPLES",
        "DIAS_INCAPACIDAD",
        "DIAS_PERMISO_CON_GOCE",
        "DIAS_PERMISO_SIN_GOCE",
        "DIAS_COTIZADOS",
    }
))


class MalformedIncident(ValueError):
    """Incident quantity or sub-data is not a non-negative number."""


def normalize_incident_type(tipo: Any) -> str:
    """'Horas Extra' / 'horas-extra' / 'HORAS_EXTRA' -> 'horas_extra'; accents dropped."""
    text = unicodedata.normalize("NFKD", str(tipo))
    text = "".join(char for char in text if not unicodedata.combining(char))
    return "_".join(text.strip().lower().replace("-", " ").split())


def _quantity(value: Any, field: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError:
        raise MalformedIncident(f"{field} is not a number: {value!r}") from None
    if amount < 0:
        raise MalformedIncident(f"{field} cannot be negative: {value}")
    return amount


def _flag(datos: Mapping[str, Any], key: str) -> bool:
    value = datos.get(key, False)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "si", "sí", "yes")
    return bool(value)


def double_overtime_limit(period: Period) -> Decimal:
    """Weekly double-overtime allowance scaled to the number of weeks in the period."""
    weeks = max(to_decimal(period.dias_periodo) // DAYS_PER_WEEK, Decimal("1"))
    return DOUBLE_OVERTIME_WEEKLY_LIMIT * weeks


# ===========================================
# PER-TYPE HANDLERS
# ===========================================

Contribution = Dict[str, Decimal]


def _overtime(incident: Incident, period: Period) -> Contribution:
    datos = incident.datos or {}
    if "horasDobles" in datos or "horasTriples" in datos:
        return {
            "HORAS_EXTRA_DOBLES": _quantity(datos.get("horasDobles", 0), "datos.horasDobles"),
            "HORAS_EXTRA_TRIPLES": _quantity(datos.get("horasTriples", 0), "datos.horasTriples"),
        }

    hours = _quantity(incident.cantidad, "cantidad")
    limit = double_overtime_limit(period)
    doubles = min(hours, limit)
    return {"HORAS_EXTRA_DOBLES": doubles, "HORAS_EXTRA_TRIPLES": hours - doubles}


def _disability(incident: Incident, period: Period) -> Contribution:
    days = _quantity(incident.cantidad, "cantidad")
    subtype = normalize_incident_type((incident.datos or {}).get("tipoIncapacidad", "enfermedad_general"))
    variable = DISABILITY_TYPES.get(subtype)
    if variable is None:
        raise MalformedIncident(f"unknown disability type '{subtype}'")
    return {"DIAS_INCAPACIDAD": days, variable: days}


def _leave(incident: Incident, period: Period) -> Contribution:
    days = _quantity(incident.cantidad, "cantidad")
    if _flag(incident.datos or {}, "conGoce"):
        return {"DIAS_PERMISO_CON_GOCE": days}
    return {"DIAS_PERMISO_SIN_GOCE": days}


def _simple(variable: str) -> Callable[[Incident, Period], Contribution]:
    def handler(incident: Incident, period: Period) -> Contribution:
        return {variable: _quantity(incident.cantidad, "cantidad")}
    return handler


HANDLERS: Dict[str, Callable[[Incident, Period], Contribution]] = {
    "horas_extra": _overtime,
    "hora_extra": _overtime,
    "horas_extras": _overtime,
    "incapacidad": _disability,
    "incapacidades": _disability,
    "permiso": _leave,
    "permisos": _leave,
    **{tipo: _simple(variable) for tipo, variable in SIMPLE_INCIDENTS.items()},
}


def process_incidents(
    incidents: Iterable[Incident],
    period: Period,
    audit: Optional[AuditTrail] = None,
) -> Dict[str, Decimal]:
    """
    Fold a list of incidents into incident variables.

    Returns a new dict with every variable in INCIDENT_VARIABLES plus one
    zero-valued INCIDENCIA_<TIPO> per unrecognized type.
    """
    if audit is None:
        audit = AuditTrail()
    values: Dict[str, Decimal] = {name: Decimal("0") for name in INCIDENT_VARIABLES}

    for position, incident in enumerate(incidents):
        label = incident.id or f"#{position}"
        tipo = normalize_incident_type(incident.tipo)

        if not incident.aprobado:
            audit.record(PHASE, f"Skipped unapproved incident {label} ({tipo})")
            continue

        handler = HANDLERS.get(tipo)
        if handler is None:
            placeholder = "INCIDENCIA_" + (tipo.upper() or "SIN_TIPO")
            values.setdefault(placeholder, Decimal("0"))
            audit.warn(
                PHASE,
                f"Unrecognized incident type '{incident.tipo}' ignored",
                category=UnrecognizedIncidentTypeWarning,
                details={"incident": label, "tipo": str(incident.tipo), "variable": placeholder},
            )
            logger.warning(f"Unrecognized incident type '{incident.tipo}' on incident {label}")
            continue

        try:
            contribution = handler(incident, period)
        except MalformedIncident as exc:
            audit.warn(
                PHASE,
                f"Malformed incident {label} ({tipo}) ignored: {exc}",
                details={"incident": label, "tipo": tipo},
            )
            logger.warning(f"Malformed incident {label} ({tipo}): {exc}")
            continue

        for variable, amount in contribution.items():
            values[variable] = values.get(variable, Decimal("0")) + amount

    limit = double_overtime_limit(period)
    if values["HORAS_EXTRA_DOBLES"] > limit:
        audit.warn(
            PHASE,
            f"Double overtime hours ({values['HORAS_EXTRA_DOBLES']}) exceed the legal limit of {limit}",
            details={"horasDobles": str(values["HORAS_EXTRA_DOBLES"]), "limit": str(limit)},
        )

    dias_periodo = to_decimal(period.dias_periodo)
    values["DIAS_COTIZADOS"] = max(
        dias_periodo - values["DIAS_AUSENTES"] - values["DIAS_PERMISO_SIN_GOCE"],
        Decimal("0"),
    )
    return values
