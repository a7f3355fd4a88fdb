"""
NominaHub - Payroll Domain Records

Immutable inputs and outputs of a payroll calculation. These are plain
dataclasses; the HTTP layer converts to and from them in
nominahub.schemas.payroll.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union


class PeriodFrequency(str, Enum):
    """Payroll period frequency"""
    DIARIO = "diario"
    SEMANAL = "semanal"
    CATORCENAL = "catorcenal"
    QUINCENAL = "quincenal"
    MENSUAL = "mensual"


class EmployeeStatus(str, Enum):
    ACTIVO = "activo"
    INACTIVO = "inactivo"


class SalaryZone(str, Enum):
    """Minimum wage zone (general or northern border)"""
    GENERAL = "general"
    FRONTERA = "frontera"


class ConceptKind(str, Enum):
    PERCEPCION = "percepcion"
    DEDUCCION = "deduccion"
    OTRO_PAGO = "otro_pago"


class CalculationState(str, Enum):
    """Orchestrator states, in the order they are reached"""
    STARTED = "started"
    CONTEXT_BUILT = "context_built"
    INCIDENTS_APPLIED = "incidents_applied"
    EARNINGS_EVALUATED = "earnings_evaluated"
    BASE_GRAVABLE_COMPUTED = "base_gravable_computed"
    STATUTORY_DEDUCTIONS_EVALUATED = "statutory_deductions_evaluated"
    OTHER_DEDUCTIONS_EVALUATED = "other_deductions_evaluated"
    TOTALED = "totaled"
    DONE = "done"
    FAILED = "failed"


Number = Union[Decimal, int, str]


@dataclass(frozen=True)
class Employee:
    """Employee snapshot for one calculation."""
    id: str
    salario_diario: Optional[Decimal]
    salario_diario_integrado: Optional[Decimal]
    estatus: EmployeeStatus = EmployeeStatus.ACTIVO
    antiguedad_anos: Optional[Decimal] = None
    zona_salario: SalaryZone = SalaryZone.GENERAL


@dataclass(frozen=True)
class Period:
    """Payroll period. `dias_laborales` are worked days, `dias_periodo` paid days."""
    id: str
    frecuencia: PeriodFrequency
    anio: int
    mes: int
    dias_laborales: Decimal
    dias_periodo: Decimal
    fecha_inicio: Optional[date] = None
    fecha_fin: Optional[date] = None
    numero: Optional[int] = None

    @property
    def reference_date(self) -> date:
        """Date used to pick the fiscal parameters in force."""
        return self.fecha_inicio or date(self.anio, self.mes, 1)


@dataclass(frozen=True)
class Incident:
    """Attendance or pay event for one employee in one period."""
    tipo: str
    cantidad: Number
    datos: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    employee_id: Optional[str] = None
    period_id: Optional[str] = None
    aprobado: bool = True


@dataclass(frozen=True)
class Concept:
    """Catalog entry: a tagged record evaluated through its formulas."""
    code: str
    name: str
    kind: ConceptKind
    category: str
    formula: str
    exemption_formula: Optional[str] = None
    taxable_isr: bool = True
    integra_sbc: bool = False
    annual_cap: Optional[str] = None
    legal_basis: str = ""
    active: bool = True


@dataclass(frozen=True)
class PayrollLine:
    code: str
    name: str
    kind: ConceptKind
    amount: Decimal
    taxable: Decimal = Decimal("0.00")
    exempt: Decimal = Decimal("0.00")

    def to_dict(self) -> Dict[str, Any]:
        data = {"codigo": self.code, "nombre": self.name, "monto": self.amount}
        if self.kind == ConceptKind.PERCEPCION:
            data["gravado"] = self.taxable
            data["exento"] = self.exempt
        return data


@dataclass(frozen=True)
class AuditEntry:
    phase: str
    action: str
    timestamp: datetime
    duration_ms: Optional[float] = None
    level: str = "info"
    details: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "phase": self.phase,
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
        }
        if self.duration_ms is not None:
            data["duration"] = self.duration_ms
        if self.details:
            data["details"] = dict(self.details)
        return data


@dataclass(frozen=True)
class PayrollResult:
    """Successful calculation for one (employee, period) pair."""
    employee_id: str
    period_id: str
    percepciones: Tuple[PayrollLine, ...]
    deducciones: Tuple[PayrollLine, ...]
    otros_pagos: Tuple[PayrollLine, ...]
    total_percepciones: Decimal
    total_deducciones: Decimal
    total_otros_pagos: Decimal
    neto_pagar: Decimal
    base_gravable: Decimal
    catalog_fingerprint: str
    audit_trail: Tuple[AuditEntry, ...]
    state: CalculationState = CalculationState.DONE

    ok = True

    def line(self, code: str) -> Optional[PayrollLine]:
        for line in self.percepciones + self.deducciones + self.otros_pagos:
            if line.code == code:
                return line
        return None

    def to_dict(self, include_audit: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "employeeId": self.employee_id,
            "periodId": self.period_id,
            "percepciones": [line.to_dict() for line in self.percepciones],
            "deducciones": [line.to_dict() for line in self.deducciones],
            "otrosPagos": [line.to_dict() for line in self.otros_pagos],
            "totalPercepciones": self.total_percepciones,
            "totalDeducciones": self.total_deducciones,
            "totalOtrosPagos": self.total_otros_pagos,
            "netoPagar": self.neto_pagar,
            "baseGravable": self.base_gravable,
            "catalogFingerprint": self.catalog_fingerprint,
        }
        if include_audit:
            data["auditTrail"] = [entry.to_dict() for entry in self.audit_trail]
        return data


@dataclass(frozen=True)
class CalculationFailure:
    """
    Terminal Failed state of one calculation.

    `state` is always FAILED; `last_state` is the last state reached before
    the failure and `concept` the catalog entry being evaluated, if any.
    """
    employee_id: str
    period_id: str
    error: Exception
    last_state: CalculationState
    audit_trail: Tuple[AuditEntry, ...]
    concept: Optional[str] = None
    state: CalculationState = CalculationState.FAILED

    ok = False

    @property
    def error_kind(self) -> str:
        return type(self.error).__name__

    @property
    def error_code(self) -> str:
        code = getattr(self.error, "code", None)
        return code.value if code is not None else "UNEXPECTED_ERROR"

    @property
    def message(self) -> str:
        return getattr(self.error, "message", None) or str(self.error)

    def to_dict(self, include_audit: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "employeeId": self.employee_id,
            "periodId": self.period_id,
            "errorKind": self.error_kind,
            "errorCode": self.error_code,
            "message": self.message,
            "concept": self.concept,
            "state": self.state.value,
            "lastState": self.last_state.value,
        }
        if include_audit:
            data["auditTrail"] = [entry.to_dict() for entry in self.audit_trail]
        return data


CalculationOutcome = Union[PayrollResult, CalculationFailure]
