"""
NominaHub - Payroll Schemas

Pydantic schemas for payroll requests and responses.
JSON field names are the Spanish camelCase names used by payroll
integrations (salarioDiario, diasLaborales, netoPagar, ...).

Enumerated inputs (estatus, frecuencia, zonaSalario) are accepted as plain
strings and validated by the engine, so a bad value fails only the
employee it belongs to rather than the whole request.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nominahub.models.payroll import (
    CalculationFailure,
    Concept,
    ConceptKind,
    Employee,
    Incident,
    PayrollResult,
    Period,
)
from nominahub.services.payroll_engine.batch_service import BatchJob, BatchResult
from nominahub.services.payroll_engine.concept_resolver import ResolvedCatalog


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


ExecutorEnum = Literal["process", "thread", "serial"]


# ===========================================
# INPUT SCHEMAS
# ===========================================

class EmployeeInput(CamelModel):
    """Employee snapshot for one calculation."""
    id: str = Field(..., min_length=1)
    salario_diario: Optional[Decimal] = None
    salario_diario_integrado: Optional[Decimal] = None
    estatus: str = "activo"
    antiguedad_anos: Optional[Decimal] = None
    zona_salario: str = "general"

    def to_domain(self) -> Employee:
        return Employee(
            id=self.id,
            salario_diario=self.salario_diario,
            salario_diario_integrado=self.salario_diario_integrado,
            estatus=self.estatus,
            antiguedad_anos=self.antiguedad_anos,
            zona_salario=self.zona_salario,
        )


class PeriodInput(CamelModel):
    """Payroll period."""
    id: str = Field(..., min_length=1)
    frecuencia: str
    anio: int = Field(..., ge=2000, le=2100)
    mes: int = Field(..., ge=1, le=12)
    dias_laborales: Decimal
    dias_periodo: Decimal
    fecha_inicio: Optional[date] = None
    fecha_fin: Optional[date] = None
    numero: Optional[int] = None

    def to_domain(self) -> Period:
        return Period(
            id=self.id,
            frecuencia=self.frecuencia,
            anio=self.anio,
            mes=self.mes,
            dias_laborales=self.dias_laborales,
            dias_periodo=self.dias_periodo,
            fecha_inicio=self.fecha_inicio,
            fecha_fin=self.fecha_fin,
            numero=self.numero,
        )


class IncidentInput(CamelModel):
    """Attendance or pay event (falta, horas_extra, incapacidad, ...)."""
    tipo: str
    cantidad: Decimal = Decimal("0")
    datos: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None
    employee_id: Optional[str] = None
    period_id: Optional[str] = None
    aprobado: bool = True

    def to_domain(self) -> Incident:
        return Incident(
            tipo=self.tipo,
            cantidad=self.cantidad,
            datos=dict(self.datos),
            id=self.id,
            employee_id=self.employee_id,
            period_id=self.period_id,
            aprobado=self.aprobado,
        )


class ConceptInput(BaseModel):
    """Catalog concept as configured by a tenant."""
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., alias="codigo")
    name: str = Field(..., alias="nombre")
    kind: ConceptKind = Field(..., alias="tipo")
    category: str = Field(..., alias="categoria")
    formula: str
    exemption_formula: Optional[str] = Field(None, alias="formulaExento")
    taxable_isr: bool = Field(True, alias="gravaIsr")
    integra_sbc: bool = Field(False, alias="integraSbc")
    annual_cap: Optional[str] = Field(None, alias="topeAnual")
    legal_basis: str = Field("", alias="fundamentoLegal")
    active: bool = Field(True, alias="activo")

    def to_domain(self) -> Concept:
        return Concept(
            code=self.code,
            name=self.name,
            kind=self.kind,
            category=self.category,
            formula=self.formula,
            exemption_formula=self.exemption_formula,
            taxable_isr=self.taxable_isr,
            integra_sbc=self.integra_sbc,
            annual_cap=self.annual_cap,
            legal_basis=self.legal_basis,
            active=self.active,
        )


class CalculateRequest(CamelModel):
    """Calculate payroll for one employee."""
    employee: EmployeeInput
    period: PeriodInput
    incidents: List[IncidentInput] = Field(default_factory=list)
    catalog: Optional[List[ConceptInput]] = Field(
        None, description="Tenant catalog; the default statutory catalog is used when omitted"
    )
    tenant_id: str = "default"
    year_to_date: Optional[Dict[str, Decimal]] = Field(
        None, description="Amounts already paid this year per concept code (annual caps)"
    )
    include_audit: bool = True


class BatchEmployeeInput(CamelModel):
    employee: EmployeeInput
    incidents: List[IncidentInput] = Field(default_factory=list)
    year_to_date: Optional[Dict[str, Decimal]] = None

    def to_job(self) -> BatchJob:
        return BatchJob(
            employee=self.employee.to_domain(),
            incidents=tuple(incident.to_domain() for incident in self.incidents),
            year_to_date=self.year_to_date,
        )


class BatchRequest(CamelModel):
    """Calculate payroll for every employee of one period."""
    period: PeriodInput
    employees: List[BatchEmployeeInput] = Field(..., min_length=1)
    catalog: Optional[List[ConceptInput]] = None
    tenant_id: str = "default"
    executor: Optional[ExecutorEnum] = None
    max_workers: Optional[int] = Field(None, ge=1)
    timeout_seconds: Optional[float] = Field(None, gt=0)
    include_audit: bool = False


class CatalogValidateRequest(CamelModel):
    tenant_id: str = "default"
    concepts: List[ConceptInput] = Field(..., min_length=1)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class PayrollLineResponse(BaseModel):
    codigo: str
    nombre: str
    monto: Decimal
    gravado: Optional[Decimal] = None
    exento: Optional[Decimal] = None


class AuditEntryResponse(BaseModel):
    phase: str
    action: str
    timestamp: datetime
    level: str = "info"
    duration: Optional[float] = None
    details: Optional[Dict[str, Any]] = None


class PayrollResultResponse(CamelModel):
    """Successful payroll calculation."""
    employee_id: str
    period_id: str
    percepciones: List[PayrollLineResponse]
    deducciones: List[PayrollLineResponse]
    otros_pagos: List[PayrollLineResponse]
    total_percepciones: Decimal
    total_deducciones: Decimal
    total_otros_pagos: Decimal
    neto_pagar: Decimal
    base_gravable: Decimal
    catalog_fingerprint: str
    audit_trail: Optional[List[AuditEntryResponse]] = None

    @classmethod
    def from_result(cls, result: PayrollResult, include_audit: bool = True) -> "PayrollResultResponse":
        return cls.model_validate(result.to_dict(include_audit=include_audit))


class CalculationFailureResponse(CamelModel):
    """Failed calculation for one employee."""
    employee_id: str
    period_id: str
    error_kind: str
    error_code: str
    message: str
    concept: Optional[str] = None
    last_state: str
    audit_trail: Optional[List[AuditEntryResponse]] = None

    @classmethod
    def from_failure(cls, failure: CalculationFailure, include_audit: bool = True) -> "CalculationFailureResponse":
        return cls.model_validate(failure.to_dict(include_audit=include_audit))


class SkippedEmployeeResponse(CamelModel):
    employee_id: str
    reason: Optional[str] = None


class BatchSummaryResponse(CamelModel):
    total: int
    completed: int
    failed: int
    skipped: int
    cancelled: bool
    timed_out: bool
    duration_ms: float


class BatchResponse(CamelModel):
    """Batch outcome; results, failures and skips keep submission order."""
    period_id: str
    catalog_fingerprint: str
    summary: BatchSummaryResponse
    results: List[PayrollResultResponse]
    failures: List[CalculationFailureResponse]
    skipped: List[SkippedEmployeeResponse]

    @classmethod
    def from_batch(cls, batch: BatchResult, include_audit: bool = False) -> "BatchResponse":
        return cls(
            period_id=batch.period_id,
            catalog_fingerprint=batch.catalog_fingerprint,
            summary=BatchSummaryResponse.model_validate(batch.summary()),
            results=[PayrollResultResponse.from_result(r, include_audit) for r in batch.results],
            failures=[CalculationFailureResponse.from_failure(f, include_audit) for f in batch.failures],
            skipped=[
                SkippedEmployeeResponse(employee_id=item.employee_id, reason=item.reason)
                for item in batch.skipped
            ],
        )


class CatalogConceptResponse(CamelModel):
    codigo: str
    nombre: str
    tipo: ConceptKind
    categoria: str
    etapa: str
    formula: str
    formula_exento: Optional[str] = None
    grava_isr: bool
    integra_sbc: bool
    tope_anual: Optional[str] = None
    fundamento_legal: str = ""


class CatalogResponse(CamelModel):
    """Resolved catalog in evaluation order."""
    tenant_id: str
    fingerprint: str
    valid: bool = True
    concepts: List[CatalogConceptResponse]

    @classmethod
    def from_catalog(cls, catalog: ResolvedCatalog) -> "CatalogResponse":
        concepts = []
        for rc in catalog.concepts:
            concept = rc.concept
            concepts.append(CatalogConceptResponse(
                codigo=concept.code,
                nombre=concept.name,
                tipo=concept.kind,
                categoria=concept.category,
                etapa=rc.stage.name.lower(),
                formula=concept.formula,
                formula_exento=concept.exemption_formula,
                grava_isr=concept.taxable_isr,
                integra_sbc=concept.integra_sbc,
                tope_anual=concept.annual_cap,
                fundamento_legal=concept.legal_basis,
            ))
        return cls(tenant_id=catalog.tenant_id, fingerprint=catalog.fingerprint, concepts=concepts)
