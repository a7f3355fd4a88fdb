"""
NominaHub - Concept Resolver

Turns a tenant's concept catalog into an immutable, pre-compiled snapshot
that the payroll calculator evaluates in stages:

    1. earnings (percepciones)
       -> BASE_GRAVABLE, TOTAL_PERCEPCIONES, TOTAL_GRAVADO, TOTAL_EXENTO,
          PERCEPCIONES_INTEGRAN_SBC
    2. statutory deductions (ISR, IMSS)
    3. other payments (otros pagos)
       -> TOTAL_DEDUCCIONES_LEY, TOTAL_OTROS_PAGOS, SALARIO_NETO
    4. other deductions (credits, discounts, alimony, ...)

Each concept's amount is published under its code, so later concepts can
reference earlier ones. Every structural problem (unparseable formula,
unknown category or table function, duplicate code, reference to a value
that is not available yet) is reported as CatalogError here, before any
employee is calculated.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from nominahub.models.payroll import Concept, ConceptKind
from nominahub.services.payroll_engine.context_builder import BASE_VARIABLES
from nominahub.services.payroll_engine.formula_evaluator import (
    BUILTIN_FUNCTIONS,
    CompiledFormula,
    compile_formula,
    is_valid_name,
)
from nominahub.services.payroll_engine.incident_processor import INCIDENT_VARIABLES
from nominahub.services.tax_calculators import tax_function_arities
from nominahub.utils.error_handling import CatalogError, FormulaSyntaxError

logger = logging.getLogger(__name__)


class ConceptCategory(str, Enum):
    """Recognized concept categories"""
    # Earnings
    SUELDO = "sueldo"
    HORAS_EXTRA = "horas_extra"
    PRIMA = "prima"
    PRESTACION = "prestacion"
    BONO = "bono"
    INDEMNIZACION = "indemnizacion"
    OTRA_PERCEPCION = "otra_percepcion"
    # Deductions
    ISR = "isr"
    IMSS = "imss"
    CREDITO = "credito"
    DESCUENTO = "descuento"
    OTRA_DEDUCCION = "otra_deduccion"
    # Other payments
    OTRO_PAGO = "otro_pago"
    # Earnings or other payments
    SUBSIDIO = "subsidio"


CATEGORIES_BY_KIND: Dict[ConceptKind, FrozenSet[ConceptCategory]] = {
    ConceptKind.PERCEPCION: frozenset({
        ConceptCategory.SUELDO,
        ConceptCategory.HORAS_EXTRA,
        ConceptCategory.PRIMA,
        ConceptCategory.PRESTACION,
        ConceptCategory.BONO,
        ConceptCategory.INDEMNIZACION,
        ConceptCategory.OTRA_PERCEPCION,
        ConceptCategory.SUBSIDIO,
    }),
    ConceptKind.DEDUCCION: frozenset({
        ConceptCategory.ISR,
        ConceptCategory.IMSS,
        ConceptCategory.CREDITO,
        ConceptCategory.DESCUENTO,
        ConceptCategory.OTRA_DEDUCCION,
    }),
    ConceptKind.OTRO_PAGO: frozenset({
        ConceptCategory.OTRO_PAGO,
        ConceptCategory.SUBSIDIO,
    }),
}

STATUTORY_CATEGORIES = frozenset({ConceptCategory.ISR, ConceptCategory.IMSS})


class Stage(int, Enum):
    EARNINGS = 1
    STATUTORY_DEDUCTIONS = 2
    OTHER_PAYMENTS = 3
    OTHER_DEDUCTIONS = 4


# Derived variables and the first stage that may read them
EARNINGS_TOTALS = (
    "BASE_GRAVABLE",
    "TOTAL_PERCEPCIONES",
    "TOTAL_GRAVADO",
    "TOTAL_EXENTO",
    "PERCEPCIONES_INTEGRAN_SBC",
)
NET_TOTALS = (
    "TOTAL_DEDUCCIONES_LEY",
    "TOTAL_OTROS_PAGOS",
    "SALARIO_NETO",
)
DERIVED_VARIABLES: Dict[str, Stage] = {
    **{name: Stage.STATUTORY_DEDUCTIONS for name in EARNINGS_TOTALS},
    **{name: Stage.OTHER_DEDUCTIONS for name in NET_TOTALS},
}

RESERVED_NAMES = frozenset(BASE_VARIABLES) | frozenset(INCIDENT_VARIABLES) | frozenset(DERIVED_VARIABLES)


@dataclass(frozen=True)
class ResolvedConcept:
    concept: Concept
    stage: Stage
    formula: CompiledFormula
    exemption: Optional[CompiledFormula]
    annual_cap: Optional[CompiledFormula]

    @property
    def code(self) -> str:
        return self.concept.code

    @property
    def name(self) -> str:
        return self.concept.name

    @property
    def kind(self) -> ConceptKind:
        return self.concept.kind

    @property
    def statutory(self) -> bool:
        return self.stage == Stage.STATUTORY_DEDUCTIONS

    def formulas(self) -> Tuple[CompiledFormula, ...]:
        return tuple(f for f in (self.formula, self.exemption, self.annual_cap) if f is not None)


@dataclass(frozen=True)
class ResolvedCatalog:
    """Immutable, validated catalog snapshot shared by every calculation of a batch."""
    tenant_id: str
    fingerprint: str
    earnings: Tuple[ResolvedConcept, ...]
    statutory_deductions: Tuple[ResolvedConcept, ...]
    other_payments: Tuple[ResolvedConcept, ...]
    other_deductions: Tuple[ResolvedConcept, ...]

    @property
    def deductions(self) -> Tuple[ResolvedConcept, ...]:
        return self.statutory_deductions + self.other_deductions

    @property
    def concepts(self) -> Tuple[ResolvedConcept, ...]:
        """All concepts in evaluation order."""
        return self.earnings + self.statutory_deductions + self.other_payments + self.other_deductions

    def __len__(self) -> int:
        return len(self.concepts)


def catalog_fingerprint(concepts: Sequence[Concept]) -> str:
    """Stable hash of the active concepts, in order."""
    payload = [
        [
            c.code, c.name, ConceptKind(c.kind).value, getattr(c.category, "value", c.category),
            c.formula, c.exemption_formula, c.taxable_isr, c.integra_sbc, c.annual_cap,
        ]
        for c in concepts
    ]
    encoded = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _stage_for(concept: Concept, kind: ConceptKind, category: ConceptCategory) -> Stage:
    if kind == ConceptKind.PERCEPCION:
        return Stage.EARNINGS
    if kind == ConceptKind.OTRO_PAGO:
        return Stage.OTHER_PAYMENTS
    if category in STATUTORY_CATEGORIES:
        return Stage.STATUTORY_DEDUCTIONS
    return Stage.OTHER_DEDUCTIONS


def _compile(concept: Concept, source: Optional[str], label: str) -> Optional[CompiledFormula]:
    if source is None or (isinstance(source, str) and not source.strip()):
        return None
    try:
        return compile_formula(source, concept.code)
    except FormulaSyntaxError as exc:
        raise CatalogError(
            f"Concept '{concept.code}' has an invalid {label}: {exc.message}",
            concept=concept.code,
            details={"formula": source, "field": label},
            original_error=exc,
        )


def _check_calls(concept: Concept, formula: CompiledFormula, arities: Dict[str, int]) -> None:
    for name, argc in formula.calls:
        if name in BUILTIN_FUNCTIONS:
            continue
        expected = arities.get(name)
        if expected is None:
            raise CatalogError(
                f"Concept '{concept.code}' calls unknown function '{name}'",
                concept=concept.code,
                details={"function": name, "formula": formula.source},
            )
        if expected != argc:
            raise CatalogError(
                f"Concept '{concept.code}': {name} takes {expected} argument(s), got {argc}",
                concept=concept.code,
                details={"function": name, "formula": formula.source},
            )


def _validate_concept(concept: Concept) -> Tuple[ConceptKind, ConceptCategory]:
    if not isinstance(concept.code, str) or not is_valid_name(concept.code):
        raise CatalogError(
            f"Concept code '{concept.code}' is not a valid variable name",
            concept=str(concept.code),
        )
    if concept.code in RESERVED_NAMES:
        raise CatalogError(
            f"Concept code '{concept.code}' collides with a built-in variable",
            concept=concept.code,
        )
    try:
        kind = ConceptKind(concept.kind)
    except ValueError:
        raise CatalogError(
            f"Concept '{concept.code}' has unknown kind '{concept.kind}'",
            concept=concept.code,
        )
    try:
        category = ConceptCategory(concept.category)
    except ValueError:
        raise CatalogError(
            f"Concept '{concept.code}' has unrecognized category '{concept.category}'",
            concept=concept.code,
            details={"category": str(concept.category)},
        )
    if category not in CATEGORIES_BY_KIND[kind]:
        raise CatalogError(
            f"Category '{category.value}' is not valid for a {kind.value} ('{concept.code}')",
            concept=concept.code,
            details={"category": category.value, "kind": kind.value},
        )
    if concept.exemption_formula and kind != ConceptKind.PERCEPCION:
        raise CatalogError(
            f"Concept '{concept.code}': only earnings can declare an exemption formula",
            concept=concept.code,
        )
    return kind, category


def _resolve(tenant_id: str, concepts: Tuple[Concept, ...]) -> ResolvedCatalog:
    active = [c for c in concepts if c.active]
    inactive_codes = {c.code for c in concepts if not c.active}
    arities = tax_function_arities()

    seen: Dict[str, int] = {}
    staged: List[ResolvedConcept] = []
    for position, concept in enumerate(active):
        kind, category = _validate_concept(concept)
        if concept.code in seen:
            raise CatalogError(
                f"Duplicate concept code '{concept.code}'",
                concept=concept.code,
                details={"positions": [seen[concept.code], position]},
            )
        seen[concept.code] = position

        resolved = ResolvedConcept(
            concept=concept,
            stage=_stage_for(concept, kind, category),
            formula=_compile(concept, concept.formula, "formula"),
            exemption=_compile(concept, concept.exemption_formula, "exemption formula"),
            annual_cap=_compile(concept, concept.annual_cap, "annual cap"),
        )
        if resolved.formula is None:
            raise CatalogError(f"Concept '{concept.code}' has an empty formula", concept=concept.code)
        for formula in resolved.formulas():
            _check_calls(concept, formula, arities)
        staged.append(resolved)

    # Stable sort: catalog order is kept within a stage.
    ordered = sorted(staged, key=lambda rc: rc.stage)

    available: Dict[str, Stage] = {}
    for rc in ordered:
        for formula in rc.formulas():
            for name in formula.variables:
                derived_stage = DERIVED_VARIABLES.get(name)
                if derived_stage is not None and rc.stage < derived_stage:
                    raise CatalogError(
                        f"Concept '{rc.code}' reads {name}, which is not computed until after "
                        f"{'earnings' if derived_stage == Stage.STATUTORY_DEDUCTIONS else 'statutory deductions and other payments'}",
                        concept=rc.code,
                        details={"variable": name, "formula": formula.source},
                    )
                if name in seen and name not in available:
                    raise CatalogError(
                        f"Concept '{rc.code}' references concept '{name}', which is evaluated later"
                        if name != rc.code else f"Concept '{rc.code}' references itself",
                        concept=rc.code,
                        details={"variable": name, "formula": formula.source},
                    )
                if name in inactive_codes and name not in seen:
                    raise CatalogError(
                        f"Concept '{rc.code}' references inactive concept '{name}'",
                        concept=rc.code,
                        details={"variable": name},
                    )
        available[rc.code] = rc.stage

    by_stage = {stage: tuple(rc for rc in ordered if rc.stage == stage) for stage in Stage}
    catalog = ResolvedCatalog(
        tenant_id=tenant_id,
        fingerprint=catalog_fingerprint(active),
        earnings=by_stage[Stage.EARNINGS],
        statutory_deductions=by_stage[Stage.STATUTORY_DEDUCTIONS],
        other_payments=by_stage[Stage.OTHER_PAYMENTS],
        other_deductions=by_stage[Stage.OTHER_DEDUCTIONS],
    )
    logger.info(
        f"Resolved catalog for tenant {tenant_id}: {len(catalog)} active concepts "
        f"({catalog.fingerprint[:12]})"
    )
    return catalog


@lru_cache(maxsize=128)
def _resolve_cached(tenant_id: str, concepts: Tuple[Concept, ...]) -> ResolvedCatalog:
    return _resolve(tenant_id, concepts)


def resolve_catalog(
    tenant_id: str,
    concepts: Iterable[Concept],
    use_cache: bool = True,
) -> ResolvedCatalog:
    """
    Validate and compile a tenant's concept catalog.

    Raises:
        CatalogError: on any structural problem; no employee should be
            calculated with this catalog.
    """
    snapshot = tuple(concepts)
    if use_cache:
        try:
            hash(snapshot)
        except TypeError:
            # unhashable field values, e.g. a list as category
            use_cache = False
    if use_cache:
        return _resolve_cached(tenant_id, snapshot)
    return _resolve(tenant_id, snapshot)
