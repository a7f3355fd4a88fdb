"""
NominaHub - Default Concept Catalog

Statutory concept catalog used when a tenant does not supply its own.
Exemption limits follow LISR Art. 93; IMSS worker contributions use the
table functions of nominahub.services.tax_calculators.
"""

from typing import Tuple

from nominahub.models.payroll import Concept, ConceptKind
from nominahub.services.payroll_engine.concept_resolver import ResolvedCatalog, resolve_catalog

DEFAULT_TENANT = "default"

P = ConceptKind.PERCEPCION
D = ConceptKind.DEDUCCION

DEFAULT_CONCEPTS: Tuple[Concept, ...] = (
    # ============================================================================
    # PERCEPCIONES
    # ============================================================================
    Concept(
        code="P_SUELDO",
        name="Sueldo",
        kind=P,
        category="sueldo",
        formula="SALARIO_DIARIO * DIAS_TRABAJADOS",
        integra_sbc=True,
        legal_basis="LFT Art. 82-89",
    ),
    Concept(
        code="P_HORAS_EXTRA_DOBLES",
        name="Horas Extra Dobles",
        kind=P,
        category="horas_extra",
        formula="SALARIO_HORA * HORAS_EXTRA_DOBLES * 2",
        exemption_formula="MIN(SALARIO_HORA * MIN(HORAS_EXTRA_DOBLES, 9) * 2, SALARIO_PERIODO * 0.5)",
        legal_basis="LFT Art. 67-68, LISR Art. 93 Fracc. I",
    ),
    Concept(
        code="P_HORAS_EXTRA_TRIPLES",
        name="Horas Extra Triples",
        kind=P,
        category="horas_extra",
        formula="SALARIO_HORA * HORAS_EXTRA_TRIPLES * 3",
        legal_basis="LFT Art. 68",
    ),
    Concept(
        code="P_PRIMA_DOMINICAL",
        name="Prima Dominical",
        kind=P,
        category="prima",
        formula="SALARIO_DIARIO * DOMINGOS_TRABAJADOS * 0.25",
        exemption_formula="UMA_DIARIA * DOMINGOS_TRABAJADOS",
        integra_sbc=True,
        legal_basis="LFT Art. 71, LISR Art. 93 Fracc. XIV",
    ),
    Concept(
        code="P_FESTIVO_LABORADO",
        name="Días Festivos Laborados",
        kind=P,
        category="prima",
        formula="SALARIO_DIARIO * DIAS_FESTIVOS_TRABAJADOS * 2",
        integra_sbc=True,
        legal_basis="LFT Art. 74-75",
    ),
    Concept(
        code="P_VACACIONES",
        name="Vacaciones Pagadas",
        kind=P,
        category="prestacion",
        formula="SALARIO_DIARIO * DIAS_VACACIONES",
        integra_sbc=True,
        legal_basis="LFT Art. 76-81",
    ),
    Concept(
        code="P_PRIMA_VACACIONAL",
        name="Prima Vacacional",
        kind=P,
        category="prima",
        formula="SALARIO_DIARIO * DIAS_VACACIONES * 0.25",
        exemption_formula="15 * UMA_DIARIA",
        integra_sbc=True,
        legal_basis="LFT Art. 80, LISR Art. 93 Fracc. XIV",
    ),
    Concept(
        code="P_AGUINALDO",
        name="Aguinaldo",
        kind=P,
        category="prestacion",
        formula="SALARIO_DIARIO * DIAS_AGUINALDO",
        exemption_formula="30 * UMA_DIARIA",
        integra_sbc=True,
        legal_basis="LFT Art. 87, LISR Art. 93 Fracc. XIV",
    ),
    Concept(
        code="P_PTU",
        name="PTU (Reparto de Utilidades)",
        kind=P,
        category="prestacion",
        formula="PTU_CALCULADO",
        exemption_formula="15 * UMA_DIARIA",
        legal_basis="LFT Art. 117-131, LISR Art. 93 Fracc. XIV",
    ),
    Concept(
        code="P_VALES_DESPENSA",
        name="Vales de Despensa",
        kind=P,
        category="prestacion",
        formula="MONTO_VALES",
        exemption_formula="0.40 * UMA_MENSUAL",
        legal_basis="LISR Art. 93 Fracc. VIII, LSS Art. 27 Fracc. VI",
    ),
    Concept(
        code="P_BONO",
        name="Bono",
        kind=P,
        category="bono",
        formula="MONTO_BONO",
        legal_basis="LISR Art. 94",
    ),
    Concept(
        code="P_COMISIONES",
        name="Comisiones",
        kind=P,
        category="bono",
        formula="MONTO_COMISION",
        integra_sbc=True,
        legal_basis="LFT Art. 285-291",
    ),
    # ============================================================================
    # DEDUCCIONES DE LEY
    # ============================================================================
    Concept(
        code="D_ISR",
        name="ISR (Impuesto Sobre la Renta)",
        kind=D,
        category="isr",
        formula="MAX(TABLA_ISR(BASE_GRAVABLE) - SUBSIDIO_EMPLEO(BASE_GRAVABLE), 0)",
        taxable_isr=False,
        legal_basis="LISR Art. 96",
    ),
    Concept(
        code="D_IMSS_ENF_MAT",
        name="IMSS Enfermedad y Maternidad",
        kind=D,
        category="imss",
        formula="IMSS_ENF_MAT(SBC_DIARIO, DIAS_COTIZADOS)",
        taxable_isr=False,
        legal_basis="LSS Art. 25, 106",
    ),
    Concept(
        code="D_IMSS_PREST_DINERO",
        name="IMSS Prestaciones en Dinero",
        kind=D,
        category="imss",
        formula="IMSS_PREST_DINERO(SBC_DIARIO, DIAS_COTIZADOS)",
        taxable_isr=False,
        legal_basis="LSS Art. 107",
    ),
    Concept(
        code="D_IMSS_GASTOS_MED_PENS",
        name="IMSS Gastos Médicos Pensionados",
        kind=D,
        category="imss",
        formula="IMSS_GASTOS_MED_PENS(SBC_DIARIO, DIAS_COTIZADOS)",
        taxable_isr=False,
        legal_basis="LSS Art. 25",
    ),
    Concept(
        code="D_IMSS_INV_VIDA",
        name="IMSS Invalidez y Vida",
        kind=D,
        category="imss",
        formula="IMSS_INV_VIDA(SBC_DIARIO, DIAS_COTIZADOS)",
        taxable_isr=False,
        legal_basis="LSS Art. 147",
    ),
    Concept(
        code="D_IMSS_CES_VEJEZ",
        name="IMSS Cesantía y Vejez",
        kind=D,
        category="imss",
        formula="IMSS_CES_VEJEZ(SBC_DIARIO, DIAS_COTIZADOS)",
        taxable_isr=False,
        legal_basis="LSS Art. 168",
    ),
    # ============================================================================
    # OTRAS DEDUCCIONES
    # ============================================================================
    Concept(
        code="D_INFONAVIT",
        name="Infonavit (Crédito Vivienda)",
        kind=D,
        category="credito",
        formula="DESCUENTO_INFONAVIT",
        taxable_isr=False,
        legal_basis="Ley Infonavit Art. 29 Fracc. III",
    ),
    Concept(
        code="D_FONACOT",
        name="Fonacot",
        kind=D,
        category="credito",
        formula="DESCUENTO_FONACOT",
        taxable_isr=False,
        legal_basis="Ley Fonacot Art. 97 Fracc. IV",
    ),
    Concept(
        code="D_PRESTAMO",
        name="Préstamo Empresa",
        kind=D,
        category="credito",
        formula="ABONO_PRESTAMO",
        taxable_isr=False,
        legal_basis="LFT Art. 110 Fracc. I",
    ),
    Concept(
        code="D_ANTICIPO",
        name="Anticipo de Sueldo",
        kind=D,
        category="descuento",
        formula="MONTO_ANTICIPO",
        taxable_isr=False,
        legal_basis="LFT Art. 110 Fracc. I",
    ),
    Concept(
        code="D_HORAS_NO_LABORADAS",
        name="Horas no Laboradas",
        kind=D,
        category="descuento",
        formula="SALARIO_HORA * HORAS_AUSENTES",
        taxable_isr=False,
        legal_basis="LFT Art. 82",
    ),
    Concept(
        code="D_PENSION_ALIMENTICIA",
        name="Pensión Alimenticia",
        kind=D,
        category="otra_deduccion",
        formula="SALARIO_NETO * PORCENTAJE_PENSION / 100",
        taxable_isr=False,
        legal_basis="LFT Art. 110 Fracc. V",
    ),
)


def get_default_catalog() -> ResolvedCatalog:
    """Resolved default catalog; compiled once per process."""
    return resolve_catalog(DEFAULT_TENANT, DEFAULT_CONCEPTS)
