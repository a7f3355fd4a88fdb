"""
NominaHub - IMSS Worker Contribution Service

Worker (obrero) share of IMSS contributions withheld from payroll:

- Enfermedad y Maternidad, prestaciones en especie: 0.40% of the daily
  SBC in excess of 3 UMA (LSS Art. 106 Fracc. II)
- Enfermedad y Maternidad, prestaciones en dinero: 0.25% of SBC
  (LSS Art. 107)
- Enfermedad y Maternidad, gastos médicos de pensionados: 0.375% of SBC
  (LSS Art. 25)
- Invalidez y Vida: 0.625% of SBC (LSS Art. 147)
- Cesantía en Edad Avanzada y Vejez: 1.125% of SBC (LSS Art. 168)

The daily SBC is capped at 25 UMA (LSS Art. 28). Employer contributions
are not withheld from the worker and are not computed here.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict

from nominahub.services.tax_calculators.fiscal_config import SBC_CAP_UMAS
from nominahub.utils.error_handling import InvalidTaxBaseError


class ImssRamo(str, Enum):
    """IMSS worker quotas, one per ramo or Enfermedad y Maternidad sub-quota"""
    ENFERMEDAD_MATERNIDAD = "enfermedad_maternidad"
    PRESTACIONES_DINERO = "prestaciones_dinero"
    GASTOS_MEDICOS_PENSIONADOS = "gastos_medicos_pensionados"
    INVALIDEZ_VIDA = "invalidez_vida"
    CESANTIA_VEJEZ = "cesantia_vejez"


IMSS_WORKER_RATES: Dict[ImssRamo, Decimal] = {
    ImssRamo.ENFERMEDAD_MATERNIDAD: Decimal("0.40"),
    ImssRamo.PRESTACIONES_DINERO: Decimal("0.25"),
    ImssRamo.GASTOS_MEDICOS_PENSIONADOS: Decimal("0.375"),
    ImssRamo.INVALIDEZ_VIDA: Decimal("0.625"),
    ImssRamo.CESANTIA_VEJEZ: Decimal("1.125"),
}

# Enfermedad y Maternidad applies to the excess over this many UMA
EXCESS_THRESHOLD_UMAS = Decimal("3")


def cap_sbc(sbc_diario: Decimal, uma_diaria: Decimal) -> Decimal:
    """Apply the 25 UMA ceiling to a daily SBC."""
    return min(sbc_diario, uma_diaria * SBC_CAP_UMAS)


def calculate_imss_worker(
    sbc_diario: Decimal,
    dias: Decimal,
    ramo: ImssRamo,
    uma_diaria: Decimal,
) -> Decimal:
    """
    Worker contribution for one ramo over `dias` contribution days.

    Returns an unrounded Decimal.
    """
    ramo = ImssRamo(ramo)
    table = f"IMSS_{ramo.value.upper()}"
    if sbc_diario < 0:
        raise InvalidTaxBaseError(table, sbc_diario, "negative SBC")
    if dias < 0:
        raise InvalidTaxBaseError(table, dias, "negative contribution days")

    rate = IMSS_WORKER_RATES[ramo] / 100
    sbc = cap_sbc(sbc_diario, uma_diaria)

    if ramo == ImssRamo.ENFERMEDAD_MATERNIDAD:
        excess = max(sbc - uma_diaria * EXCESS_THRESHOLD_UMAS, Decimal("0"))
        return excess * dias * rate

    return sbc * dias * rate
