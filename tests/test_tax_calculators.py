"""
NominaHub - Tax Calculator Tests

Unit tests for ISR tables, employment subsidy, IMSS worker contributions
and fiscal parameters.
"""

import pytest
from datetime import date
from decimal import Decimal

from nominahub.models.payroll import PeriodFrequency
from nominahub.services.tax_calculators import (
    build_function_table,
    calculate_employment_subsidy,
    calculate_imss_worker,
    calculate_imss_worker_total,
    calculate_isr,
    calculate_isr_withholding,
    get_minimum_wage,
    get_uma,
    tax_function_arities,
    ImssRamo,
)
from nominahub.services.tax_calculators.isr_service import find_bracket, get_isr_table
from nominahub.utils.error_handling import InvalidTaxBaseError
from nominahub.utils.money import round_currency

Q = PeriodFrequency.QUINCENAL
M = PeriodFrequency.MENSUAL
UMA_2025 = Decimal("113.14")


class TestFiscalParameters:
    """Test UMA and minimum wage lookups."""

    def test_uma_changes_on_february_first(self):
        """UMA published in January takes effect on February 1st."""
        assert get_uma(date(2025, 1, 31)).diaria == Decimal("108.57")
        assert get_uma(date(2025, 2, 1)).diaria == UMA_2025
        assert get_uma(date(2026, 3, 15)).diaria == Decimal("117.31")

    def test_uma_before_history_is_missing(self):
        assert get_uma(date(2022, 12, 31)) is None

    def test_weekly_uma(self):
        assert get_uma(date(2025, 6, 1)).semanal == Decimal("791.98")

    def test_minimum_wage_by_zone(self):
        wage = get_minimum_wage(2025)
        assert wage.general == Decimal("278.80")
        assert wage.frontera == Decimal("419.88")
        assert get_minimum_wage(2019) is None


class TestISRCalculation:
    """Test ISR withholding tables (LISR Art. 96)."""

    def test_quincenal_2025_bracket(self):
        """6,600 falls in the 17.92% bracket starting at 6,467.92."""
        isr = calculate_isr(Decimal("6600.00"), Q, 2025)

        # 591.44 + (6600 - 6467.92) * 17.92%
        assert isr == Decimal("615.108736")
        assert round_currency(isr) == Decimal("615.11")

    def test_zero_base_has_no_tax(self):
        assert calculate_isr(Decimal("0"), Q, 2025) == Decimal("0")

    def test_negative_base_rejected(self):
        with pytest.raises(InvalidTaxBaseError) as exc_info:
            calculate_isr(Decimal("-1"), Q, 2025)
        assert exc_info.value.code.value == "INVALID_TAX_BASE"

    def test_unknown_year_rejected(self):
        with pytest.raises(InvalidTaxBaseError):
            calculate_isr(Decimal("1000"), Q, 2019)

    def test_top_bracket_is_open_ended(self):
        brackets = get_isr_table(2025, Q)
        top = find_bracket(brackets, Decimal("1000000"))
        assert top.upper is None
        assert top.rate == Decimal("35.00")

    def test_isr_is_monotonic(self):
        """More taxable income never means less ISR."""
        bases = [Decimal(n) for n in range(0, 60000, 250)]
        taxes = [calculate_isr(base, Q, 2025) for base in bases]
        assert taxes == sorted(taxes)

    def test_2026_tables_differ_from_2025(self):
        base = Decimal("6600.00")
        assert calculate_isr(base, Q, 2026) < calculate_isr(base, Q, 2025)


class TestEmploymentSubsidy:
    """Test employment subsidy rules."""

    def test_monthly_subsidy_at_limit(self):
        """The full credit applies up to and including the income limit."""
        assert calculate_employment_subsidy(Decimal("10171.00"), M, 2025, 6) == Decimal("475.00")
        assert calculate_employment_subsidy(Decimal("10171.01"), M, 2025, 6) == Decimal("0")

    def test_quincenal_subsidy_is_prorated(self):
        subsidy = calculate_employment_subsidy(Decimal("5000.00"), Q, 2025, 3)
        assert round_currency(subsidy) == Decimal("234.38")

    def test_january_2026_uses_previous_uma(self):
        assert calculate_employment_subsidy(Decimal("10000"), M, 2026, 1) == Decimal("536.21")
        assert calculate_employment_subsidy(Decimal("10000"), M, 2026, 2) == Decimal("535.65")

    def test_subsidy_is_non_increasing(self):
        bases = [Decimal(n) for n in range(0, 20000, 500)]
        credits = [calculate_employment_subsidy(base, M, 2025, 6) for base in bases]
        assert credits == sorted(credits, reverse=True)

    def test_missing_rule_rejected(self):
        with pytest.raises(InvalidTaxBaseError):
            calculate_employment_subsidy(Decimal("1000"), M, 2024, 6)

    def test_withholding_nets_subsidy(self):
        """Withholding = ISR - subsidy, floored at zero."""
        assert calculate_isr_withholding(Decimal("5000.00"), Q, 2025, 3) == Decimal("151.08")
        assert calculate_isr_withholding(Decimal("1000.00"), Q, 2025, 3) == Decimal("0.00")


class TestIMSSWorkerContributions:
    """Test IMSS worker quotas (LSS Art. 25, 106, 147, 168)."""

    def test_scenario_amounts(self):
        sbc, days = Decimal("690.00"), Decimal("15")
        assert round_currency(calculate_imss_worker(sbc, days, ImssRamo.ENFERMEDAD_MATERNIDAD, UMA_2025)) == Decimal("21.03")
        assert round_currency(calculate_imss_worker(sbc, days, ImssRamo.INVALIDEZ_VIDA, UMA_2025)) == Decimal("64.69")
        assert round_currency(calculate_imss_worker(sbc, days, ImssRamo.CESANTIA_VEJEZ, UMA_2025)) == Decimal("116.44")
        assert round_currency(calculate_imss_worker(sbc, days, ImssRamo.PRESTACIONES_DINERO, UMA_2025)) == Decimal("25.88")
        assert round_currency(
            calculate_imss_worker(sbc, days, ImssRamo.GASTOS_MEDICOS_PENSIONADOS, UMA_2025)
        ) == Decimal("38.81")

    def test_eym_sub_quotas_apply_below_threshold(self):
        """Cash benefits and pensioner medical quotas use the full SBC, not the excess."""
        sbc, days = Decimal("300.00"), Decimal("15")
        assert calculate_imss_worker(sbc, days, ImssRamo.ENFERMEDAD_MATERNIDAD, UMA_2025) == 0
        assert round_currency(calculate_imss_worker(sbc, days, ImssRamo.PRESTACIONES_DINERO, UMA_2025)) == Decimal("11.25")
        assert round_currency(
            calculate_imss_worker(sbc, days, ImssRamo.GASTOS_MEDICOS_PENSIONADOS, UMA_2025)
        ) == Decimal("16.88")

    def test_enfermedad_maternidad_boundary(self):
        """Only the excess over 3 UMA pays the EyM quota."""
        threshold = UMA_2025 * 3
        days = Decimal("15")
        assert calculate_imss_worker(threshold, days, ImssRamo.ENFERMEDAD_MATERNIDAD, UMA_2025) == 0
        assert calculate_imss_worker(
            threshold + Decimal("0.01"), days, ImssRamo.ENFERMEDAD_MATERNIDAD, UMA_2025
        ) > 0

    def test_sbc_capped_at_25_uma(self):
        high = calculate_imss_worker(Decimal("5000"), Decimal("15"), ImssRamo.INVALIDEZ_VIDA, UMA_2025)
        cap = calculate_imss_worker(UMA_2025 * 25, Decimal("15"), ImssRamo.INVALIDEZ_VIDA, UMA_2025)
        assert high == cap

    def test_negative_days_rejected(self):
        with pytest.raises(InvalidTaxBaseError):
            calculate_imss_worker(Decimal("690"), Decimal("-1"), ImssRamo.CESANTIA_VEJEZ, UMA_2025)

    def test_total_rounds_per_quota(self):
        total = calculate_imss_worker_total(Decimal("690.00"), Decimal("15"), UMA_2025)
        assert total == Decimal("266.85")


class TestFunctionTable:
    """Test table functions exposed to concept formulas."""

    def test_arities(self):
        arities = tax_function_arities()
        assert arities["TABLA_ISR"] == 1
        assert arities["TABLA_ISR_2026"] == 1
        assert arities["SUBSIDIO_EMPLEO_2025"] == 1
        assert arities["IMSS_ENF_MAT"] == 2
        assert arities["IMSS_PREST_DINERO"] == 2
        assert arities["IMSS_GASTOS_MED_PENS"] == 2

    def test_functions_bound_to_period(self):
        functions = build_function_table(Q, 2025, 3, UMA_2025)

        assert functions["TABLA_ISR"](Decimal("6600.00")) == Decimal("615.108736")
        assert functions["SUBSIDIO_EMPLEO"](Decimal("6600.00")) == Decimal("0")
        assert functions["TABLA_ISR_2026"](Decimal("6600.00")) == calculate_isr(Decimal("6600.00"), Q, 2026)
        assert round_currency(functions["IMSS_INV_VIDA"](Decimal("690"), Decimal("15"))) == Decimal("64.69")
