"""
NominaHub - Payroll Calculator Tests

End-to-end calculations against the default statutory catalog.

Reference employee: 600.00/day, SDI 690.00, quincenal period in March 2025
with 11 worked days and 15 paid days (UMA 113.14).
"""

import pytest
from dataclasses import replace
from datetime import date
from decimal import Decimal

from nominahub.models.payroll import (
    CalculationState,
    Concept,
    ConceptKind,
    Employee,
    EmployeeStatus,
    Incident,
)
from nominahub.services.payroll_engine.payroll_calculator import PayrollCalculator, calculate_payroll
from nominahub.utils.error_handling import CatalogError


def amount(result, code):
    line = result.line(code)
    return line.amount if line is not None else None


def employee_with_sdi(sdi: str) -> Employee:
    return Employee(id="EMP-EYM", salario_diario=Decimal("300.00"), salario_diario_integrado=Decimal(sdi))


class TestScenarios:
    """Reference payroll scenarios."""

    def test_scenario_a_basic_biweekly(self, employee, period):
        """Scenario A: no incidents."""
        result = calculate_payroll(employee, period)

        assert result.ok
        assert result.state == CalculationState.DONE
        assert amount(result, "P_SUELDO") == Decimal("6600.00")
        assert amount(result, "D_ISR") == Decimal("615.11")
        assert amount(result, "D_IMSS_ENF_MAT") == Decimal("21.03")
        assert amount(result, "D_IMSS_INV_VIDA") == Decimal("64.69")
        assert amount(result, "D_IMSS_CES_VEJEZ") == Decimal("116.44")
        assert amount(result, "D_IMSS_PREST_DINERO") == Decimal("25.88")
        assert amount(result, "D_IMSS_GASTOS_MED_PENS") == Decimal("38.81")
        assert result.base_gravable == Decimal("6600.00")
        assert result.total_percepciones == Decimal("6600.00")
        assert result.total_deducciones == Decimal("881.96")
        assert result.neto_pagar == Decimal("5718.04")

    def test_scenario_b_overtime(self, employee, period, overtime_incident):
        """Scenario B: 5 double overtime hours, fully exempt."""
        baseline = calculate_payroll(employee, period)
        result = calculate_payroll(employee, period, [overtime_incident])

        overtime = result.line("P_HORAS_EXTRA_DOBLES")
        assert overtime.amount == Decimal("750.00")
        assert overtime.exempt == Decimal("750.00")
        assert overtime.taxable == Decimal("0.00")
        assert result.total_percepciones > baseline.total_percepciones
        assert result.base_gravable == baseline.base_gravable
        assert result.neto_pagar == Decimal("6468.04")

    def test_scenario_c_absences(self, employee, period):
        """Scenario C: 2 absences; 9 worked days and 13 contribution days."""
        baseline = calculate_payroll(employee, period)
        result = calculate_payroll(
            employee,
            replace(period, dias_laborales=Decimal("9")),
            [Incident(tipo="falta", cantidad=2)],
        )

        assert result.total_percepciones == Decimal("5400.00")
        assert baseline.total_percepciones - result.total_percepciones == 2 * employee.salario_diario
        assert amount(result, "D_ISR") == Decimal("428.97")
        assert amount(result, "D_IMSS_ENF_MAT") == Decimal("18.23")
        assert amount(result, "D_IMSS_INV_VIDA") == Decimal("56.06")
        assert amount(result, "D_IMSS_CES_VEJEZ") == Decimal("100.91")
        assert amount(result, "D_IMSS_PREST_DINERO") == Decimal("22.43")
        assert amount(result, "D_IMSS_GASTOS_MED_PENS") == Decimal("33.64")
        assert result.neto_pagar == Decimal("4739.76")

    def test_scenario_d_unknown_incident(self, employee, period):
        """Scenario D: unknown incident type is a warning, not a change."""
        baseline = calculate_payroll(employee, period)
        result = calculate_payroll(employee, period, [Incident(tipo="tipo_invalido", cantidad=3)])

        assert result.ok
        assert result.to_dict(include_audit=False) == baseline.to_dict(include_audit=False)
        warnings = [entry for entry in result.audit_trail if entry.level == "warning"]
        assert [entry.details["warning"] for entry in warnings] == ["UnrecognizedIncidentTypeWarning"]


class TestProperties:
    """Invariants that hold for any input."""

    def test_net_pay_identity(self, employee, period):
        result = calculate_payroll(employee, period)

        assert result.neto_pagar == result.total_percepciones - result.total_deducciones
        assert result.total_deducciones == sum(line.amount for line in result.deducciones)
        assert result.total_percepciones == (
            sum(line.amount for line in result.percepciones) + result.total_otros_pagos
        )

    def test_taxable_plus_exempt_equals_amount(self, employee, period, overtime_incident):
        incidents = [
            overtime_incident,
            Incident(tipo="vacaciones", cantidad=6),
            Incident(tipo="prima_dominical", cantidad=2),
            Incident(tipo="vales_despensa", cantidad="2000"),
        ]
        result = calculate_payroll(employee, period, incidents)

        for line in result.percepciones:
            assert line.taxable + line.exempt == line.amount
            assert 0 <= line.exempt <= line.amount

        prima = result.line("P_PRIMA_VACACIONAL")
        assert prima.amount == Decimal("900.00")
        assert prima.exempt == Decimal("900.00")
        assert result.line("P_VACACIONES").exempt == Decimal("0.00")
        vales = result.line("P_VALES_DESPENSA")
        assert vales.exempt == Decimal("1375.78")
        assert vales.taxable == Decimal("624.22")

    def test_idempotent(self, employee, period, overtime_incident, catalog):
        calculator = PayrollCalculator(catalog)
        first = calculator.calculate(employee, period, [overtime_incident])
        second = calculator.calculate(employee, period, [overtime_incident])

        assert first.to_dict(include_audit=False) == second.to_dict(include_audit=False)

    def test_monotonic_in_overtime_hours(self, employee, period, catalog):
        calculator = PayrollCalculator(catalog)
        results = [
            calculator.calculate(
                employee, period, [Incident(tipo="horas_extra", cantidad=h, datos={"horasDobles": h})]
            )
            for h in range(0, 13)
        ]

        earnings = [r.total_percepciones for r in results]
        nets = [r.neto_pagar for r in results]
        assert earnings == sorted(earnings)
        assert len(set(earnings)) == len(earnings)
        assert nets == sorted(nets)

    def test_enfermedad_maternidad_boundary(self, period, catalog):
        """EyM is zero at exactly 3 UMA and positive just above it."""
        calculator = PayrollCalculator(catalog, include_zero_lines=True)
        at_threshold = employee_with_sdi("339.42")
        above = employee_with_sdi("340.42")

        assert amount(calculator.calculate(at_threshold, period), "D_IMSS_ENF_MAT") == Decimal("0.00")
        assert amount(calculator.calculate(above, period), "D_IMSS_ENF_MAT") == Decimal("0.06")

    def test_zero_lines_omitted_by_default(self, employee, period):
        result = calculate_payroll(employee, period)

        assert result.line("D_INFONAVIT") is None
        assert result.line("P_AGUINALDO") is None

        full = calculate_payroll(employee, period, include_zero_lines=True)
        assert full.line("D_INFONAVIT").amount == Decimal("0.00")
        assert full.neto_pagar == result.neto_pagar


class TestDeductions:
    """Test non-statutory deductions and net pay flooring."""

    def test_alimony_reads_net_salary(self, employee, period):
        result = calculate_payroll(employee, period, [Incident(tipo="pension_alimenticia", cantidad=10)])

        # 10% of 6600.00 - 881.96
        assert amount(result, "D_PENSION_ALIMENTICIA") == Decimal("571.80")

    def test_negative_net_trims_deductions(self, employee, period):
        result = calculate_payroll(employee, period, [Incident(tipo="prestamo", cantidad=10000)])

        assert result.ok
        assert result.neto_pagar == Decimal("0.00")
        assert amount(result, "D_PRESTAMO") == Decimal("5718.04")
        assert amount(result, "D_ISR") == Decimal("615.11")
        actions = [entry.action for entry in result.audit_trail if entry.level == "warning"]
        assert any("D_PRESTAMO reduced" in action for action in actions)
        assert any("exceed 30%" in action for action in actions)

    def test_negative_net_fails_without_flooring(self, employee, period):
        result = calculate_payroll(
            employee, period, [Incident(tipo="prestamo", cantidad=10000)], floor_net_pay_at_zero=False
        )

        assert not result.ok
        assert result.error_code == "NEGATIVE_NET_PAY"
        assert result.last_state == CalculationState.OTHER_DEDUCTIONS_EVALUATED


class TestFailures:
    """Fatal errors abort one employee and return a failure record."""

    def test_inactive_employee(self, employee, period):
        result = calculate_payroll(replace(employee, estatus=EmployeeStatus.INACTIVO), period)

        assert not result.ok
        assert result.error_code == "INACTIVE_EMPLOYEE"
        assert result.error_kind == "InactiveEmployeeError"
        assert result.last_state == CalculationState.STARTED
        assert result.audit_trail[-1].level == "error"

    def test_missing_salary(self, employee, period):
        result = calculate_payroll(replace(employee, salario_diario=None), period)

        assert result.error_code == "MISSING_INPUT"
        assert result.to_dict()["lastState"] == "started"

    def test_failure_is_terminal_failed_state(self, employee, period):
        """Every failure ends in FAILED and remembers where it stopped."""
        result = calculate_payroll(replace(employee, estatus=EmployeeStatus.INACTIVO), period)

        assert result.state == CalculationState.FAILED
        assert result.last_state == CalculationState.STARTED
        assert result.to_dict()["state"] == "failed"
        assert result.audit_trail[-1].details["lastState"] == "started"

    def test_failure_names_concept(self, employee, period):
        catalog = [
            Concept("P_SUELDO", "Sueldo", ConceptKind.PERCEPCION, "sueldo", "SALARIO_DIARIO * DIAS_TRABAJADOS"),
            Concept("P_PROMEDIO", "Promedio", ConceptKind.PERCEPCION, "bono", "P_SUELDO / DIAS_AUSENTES"),
        ]
        result = calculate_payroll(employee, period, catalog=catalog, tenant_id="acme")

        assert not result.ok
        assert result.error_code == "DIVISION_BY_ZERO"
        assert result.concept == "P_PROMEDIO"
        assert result.last_state == CalculationState.INCIDENTS_APPLIED

    def test_missing_tax_table(self, employee, period):
        """A 2024 period has UMA values but no ISR table."""
        old = replace(period, anio=2024, fecha_inicio=date(2024, 3, 1), fecha_fin=date(2024, 3, 15))
        result = calculate_payroll(employee, old)

        assert result.error_code == "INVALID_TAX_BASE"
        assert result.concept == "D_ISR"
        assert result.last_state == CalculationState.BASE_GRAVABLE_COMPUTED

    def test_broken_catalog_raises(self, employee, period):
        catalog = [Concept("P_A", "A", ConceptKind.PERCEPCION, "sueldo", "MAX(")]
        with pytest.raises(CatalogError):
            calculate_payroll(employee, period, catalog=catalog)


class TestCustomCatalogs:
    """Tenant catalogs with annual caps and other payments."""

    def test_annual_cap(self, employee, period):
        catalog = [
            Concept("P_SUELDO", "Sueldo", ConceptKind.PERCEPCION, "sueldo", "SALARIO_DIARIO * DIAS_TRABAJADOS"),
            Concept(
                "P_BONO_ANUAL", "Bono anual", ConceptKind.PERCEPCION, "bono", "MONTO_BONO",
                annual_cap="1000",
            ),
        ]
        result = calculate_payroll(
            employee, period, [Incident(tipo="bono", cantidad=800)],
            catalog=catalog, year_to_date={"P_BONO_ANUAL": Decimal("500")},
        )

        assert amount(result, "P_BONO_ANUAL") == Decimal("500.00")
        assert any("capped" in entry.action for entry in result.audit_trail)

    def test_other_payments_count_toward_earnings(self, employee, period):
        catalog = [
            Concept("P_SUELDO", "Sueldo", ConceptKind.PERCEPCION, "sueldo", "SALARIO_DIARIO * DIAS_TRABAJADOS"),
            Concept("O_VIATICOS", "Viáticos", ConceptKind.OTRO_PAGO, "otro_pago", "250"),
            Concept("D_CAJA", "Caja de ahorro", ConceptKind.DEDUCCION, "descuento", "TOTAL_OTROS_PAGOS * 0.1"),
        ]
        result = calculate_payroll(employee, period, catalog=catalog)

        assert result.total_otros_pagos == Decimal("250.00")
        assert result.total_percepciones == Decimal("6850.00")
        assert amount(result, "D_CAJA") == Decimal("25.00")
        assert result.neto_pagar == Decimal("6825.00")
        assert result.to_dict()["otrosPagos"] == [
            {"codigo": "O_VIATICOS", "nombre": "Viáticos", "monto": Decimal("250.00")}
        ]

    def test_result_serialization(self, employee, period):
        data = calculate_payroll(employee, period).to_dict()

        assert data["percepciones"][0] == {
            "codigo": "P_SUELDO",
            "nombre": "Sueldo",
            "monto": Decimal("6600.00"),
            "gravado": Decimal("6600.00"),
            "exento": Decimal("0.00"),
        }
        assert "gravado" not in data["deducciones"][0]
        assert data["auditTrail"][0]["phase"] == "context_build"
