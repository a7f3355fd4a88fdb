"""
NominaHub - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from nominahub.models.payroll import (
    Employee,
    EmployeeStatus,
    Incident,
    Period,
    PeriodFrequency,
)
from nominahub.services.payroll_engine.seed_catalog import get_default_catalog
from main import app


@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create a test client bound to the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def employee() -> Employee:
    """Active employee: 600/day, SDI 690."""
    return Employee(
        id="EMP-001",
        salario_diario=Decimal("600.00"),
        salario_diario_integrado=Decimal("690.00"),
        estatus=EmployeeStatus.ACTIVO,
    )


@pytest.fixture
def period() -> Period:
    """First half of March 2025: 11 worked days, 15 paid days."""
    return Period(
        id="2025-Q05",
        frecuencia=PeriodFrequency.QUINCENAL,
        anio=2025,
        mes=3,
        dias_laborales=Decimal("11"),
        dias_periodo=Decimal("15"),
        fecha_inicio=date(2025, 3, 1),
        fecha_fin=date(2025, 3, 15),
        numero=5,
    )


@pytest.fixture
def overtime_incident() -> Incident:
    return Incident(
        tipo="horas_extra",
        cantidad=Decimal("5"),
        datos={"horasDobles": 5, "horasTriples": 0},
    )


@pytest.fixture
def catalog():
    """Resolved default statutory catalog."""
    return get_default_catalog()


@pytest.fixture
def employee_payload() -> dict:
    return {
        "id": "EMP-001",
        "salarioDiario": "600.00",
        "salarioDiarioIntegrado": "690.00",
        "estatus": "activo",
    }


@pytest.fixture
def period_payload() -> dict:
    return {
        "id": "2025-Q05",
        "frecuencia": "quincenal",
        "anio": 2025,
        "mes": 3,
        "diasLaborales": "11",
        "diasPeriodo": "15",
        "fechaInicio": "2025-03-01",
        "fechaFin": "2025-03-15",
    }
