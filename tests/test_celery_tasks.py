"""
NominaHub - Celery Task Tests

Tasks are called in-process; no broker is needed.
"""

from nominahub.celery_app import celery_app
from nominahub.tasks.celery_tasks import calculate_payroll_batch_task


class TestCeleryConfiguration:
    """Test the Celery application."""

    def test_json_only(self):
        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.accept_content == ["json"]

    def test_task_registered_by_name(self):
        assert calculate_payroll_batch_task.name == "nominahub.tasks.celery_tasks.calculate_payroll_batch_task"


class TestPayrollBatchTask:
    """Test the background payroll batch."""

    def test_batch_returns_json_document(self, employee_payload, period_payload):
        inactive = dict(employee_payload, id="EMP-002", estatus="inactivo")
        result = calculate_payroll_batch_task(
            {
                "period": period_payload,
                "employees": [{"employee": employee_payload}, {"employee": inactive}],
            }
        )

        assert result["periodId"] == "2025-Q05"
        assert result["summary"]["completed"] == 1
        assert result["summary"]["failed"] == 1
        assert result["results"][0]["netoPagar"] == "5718.04"
        assert result["failures"][0]["errorCode"] == "INACTIVE_EMPLOYEE"
        assert "auditTrail" not in result["results"][0]

    def test_invalid_catalog_returns_error(self, employee_payload, period_payload):
        result = calculate_payroll_batch_task(
            {
                "period": period_payload,
                "employees": [{"employee": employee_payload}],
                "catalog": [
                    {
                        "codigo": "P_SUELDO",
                        "nombre": "Sueldo",
                        "tipo": "percepcion",
                        "categoria": "sueldo",
                        "formula": "SALARIO_DIARIO *",
                    },
                ],
            }
        )

        assert result["error"]["code"] == "CATALOG_ERROR"
        assert result["error"]["details"]["concept"] == "P_SUELDO"
