"""
NominaHub - Error Handling Tests
"""

import pytest

from nominahub.utils import error_handling
from nominahub.utils.error_handling import (
    AppException,
    ErrorCode,
    MissingInputError,
    PayrollError,
    require_positive,
)


class TestExceptionExports:
    """Test the public exception surface."""

    def test_exported_exceptions(self):
        """Only exceptions the engine or the API raise are exported."""
        exported = {
            name for name in error_handling.__all__
            if isinstance(getattr(error_handling, name), type)
            and issubclass(getattr(error_handling, name), AppException)
        }

        assert exported == {
            "AppException",
            "PayrollError",
            "MissingInputError",
            "InactiveEmployeeError",
            "UnknownVariableError",
            "UnknownFunctionError",
            "FormulaSyntaxError",
            "DivisionByZeroError",
            "InvalidTaxBaseError",
            "NegativeNetPayError",
            "CatalogError",
            "PayrollCalculationException",
        }

    def test_every_export_resolves(self):
        for name in error_handling.__all__:
            assert hasattr(error_handling, name), name


class TestRequirePositive:
    """Test required amount validation."""

    @pytest.mark.parametrize("value", [None, "abc", "0", -1, "NaN"])
    def test_rejected(self, value):
        with pytest.raises(MissingInputError) as exc_info:
            require_positive(value, "salarioDiario")

        assert isinstance(exc_info.value, PayrollError)
        assert exc_info.value.code == ErrorCode.MISSING_INPUT
        assert exc_info.value.status_code == 422
