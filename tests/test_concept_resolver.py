"""
NominaHub - Concept Resolver Tests

Catalog validation happens once, before any employee is calculated.
"""

import pytest

from nominahub.models.payroll import Concept, ConceptKind
from nominahub.services.payroll_engine.concept_resolver import (
    ConceptCategory,
    Stage,
    catalog_fingerprint,
    resolve_catalog,
)
from nominahub.services.payroll_engine.seed_catalog import DEFAULT_CONCEPTS, get_default_catalog
from nominahub.utils.error_handling import CatalogError


P = ConceptKind.PERCEPCION
D = ConceptKind.DEDUCCION
O = ConceptKind.OTRO_PAGO


def concept(code, kind=P, category="sueldo", formula="1", **extra) -> Concept:
    return Concept(code=code, name=code.title(), kind=kind, category=category, formula=formula, **extra)


class TestDefaultCatalog:
    """Test the statutory seed catalog."""

    def test_default_catalog_resolves(self):
        catalog = get_default_catalog()

        assert len(catalog) == len(DEFAULT_CONCEPTS)
        assert catalog.earnings[0].code == "P_SUELDO"
        assert [rc.code for rc in catalog.statutory_deductions] == [
            "D_ISR", "D_IMSS_ENF_MAT", "D_IMSS_PREST_DINERO", "D_IMSS_GASTOS_MED_PENS",
            "D_IMSS_INV_VIDA", "D_IMSS_CES_VEJEZ",
        ]
        assert catalog.other_deductions[-1].code == "D_PENSION_ALIMENTICIA"

    def test_default_catalog_is_cached(self):
        assert get_default_catalog() is get_default_catalog()

    def test_fingerprint_is_stable(self):
        first = resolve_catalog("a", DEFAULT_CONCEPTS, use_cache=False)
        second = resolve_catalog("b", DEFAULT_CONCEPTS, use_cache=False)
        assert first.fingerprint == second.fingerprint
        assert len(first.fingerprint) == 64

    def test_fingerprint_ignores_category_spelling(self):
        """An enum category and its plain string value hash the same."""
        as_text = [concept("P_A", category="sueldo"), concept("D_A", D, "isr", "P_A * 0.1")]
        as_enum = [
            concept("P_A", category=ConceptCategory.SUELDO),
            concept("D_A", D, ConceptCategory.ISR, "P_A * 0.1"),
        ]

        assert catalog_fingerprint(as_enum) == catalog_fingerprint(as_text)
        assert (
            resolve_catalog("t", as_enum, use_cache=False).fingerprint
            == resolve_catalog("t", as_text, use_cache=False).fingerprint
        )


class TestStaging:
    """Test evaluation order."""

    def test_stages_follow_kind_and_category(self):
        catalog = resolve_catalog("t", [
            concept("D_CAJA", D, "descuento", "P_SUELDO * 0.05"),
            concept("D_ISR_PROPIO", D, "isr", "TABLA_ISR(BASE_GRAVABLE)"),
            concept("O_VIATICOS", O, "otro_pago", "100"),
            concept("P_SUELDO", P, "sueldo", "SALARIO_DIARIO * DIAS_TRABAJADOS"),
        ])

        assert [rc.stage for rc in catalog.concepts] == [
            Stage.EARNINGS, Stage.STATUTORY_DEDUCTIONS, Stage.OTHER_PAYMENTS, Stage.OTHER_DEDUCTIONS,
        ]
        assert catalog.concepts[0].code == "P_SUELDO"

    def test_catalog_order_kept_within_stage(self):
        catalog = resolve_catalog("t", [
            concept("P_A", formula="10"),
            concept("P_B", formula="P_A * 2"),
        ])
        assert [rc.code for rc in catalog.earnings] == ["P_A", "P_B"]

    def test_inactive_concepts_excluded(self):
        catalog = resolve_catalog("t", [concept("P_A"), concept("P_B", active=False)])
        assert [rc.code for rc in catalog.concepts] == ["P_A"]


class TestCatalogErrors:
    """Test structural problems that abort a batch."""

    @pytest.mark.parametrize("concepts, fragment", [
        ([concept("P_A", formula="1 +")], "invalid formula"),
        ([concept("P_A", formula="FOO(1)")], "unknown function"),
        ([concept("P_A", formula="TABLA_ISR(1, 2)")], "takes 1 argument"),
        ([concept("P_A"), concept("P_A")], "Duplicate"),
        ([concept("SALARIO_DIARIO")], "collides"),
        ([concept("P-A")], "not a valid variable name"),
        ([concept("P_A", category="isr")], "not valid for a percepcion"),
        ([concept("P_A", category="misc")], "unrecognized category"),
        ([concept("D_A", D, "descuento", exemption_formula="1")], "exemption formula"),
        ([concept("P_A", formula="BASE_GRAVABLE * 0.1")], "not computed until after earnings"),
        ([concept("D_A", D, "isr", "SALARIO_NETO")], "not computed until after"),
        ([concept("P_A", formula="P_B"), concept("P_B")], "evaluated later"),
        ([concept("P_A", formula="P_A + 1")], "references itself"),
        ([concept("P_A", formula="D_A"), concept("D_A", D, "descuento")], "evaluated later"),
        ([concept("P_A", formula="P_B"), concept("P_B", active=False)], "inactive"),
    ])
    def test_rejected(self, concepts, fragment):
        with pytest.raises(CatalogError) as exc_info:
            resolve_catalog("t", concepts)

        assert fragment in exc_info.value.message
        assert exc_info.value.code.value == "CATALOG_ERROR"
        assert exc_info.value.status_code == 422

    def test_error_names_concept(self):
        with pytest.raises(CatalogError) as exc_info:
            resolve_catalog("t", [concept("P_OK"), concept("P_MAL", formula="MAX(")])
        assert exc_info.value.concept == "P_MAL"
        assert exc_info.value.details["concept"] == "P_MAL"

    def test_deeply_nested_formula_rejected(self):
        """A formula too deep to parse is a catalog error, not a crash."""
        nested = "(" * 1500 + "SALARIO_DIARIO" + ")" * 1500
        with pytest.raises(CatalogError) as exc_info:
            resolve_catalog("t", [concept("P_A", formula=nested)])

        assert "invalid formula" in exc_info.value.message
        assert exc_info.value.code.value == "CATALOG_ERROR"
        assert exc_info.value.concept == "P_A"

    def test_later_stage_may_read_earlier_concepts(self):
        catalog = resolve_catalog("t", [
            concept("P_A", formula="100"),
            concept("D_A", D, "descuento", "P_A * 0.1 + SALARIO_NETO * 0"),
        ])
        assert len(catalog) == 2
