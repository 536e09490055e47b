"""
Module Catalog Tests.

Covers:
    - Catalog shape (ids, categories, ordering)
    - Dependency lookups and dependencies_met
    - next_modules unlocking
    - module_progress (required-only, rounding, no sub-modules)
    - category_progress
"""

import pytest

from app.services.module_catalog import (
    MODULE_DEFINITIONS,
    ModuleCatalog,
    ModuleCategory,
    ModuleDefinition,
    SubModuleDefinition,
    category_progress,
    default_catalog,
    get_module,
    module_dependencies,
    module_progress,
    modules_by_category,
    next_modules,
)


# ═══════════════════════════════════════════════════════════════════════════
#  1. CATALOG SHAPE
# ═══════════════════════════════════════════════════════════════════════════


class TestCatalogShape:

    def test_default_catalog_has_twenty_modules(self):
        assert len(default_catalog) == 20
        assert len(MODULE_DEFINITIONS) == 20

    def test_ids_are_unique(self):
        ids = [m.id for m in MODULE_DEFINITIONS]
        assert len(ids) == len(set(ids))

    def test_every_category_is_known(self):
        assert {m.category for m in default_catalog} == set(ModuleCategory.ALL)

    def test_dependencies_reference_catalog_modules(self):
        for module in default_catalog:
            for dep in module.dependencies:
                assert dep in default_catalog, f"{module.id} depends on unknown {dep}"

    def test_get_module(self):
        legal = get_module("MOD_201")
        assert legal.display_name == "Legal Structure Setup"
        assert legal.category == ModuleCategory.LEGAL
        assert legal.estimated_time == "45 min"

    def test_get_unknown_module_returns_none(self):
        assert get_module("MOD_999") is None
        assert "MOD_999" not in default_catalog

    def test_modules_by_category_sorted_by_order(self):
        legal = modules_by_category(ModuleCategory.LEGAL)
        assert [m.id for m in legal] == ["MOD_201", "MOD_202", "MOD_203"]

    def test_to_dict_lists_sub_modules(self):
        d = get_module("MOD_101").to_dict()
        assert d["id"] == "MOD_101"
        assert [sm["id"] for sm in d["sub_modules"]] == ["SUB_101_1", "SUB_101_2", "SUB_101_3"]
        assert d["sub_modules"][2]["required"] is False


# ═══════════════════════════════════════════════════════════════════════════
#  2. DEPENDENCIES & UNLOCKING
# ═══════════════════════════════════════════════════════════════════════════


class TestDependencies:

    def test_module_dependencies_resolves_definitions(self):
        deps = module_dependencies("MOD_601")
        assert [d.id for d in deps] == ["MOD_102", "MOD_403"]

    def test_module_dependencies_unknown_module(self):
        assert module_dependencies("MOD_999") == []

    def test_dependencies_met_requires_all(self):
        assert default_catalog.dependencies_met("MOD_601", ["MOD_102"]) is False
        assert default_catalog.dependencies_met("MOD_601", ["MOD_102", "MOD_403"]) is True

    def test_no_dependencies_always_met(self):
        assert default_catalog.dependencies_met("MOD_101", []) is True

    def test_next_modules_from_scratch(self):
        assert [m.id for m in next_modules([])] == ["MOD_101"]

    def test_next_modules_after_foundation(self):
        ids = [m.id for m in next_modules(["MOD_101"])]
        assert ids == ["MOD_102", "MOD_201"]

    def test_next_modules_excludes_completed(self):
        ids = [m.id for m in next_modules(["MOD_101", "MOD_201"])]
        assert "MOD_201" not in ids
        assert {"MOD_102", "MOD_202", "MOD_203", "MOD_401"} <= set(ids)


# ═══════════════════════════════════════════════════════════════════════════
#  3. PROGRESS CALCULATION
# ═══════════════════════════════════════════════════════════════════════════


class TestModuleProgress:

    def test_optional_sub_module_does_not_count(self):
        assert module_progress("MOD_101", ["SUB_101_3"]) == 0
        assert module_progress("MOD_101", ["SUB_101_1", "SUB_101_2"]) == 100

    def test_half_of_required(self):
        assert module_progress("MOD_101", ["SUB_101_1"]) == 50

    @pytest.mark.parametrize("done,expected", [
        (["SUB_201_1"], 33),
        (["SUB_201_1", "SUB_201_2"], 67),
        (["SUB_201_1", "SUB_201_2", "SUB_201_3"], 100),
    ])
    def test_rounding(self, done, expected):
        assert module_progress("MOD_201", done) == expected

    def test_unknown_sub_module_ids_ignored(self):
        assert module_progress("MOD_101", ["SUB_999_1"]) == 0

    def test_module_without_sub_modules(self):
        assert module_progress("MOD_102", []) == 0

    def test_three_required_two_optional(self):
        catalog = ModuleCatalog([
            ModuleDefinition(
                "MOD_X", "x", "X", "", ModuleCategory.GROWTH, 1,
                sub_modules=(
                    SubModuleDefinition("S1", "s1", "S1"),
                    SubModuleDefinition("S2", "s2", "S2"),
                    SubModuleDefinition("S3", "s3", "S3"),
                    SubModuleDefinition("O1", "o1", "O1", required=False),
                    SubModuleDefinition("O2", "o2", "O2", required=False),
                ),
            ),
        ])
        assert catalog.module_progress("MOD_X", ["S1", "S2", "S3"]) == 100
        assert catalog.module_progress("MOD_X", ["S1", "S2", "S3", "O1"]) == 100
        assert catalog.module_progress("MOD_X", ["O1", "O2"]) == 0

    def test_all_optional_module_is_complete(self):
        catalog = ModuleCatalog([
            ModuleDefinition("MOD_Y", "y", "Y", "", ModuleCategory.GROWTH, 1,
                             sub_modules=(SubModuleDefinition("O1", "o1", "O1", required=False),)),
        ])
        assert catalog.module_progress("MOD_Y", []) == 100


class TestCategoryProgress:

    def test_category_progress(self):
        assert category_progress(ModuleCategory.FOUNDATION, ["MOD_101"]) == 50
        assert category_progress(ModuleCategory.LEGAL, ["MOD_201"]) == 33

    def test_unknown_category(self):
        assert category_progress("unknown", ["MOD_101"]) == 0
