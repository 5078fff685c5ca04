"""
Tests for the static catalogues — module layers and recovery phases.
"""

import pytest

from modrecovery.core.data.layers import (
    EXECUTION_TIERS,
    MODULE_IDS,
    get_module_layer_info,
    group_by_tier,
    module_layer,
    modules_in_layer,
    require_module,
    require_modules,
)
from modrecovery.core.data.phases import (
    EXECUTION_ORDER,
    PHASES,
    get_phase_definition,
    parse_phase_number,
    phase_dependencies,
    total_estimated_duration,
    unblocks,
)
from modrecovery.core.errors import InvalidArgumentError

# ── Layers ───────────────────────────────────────────────────────────


class TestLayers:
    def test_eleven_modules(self):
        assert len(MODULE_IDS) == 11
        assert len(set(MODULE_IDS)) == 11

    def test_layer_membership(self):
        assert modules_in_layer(1) == ("auth", "i18n")
        assert set(modules_in_layer(2)) == {"processing", "multimedia", "analytics"}
        assert set(modules_in_layer(3)) == {"premium", "public-profiles", "recommendations"}
        assert set(modules_in_layer(4)) == {"admin", "workflow", "payments"}

    def test_auth_runs_before_i18n(self):
        assert EXECUTION_TIERS[0] == ("auth",)
        assert EXECUTION_TIERS[1] == ("i18n",)

    def test_layer_info(self):
        info = get_module_layer_info("processing")
        assert info.layer == 2
        assert info.tier == 3
        assert info.allowed_dependencies == ("core", "auth", "i18n")

    def test_foundation_may_only_use_shared(self):
        assert get_module_layer_info("auth").allowed_dependencies == ("core",)

    def test_layer_info_to_dict(self):
        d = get_module_layer_info("admin").to_dict()
        assert d["module_id"] == "admin"
        assert d["layer"] == 4
        assert "premium" in d["allowed_dependencies"]

    def test_module_layer(self):
        assert module_layer("payments") == 4


class TestModuleValidation:
    def test_require_module_ok(self):
        assert require_module("auth") == "auth"

    def test_require_module_missing(self):
        with pytest.raises(InvalidArgumentError, match="moduleId is required"):
            require_module("")

    def test_require_module_unknown(self):
        with pytest.raises(InvalidArgumentError) as exc:
            require_module("unknown-module")
        assert exc.value.code == "invalid-argument"
        assert "Invalid module ID: unknown-module" in exc.value.message
        assert "auth" in exc.value.details["valid_ids"]

    def test_require_modules_none_is_all(self):
        assert require_modules(None) == list(MODULE_IDS)

    def test_require_modules_reports_every_unknown(self):
        with pytest.raises(InvalidArgumentError, match="Invalid module IDs: x, y"):
            require_modules(["auth", "x", "y"])

    def test_require_modules_dedupes(self):
        assert require_modules(["i18n", "auth", "i18n"]) == ["i18n", "auth"]


class TestGroupByTier:
    def test_orders_by_tier(self):
        assert group_by_tier(["admin", "i18n", "auth"]) == [["auth"], ["i18n"], ["admin"]]

    def test_drops_empty_tiers(self):
        assert group_by_tier(["processing", "analytics"]) == [["processing", "analytics"]]

    def test_within_tier_follows_definition(self):
        groups = group_by_tier(["payments", "admin"])
        assert groups == [["admin", "payments"]]

    def test_empty_selection(self):
        assert group_by_tier([]) == []


# ── Phases ───────────────────────────────────────────────────────────


class TestPhases:
    def test_five_phases_in_order(self):
        assert EXECUTION_ORDER == (1, 2, 3, 4, 5)
        assert [p.name for p in PHASES.values()] == [
            "Emergency Stabilization",
            "Dependency Resolution",
            "Build Recovery",
            "Integration Testing",
            "Validation and Completion",
        ]

    def test_dependencies_only_point_backwards(self):
        for number, phase in PHASES.items():
            assert all(dep < number for dep in phase.dependencies)

    def test_phase_one_has_critical_modules(self):
        assert PHASES[1].critical_modules == ("auth", "i18n")

    def test_total_duration(self):
        assert total_estimated_duration() == 510_000

    def test_to_dict_includes_phase_specific_fields(self):
        d = PHASES[4].to_dict()
        assert d["phase"] == 4
        assert d["integration_tests"] == [
            "core-integrations",
            "layer-integrations",
            "cross-module-compatibility",
        ]
        assert "build_order" not in d

    def test_unblocks(self):
        assert unblocks(4) == [5]
        assert unblocks(5) == []


class TestParsePhaseNumber:
    @pytest.mark.parametrize("value", [1, "3", 5])
    def test_valid(self, value):
        assert parse_phase_number(value) == int(value)

    @pytest.mark.parametrize("value", [0, 6, "abc", -1, True])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidArgumentError, match="between 1 and 5"):
            parse_phase_number(value)

    def test_integral_float_accepted(self):
        assert parse_phase_number(3.0) == 3

    @pytest.mark.parametrize("value", [2.7, 0.5])
    def test_fractional_rejected(self, value):
        with pytest.raises(InvalidArgumentError, match="must be an integer"):
            parse_phase_number(value)

    def test_missing(self):
        with pytest.raises(InvalidArgumentError, match="phaseNumber is required"):
            parse_phase_number(None)

    def test_get_phase_definition(self):
        assert get_phase_definition("2").name == "Dependency Resolution"


class TestPhaseDependencies:
    def test_view(self):
        deps = phase_dependencies(3)
        assert deps["depends_on"] == [1, 2]
        assert deps["unblocks"] == [4, 5]
        assert deps["critical_path"] == [1, 2, 3]
        assert deps["execution_order"] == [1, 2, 3, 4, 5]
