"""
test_fee_calculator.py — Tests for the calculation session and pipeline helpers.

Tests cover:
  - resolve_total_hours in functional and fee mode, no template
  - apply_template_defaults: enablement and external prices
  - FeeCalculator.recompute: allocation, summary, scope breakdown, perf tracking
  - Fee path vs. cost edit consistency
  - edit_total_cost switching the session to fee mode
  - snapshot: independence from later edits, default names, JSON round-trip
  - from_snapshot: " (copy)" title, merged multipliers, embedded template
"""

from datetime import datetime, timezone

import pytest

from app.models.fee_schema import (
    FeeMode,
    FunctionalMode,
    GlobalMultipliers,
    ProjectInputs,
    SavedCalculation,
    TeamMember,
)
from app.services import fee_calculator
from app.services.fee_calculator import FeeCalculator
from app.services.perf_monitor import tracker


@pytest.fixture
def calc(simple_template, architect_team, neutral_multipliers, simple_stages):
    return FeeCalculator(simple_template, architect_team, neutral_multipliers, simple_stages)


class TestResolveTotalHours:

    def test_functional_mode(self, simple_template, architect_team, simple_stages, neutral_multipliers):
        inputs = ProjectInputs(area=150)
        hours = fee_calculator.resolve_total_hours(
            FunctionalMode(element_values={"el_base": 1, "el_bath": 2}),
            simple_template, architect_team, simple_stages, neutral_multipliers, inputs,
        )
        assert hours == pytest.approx(150)

    def test_fee_mode(self, simple_template, architect_team, simple_stages, neutral_multipliers):
        hours = fee_calculator.resolve_total_hours(
            FeeMode(target_fee=15000), simple_template, architect_team, simple_stages,
            neutral_multipliers, ProjectInputs(),
        )
        assert hours == pytest.approx(60)

    def test_no_template(self, architect_team, simple_stages, neutral_multipliers):
        hours = fee_calculator.resolve_total_hours(
            FeeMode(target_fee=15000), None, architect_team, simple_stages, neutral_multipliers, ProjectInputs(),
        )
        assert hours == 0


class TestTemplateDefaults:

    def test_enablement_and_prices(self, simple_template, simple_stages):
        simple_stages[1].is_enabled = False
        stages = fee_calculator.apply_template_defaults(simple_stages, simple_template)
        assert [s.is_enabled for s in stages] == [True, True, True]
        assert stages[2].fixed_price == 2000

    def test_unlisted_stages_disabled_and_zeroed(self, simple_template, simple_stages):
        tpl = simple_template.model_copy(update={"default_enabled_stages": ["st_a"], "default_fixed_costs": None})
        simple_stages[2].fixed_price = 900
        stages = fee_calculator.apply_template_defaults(simple_stages, tpl)
        assert [s.is_enabled for s in stages] == [True, False, False]
        assert stages[2].fixed_price == 0

    def test_no_defaults_leaves_stages(self, simple_template, simple_stages):
        tpl = simple_template.model_copy(update={"default_enabled_stages": None})
        simple_stages[2].fixed_price = 900
        stages = fee_calculator.apply_template_defaults(simple_stages, tpl)
        assert stages[2].fixed_price == 900


class TestRecompute:

    def test_functional_pipeline(self, calc):
        calc.set_element_value("el_base", 1)
        calc.set_element_value("el_bath", 2)
        result = calc.recompute()
        assert result.total_hours == pytest.approx(150)
        assert result.raw_hours == 150
        assert [s.allocated_hours for s in result.stages[:2]] == [60, 90]
        assert result.summary.internal_cost == 150 * 250
        assert {r.element_id for r in result.scope_breakdown} == {"el_base", "el_bath"}

    def test_element_value_clamped(self, calc):
        calc.set_element_value("el_bath", 12)
        assert calc.inputs.element_values["el_bath"] == 4

    def test_unknown_element_stored_as_is(self, calc):
        calc.set_element_value("el_other", 7)
        assert calc.inputs.element_values["el_other"] == 7

    def test_fee_pipeline(self, calc):
        calc.set_mode_fee(15000)
        result = calc.recompute()
        assert result.total_hours == pytest.approx(60)
        assert result.summary.total_hours == 60
        assert result.summary.internal_cost == 15000
        assert result.scope_breakdown == []

    def test_fee_gross_of_external(self, calc):
        calc.set_manual_price("ext_x", 3000)
        calc.set_mode_fee(18000, include_external=True)
        result = calc.recompute()
        assert result.summary.total_cost == pytest.approx(18000)

    def test_switch_back_to_functional(self, calc):
        calc.set_element_value("el_base", 1)
        calc.set_mode_fee(15000)
        calc.set_mode_functional()
        assert calc.recompute().total_hours == pytest.approx(120)

    def test_no_template_keeps_stages(self, architect_team, neutral_multipliers, simple_stages):
        calc = FeeCalculator(None, architect_team, neutral_multipliers, simple_stages)
        result = calc.recompute()
        assert result.total_hours == 0
        assert all(s.role_allocations == [] for s in result.stages)

    def test_recompute_tracked(self, calc):
        before = tracker.get_metrics()["calculations_processed"]
        calc.recompute()
        assert tracker.get_metrics()["calculations_processed"] == before + 1

    def test_manual_hours_replaced_when_stage_total_changes(self, calc):
        calc.set_mode_fee(15000)
        calc.recompute()
        calc.set_member_hours("st_a", "m1", 30)
        result = calc.recompute()
        # stage total changed, so the allocator replaces the manual value
        assert result.stages[0].allocated_hours == 24

    def test_toggle_excludes_cost(self, calc):
        calc.set_mode_fee(15000)
        calc.recompute()
        calc.toggle_stage("st_b")
        assert calc.summary().internal_cost == 24 * 250


class TestSelectTemplate:

    def test_resets_values_and_applies_defaults(self, calc, template_store, simple_stages):
        calc.set_element_value("el_base", 1)
        house = template_store.get_template("tpl_house_new")
        calc.stages = template_store.new_session_stages()
        calc.select_template(house)
        assert calc.inputs.element_values == {}
        assert calc.inputs.template_id == "tpl_house_new"
        assert calc.inputs.building_type_id == house.building_type_id
        enabled = {s.id for s in calc.stages if s.is_enabled}
        assert enabled == set(house.default_enabled_stages)


class TestCostEditConsistency:

    def test_fee_path_and_cost_edit_agree(self, simple_template, architect_team, neutral_multipliers, simple_stages):
        """Target fee F and an edit to F produce the same allocations when all default stages are enabled."""
        forward = FeeCalculator(simple_template, architect_team, neutral_multipliers, simple_stages)
        forward.set_mode_fee(15000, include_external=True)
        forward_result = forward.recompute()

        reverse = FeeCalculator(simple_template, architect_team, neutral_multipliers, simple_stages)
        reverse_result = reverse.edit_total_cost(15000)

        assert [s.allocated_hours for s in reverse_result.stages] == [s.allocated_hours for s in forward_result.stages]
        assert reverse_result.summary.total_cost == pytest.approx(forward_result.summary.total_cost)

    def test_edit_switches_to_fee_mode(self, calc):
        calc.edit_total_cost(20000)
        assert calc.inputs.calculation_mode == "fee"
        assert calc.inputs.target_fee == 20000
        assert calc.inputs.include_external_in_fee is True

    def test_edit_then_recompute_is_stable(self, calc):
        edited = calc.edit_total_cost(25000)
        again = calc.recompute()
        assert again.summary.total_cost == pytest.approx(edited.summary.total_cost)

    def test_edit_without_template(self, architect_team, neutral_multipliers, simple_stages):
        calc = FeeCalculator(None, architect_team, neutral_multipliers, simple_stages)
        result = calc.edit_total_cost(1000)
        assert result.total_hours == 0


class TestQuotesInSession:

    def test_quote_sets_external_cost(self, calc):
        calc.add_quote("ext_x", "GeoCorp", 2500, quote_id="q1")
        assert calc.summary().external_cost == 2500
        calc.set_manual_price("ext_x", 1000)
        assert calc.stages[2].selected_quote_id is None
        assert calc.summary().external_cost == 1000

    def test_delete_selected_quote_falls_back(self, calc):
        calc.add_quote("ext_x", "A", 1000, quote_id="qa")
        calc.add_quote("ext_x", "B", 1500, quote_id="qb")
        calc.delete_quote("ext_x", "qb")
        assert calc.stages[2].fixed_price == 1000
        calc.select_quote("ext_x", "qa")
        assert calc.stages[2].selected_quote_id == "qa"


class TestSnapshots:

    def test_default_name_with_template(self, calc):
        when = datetime(2024, 3, 9, tzinfo=timezone.utc)
        assert calc.default_name(when) == "Simple 2024-03-09"

    def test_default_name_without_template(self, architect_team, neutral_multipliers):
        calc = FeeCalculator(None, architect_team, neutral_multipliers, [])
        when = datetime(2024, 3, 9, tzinfo=timezone.utc)
        assert calc.default_name(when) == "Calculation 2024-03-09"

    def test_blank_name_uses_default(self, calc):
        snap = calc.snapshot(name="   ", user_id="u1")
        assert snap.name.startswith("Simple ")

    def test_snapshot_independent_of_later_edits(self, calc):
        calc.set_mode_fee(15000)
        calc.recompute()
        snap = calc.snapshot(name="Offer A", user_id="u1")
        calc.set_member_hours("st_a", "m1", 999)
        calc.team[0].rate = 1
        calc.template.stage_weights["st_a"] = 0.9
        assert snap.stages[0].allocated_hours == 24
        assert snap.team[0].rate == 250
        assert snap.templates[0].stage_weights["st_a"] == 0.4
        assert snap.total_cost == 15000

    def test_json_round_trip(self, calc):
        calc.set_element_value("el_roof", "pitched")
        calc.add_quote("ext_x", "GeoCorp", 2500, quote_id="q1")
        calc.recompute()
        snap = calc.snapshot(name="Offer", user_id="u1", project_id="p1")
        restored = SavedCalculation.model_validate_json(snap.model_dump_json())
        assert restored == snap


class TestFromSnapshot:

    def test_variant_title_and_project(self, calc):
        calc.set_mode_fee(15000)
        calc.recompute()
        snap = calc.snapshot(name="Offer A", user_id="u1", project_id="p1")
        variant = FeeCalculator.from_snapshot(snap)
        assert variant.title == "Offer A (copy)"
        assert variant.project_id == "p1"
        assert [s.allocated_hours for s in variant.stages] == [s.allocated_hours for s in snap.stages]

    def test_embedded_template_used(self, calc):
        snap = calc.snapshot(name="Offer", user_id="u1")
        snap.templates[0].stage_weights["st_a"] = 0.5
        variant = FeeCalculator.from_snapshot(snap)
        assert variant.template.stage_weights["st_a"] == 0.5

    def test_missing_template_tolerated(self, calc):
        snap = calc.snapshot(name="Offer", user_id="u1", templates=[])
        variant = FeeCalculator.from_snapshot(snap)
        assert variant.template is None
        assert variant.recompute().total_hours == 0

    def test_multipliers_merged_over_defaults(self, architect_team, simple_stages):
        snap = SavedCalculation.model_validate({
            "user_id": "u1",
            "name": "Old",
            "inputs": {"template_id": ""},
            "team": [m.model_dump() for m in architect_team],
            "multipliers": {"express": 1.5},
        })
        variant = FeeCalculator.from_snapshot(snap)
        assert variant.multipliers.express == 1.5
        assert variant.multipliers.scale is not None
        assert variant.multipliers.scale.enabled is True

    def test_team_changes_do_not_leak(self, calc):
        snap = calc.snapshot(name="Offer", user_id="u1")
        variant = FeeCalculator.from_snapshot(snap)
        variant.set_team([TeamMember(id="z", role="Architect", rate=10)])
        assert snap.team[0].id == "m1"

    def test_neutral_multipliers_preserved(self, calc):
        snap = SavedCalculation.model_validate_json(calc.snapshot(user_id="u1").model_dump_json())
        variant = FeeCalculator.from_snapshot(snap)
        assert variant.multipliers == GlobalMultipliers.model_validate(snap.multipliers.model_dump())
