"""
test_costing_engine.py — Unit tests for CostingEngine and the time-unit helpers.

Tests cover:
  - aggregate_cost: enabled stages only, internal vs external split, repeatability
  - allocations for members no longer on the team
  - avg_rate and cost_per_area, including zero denominators
  - stage_cost_lines: per-member internal lines, priced external lines
  - hours_per_unit / hours_to_unit / rate_per_unit
"""

import pytest

from app.models.fee_schema import ExternalQuote, RoleAllocation, Stage, StageKind
from app.services.costing_engine import hours_per_unit, hours_to_unit, rate_per_unit


def _internal(stage_id, allocations, enabled=True):
    return Stage(
        id=stage_id, name=stage_id.upper(), kind=StageKind.INTERNAL_RBH, is_enabled=enabled,
        role_allocations=[RoleAllocation(member_id=m, hours=h) for m, h in allocations],
    )


def _external(stage_id, price, enabled=True):
    return Stage(id=stage_id, name=stage_id.upper(), kind=StageKind.EXTERNAL_FIXED,
                 is_enabled=enabled, fixed_price=price)


class TestAggregateCost:

    def test_reference_scenario(self, costing_engine, architect_team):
        """24 + 36 RBH at 250 plus a 2000 external stage."""
        stages = [_internal("a", [("m1", 24)]), _internal("b", [("m1", 36)]), _external("x", 2000)]
        summary = costing_engine.aggregate_cost(stages, architect_team, area=100)
        assert summary.total_hours == 60
        assert summary.internal_cost == 15000
        assert summary.external_cost == 2000
        assert summary.total_cost == 17000
        assert summary.avg_rate == 250
        assert summary.cost_per_area == 170

    def test_disabled_stages_ignored(self, costing_engine, architect_team):
        stages = [_internal("a", [("m1", 10)]), _internal("b", [("m1", 50)], enabled=False),
                  _external("x", 999, enabled=False)]
        summary = costing_engine.aggregate_cost(stages, architect_team)
        assert summary.total_hours == 10
        assert summary.total_cost == 2500

    def test_unknown_member_counts_as_zero(self, costing_engine, architect_team):
        stages = [_internal("a", [("m1", 10), ("gone", 40)])]
        summary = costing_engine.aggregate_cost(stages, architect_team)
        assert summary.total_hours == 10
        assert summary.internal_cost == 2500

    def test_mixed_rates(self, costing_engine, mixed_team):
        stages = [_internal("a", [("a1", 10), ("a2", 10), ("s1", 20)])]
        summary = costing_engine.aggregate_cost(stages, mixed_team)
        assert summary.internal_cost == 2000 + 3000 + 2000
        assert summary.avg_rate == pytest.approx(7000 / 40)

    def test_zero_hours_and_area(self, costing_engine, architect_team):
        summary = costing_engine.aggregate_cost([_external("x", 500)], architect_team, area=0)
        assert summary.avg_rate == 0
        assert summary.cost_per_area == 0
        assert summary.total_cost == 500

    def test_repeated_calls_identical(self, costing_engine, mixed_team):
        stages = [_internal("a", [("a1", 13), ("a2", 7), ("s1", 21)]), _external("x", 1234.5)]
        first = costing_engine.aggregate_cost(stages, mixed_team, area=87)
        second = costing_engine.aggregate_cost(stages, mixed_team, area=87)
        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_empty(self, costing_engine, architect_team):
        summary = costing_engine.aggregate_cost([], architect_team)
        assert summary.model_dump() == {
            "total_hours": 0, "total_cost": 0, "internal_cost": 0,
            "external_cost": 0, "avg_rate": 0, "cost_per_area": 0,
        }


class TestStageCostLines:

    def test_internal_lines_per_member(self, costing_engine, mixed_team):
        stages = [_internal("a", [("a1", 10), ("a2", 0), ("s1", 5)])]
        lines = costing_engine.stage_cost_lines(stages, mixed_team)
        assert [(l.member_id, l.cost) for l in lines] == [("a1", 2000), ("s1", 500)]
        assert lines[1].role == "Assistant"

    def test_external_lines_only_when_priced(self, costing_engine, architect_team):
        lines = costing_engine.stage_cost_lines([_external("x", 0), _external("y", 750)], architect_team)
        assert [l.stage_id for l in lines] == ["y"]
        assert lines[0].quote_name is None

    def test_external_line_carries_selected_quote(self, costing_engine, architect_team):
        stage = _external("x", 1200)
        stage.external_quotes = [ExternalQuote(id="q1", name="GeoCorp", price=1200)]
        stage.selected_quote_id = "q1"
        lines = costing_engine.stage_cost_lines([stage], architect_team)
        assert lines[0].quote_name == "GeoCorp"

    def test_lines_sum_to_total(self, costing_engine, mixed_team):
        stages = [_internal("a", [("a1", 3), ("s1", 7)]), _external("x", 450), _internal("b", [("a2", 9)])]
        lines = costing_engine.stage_cost_lines(stages, mixed_team)
        assert sum(l.cost for l in lines) == costing_engine.aggregate_cost(stages, mixed_team).total_cost


class TestTimeUnits:

    @pytest.mark.parametrize("unit,hours", [("h", 1), ("d", 8), ("w", 40)])
    def test_hours_per_unit(self, unit, hours):
        assert hours_per_unit(unit) == hours

    def test_hours_to_days(self):
        assert hours_to_unit(20, "d") == 2.5

    def test_rate_per_week(self):
        assert rate_per_unit(250, "w") == 10000

    def test_unknown_unit(self):
        with pytest.raises(ValueError, match="Unknown time unit"):
            hours_per_unit("y")
