"""
Fee calculator — one calculation session, end to end.

Pipeline:
    scope (functional mode)  ─┐
                              ├─> total RBH ─> stage allocation ─> cost summary
    target fee (fee mode)    ─┘

Nothing recomputes implicitly. The caller owns a FeeCalculator, mutates it
through its methods and calls ``recompute()`` whenever it wants fresh numbers.
Mutators that would change the numbers (element values, mode, template, team)
leave stale allocations in place until the next recompute.

Module-level functions expose the core pipeline steps for callers that manage
their own state (the HTTP layer does this for stateless requests).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from app import config
from app.models.fee_schema import (
    CalculationResult,
    CalculationTemplate,
    CostSummary,
    FeeMode,
    FunctionalMode,
    GlobalMultipliers,
    ProjectInputs,
    SavedCalculation,
    Stage,
    StageKind,
    TeamMember,
)
from app.services import config_defaults, quote_engine
from app.services.allocation_engine import StageAllocator
from app.services.costing_engine import CostingEngine
from app.services.labor_engine import LaborEngine
from app.services.perf_monitor import timed
from app.services.scope_engine import ScopeEngine

logger = logging.getLogger("archfee-calculator")

_scope = ScopeEngine()
_labor = LaborEngine()
_allocator = StageAllocator()
_costing = CostingEngine()


# ---------------------------------------------------------------------------
# Core pipeline steps
# ---------------------------------------------------------------------------

def compute_scope_hours(
    template: CalculationTemplate,
    element_values: Dict[str, Any],
    multipliers: GlobalMultipliers,
    area: float = 0.0,
    complexity: str = config.DEFAULT_COMPLEXITY,
    lod: str = config.DEFAULT_LOD,
    is_express: bool = False,
) -> float:
    return _scope.compute_scope_hours(template, element_values, multipliers, area, complexity, lod, is_express)


def convert_fee_to_hours(
    template: CalculationTemplate,
    team: List[TeamMember],
    stages: List[Stage],
    target_fee: Optional[float],
    include_external: bool = False,
) -> float:
    return _labor.convert_fee_to_hours(template, team, stages, target_fee, include_external)


def convert_cost_edit_to_allocations(
    template: CalculationTemplate,
    team: List[TeamMember],
    stages: List[Stage],
    edited_total_cost: float,
    include_external: bool = True,
) -> List[Stage]:
    return _labor.convert_cost_edit_to_allocations(template, team, stages, edited_total_cost, include_external)


def allocate_stages(
    total_hours: float,
    template: CalculationTemplate,
    team: List[TeamMember],
    stages: List[Stage],
    skip_unchanged: bool = True,
) -> List[Stage]:
    return _allocator.allocate_stages(total_hours, template, team, stages, skip_unchanged=skip_unchanged)


def aggregate_cost(stages: List[Stage], team: List[TeamMember], area: float = 0.0) -> CostSummary:
    return _costing.aggregate_cost(stages, team, area)


def resolve_total_hours(
    mode: Union[FunctionalMode, FeeMode],
    template: Optional[CalculationTemplate],
    team: List[TeamMember],
    stages: List[Stage],
    multipliers: GlobalMultipliers,
    inputs: ProjectInputs,
) -> float:
    """Total RBH for either calculation mode; 0 when no template is selected."""
    if template is None:
        return 0.0
    if isinstance(mode, FeeMode):
        return _labor.convert_fee_to_hours(template, team, stages, mode.target_fee, mode.include_external)
    return _scope.compute_scope_hours(
        template,
        mode.element_values,
        multipliers,
        inputs.area,
        inputs.complexity,
        inputs.lod,
        inputs.is_express,
    )


def apply_template_defaults(stages: List[Stage], template: CalculationTemplate) -> List[Stage]:
    """
    Stage enablement and external prices preset by a template.

    Templates without ``default_enabled_stages`` leave the stages as they are.
    Otherwise every stage listed is enabled, every other stage disabled, and
    external prices come from ``default_fixed_costs`` (unlisted stages get 0).
    """
    if template.default_enabled_stages is None:
        return [s.model_copy(deep=True) for s in stages]
    enabled = set(template.default_enabled_stages)
    fixed_costs = template.default_fixed_costs or {}
    result: List[Stage] = []
    for stage in stages:
        updates: Dict[str, Any] = {"is_enabled": stage.id in enabled}
        if stage.kind == StageKind.EXTERNAL_FIXED:
            updates["fixed_price"] = fixed_costs.get(stage.id, 0.0)
        result.append(stage.model_copy(deep=True, update=updates))
    return result


def merge_multipliers(saved: GlobalMultipliers) -> GlobalMultipliers:
    """Saved multipliers layered over the current defaults (older snapshots may lack keys)."""
    merged = config_defaults.DEFAULT_MULTIPLIERS.model_dump()
    merged.update(saved.model_dump(exclude_unset=True))
    return GlobalMultipliers.model_validate(merged)


# ---------------------------------------------------------------------------
# FeeCalculator
# ---------------------------------------------------------------------------

class FeeCalculator:
    """
    Caller-owned calculation session.

    Holds the five inputs of the pipeline (template, team, multipliers, stages,
    project inputs) plus the session's title and project grouping. All state is
    private to the instance; nothing is shared with the configuration store.
    """

    def __init__(
        self,
        template: Optional[CalculationTemplate],
        team: List[TeamMember],
        multipliers: GlobalMultipliers,
        stages: List[Stage],
        inputs: Optional[ProjectInputs] = None,
        title: str = "",
        project_id: Optional[str] = None,
    ) -> None:
        self.template = template.model_copy(deep=True) if template is not None else None
        self.team = [m.model_copy() for m in team]
        self.multipliers = multipliers.model_copy(deep=True)
        self.stages = [s.model_copy(deep=True) for s in stages]
        self.inputs = inputs.model_copy(deep=True) if inputs is not None else ProjectInputs()
        self.title = title
        self.project_id = project_id
        if self.template is not None and not self.inputs.template_id:
            self.inputs.template_id = self.template.id

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def total_hours(self) -> float:
        return resolve_total_hours(
            self.inputs.mode_spec(), self.template, self.team, self.stages, self.multipliers, self.inputs,
        )

    def summary(self) -> CostSummary:
        return _costing.aggregate_cost(self.stages, self.team, self.inputs.area)

    def _result(self, total_hours: float) -> CalculationResult:
        breakdown = []
        raw = 0.0
        if self.template is not None and self.inputs.calculation_mode == "functional":
            breakdown = _scope.element_breakdown(self.template, self.inputs.element_values)
            raw = _scope.raw_hours(self.template, self.inputs.element_values)
        return CalculationResult(
            total_hours=total_hours,
            raw_hours=raw,
            stages=[s.model_copy(deep=True) for s in self.stages],
            summary=self.summary(),
            scope_breakdown=breakdown,
        )

    @timed(calculation=True)
    def recompute(self) -> CalculationResult:
        """Resolve total hours, reallocate internal stages and price the result."""
        total = self.total_hours()
        if self.template is not None:
            self.stages = _allocator.allocate_stages(total, self.template, self.team, self.stages)
        return self._result(total)

    # ------------------------------------------------------------------
    # Scope & mode
    # ------------------------------------------------------------------

    def set_element_value(self, element_id: str, value: Any) -> None:
        """Set an element value, clamped to the element's bounds when the element is known."""
        element = self._find_element(element_id)
        if element is not None:
            value = _scope.clamp_count(element, value)
        self.inputs.element_values[element_id] = value

    def _find_element(self, element_id: str):
        if self.template is None:
            return None
        for group in self.template.groups:
            for element in group.elements:
                if element.id == element_id:
                    return element
        return None

    def set_mode_functional(self) -> None:
        self.inputs.calculation_mode = "functional"

    def set_mode_fee(self, target_fee: Optional[float], include_external: bool = False) -> None:
        self.inputs.calculation_mode = "fee"
        self.inputs.target_fee = target_fee
        self.inputs.include_external_in_fee = include_external

    def select_template(self, template: CalculationTemplate) -> None:
        """Switch template: element values reset and stage defaults reapplied."""
        self.template = template.model_copy(deep=True)
        self.inputs.template_id = template.id
        self.inputs.building_type_id = template.building_type_id
        self.inputs.action_type_id = template.action_type_id
        self.inputs.element_values = {}
        self.stages = apply_template_defaults(self.stages, self.template)

    def set_team(self, team: List[TeamMember]) -> None:
        self.team = [m.model_copy() for m in team]

    def set_multipliers(self, multipliers: GlobalMultipliers) -> None:
        self.multipliers = multipliers.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def toggle_stage(self, stage_id: str) -> None:
        self.stages = _allocator.toggle_stage(self.stages, stage_id)

    def set_member_hours(self, stage_id: str, member_id: str, value: float, unit: str = "h") -> None:
        self.stages = _allocator.set_member_hours(self.stages, stage_id, member_id, value, unit)

    def _update_stage(self, stage_id: str, operation, *args) -> None:
        self.stages = [operation(s, *args) if s.id == stage_id else s for s in self.stages]

    def add_quote(self, stage_id: str, name: str, price: float, quote_id: Optional[str] = None) -> None:
        self._update_stage(stage_id, quote_engine.add_quote, name, price, quote_id)

    def select_quote(self, stage_id: str, quote_id: str) -> None:
        self._update_stage(stage_id, quote_engine.select_quote, quote_id)

    def delete_quote(self, stage_id: str, quote_id: str) -> None:
        self._update_stage(stage_id, quote_engine.delete_quote, quote_id)

    def set_manual_price(self, stage_id: str, price: float) -> None:
        self._update_stage(stage_id, quote_engine.set_manual_price, price)

    # ------------------------------------------------------------------
    # Reverse path
    # ------------------------------------------------------------------

    def edit_total_cost(self, amount: float) -> CalculationResult:
        """
        Treat ``amount`` as the new gross total.

        Inputs switch to fee mode with external costs included; enabled
        internal stages are reallocated so the internal part matches.
        """
        self.set_mode_fee(amount, include_external=True)
        if self.template is None:
            return self._result(0.0)
        self.stages = _labor.convert_cost_edit_to_allocations(self.template, self.team, self.stages, amount)
        total = _labor.hours_for_cost_edit(self.template, self.team, self.stages, amount)
        return self._result(total)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def default_name(self, when: Optional[datetime] = None) -> str:
        when = when or datetime.now(timezone.utc)
        base = self.template.name if self.template is not None and self.template.name else "Calculation"
        return f"{base} {when.date().isoformat()}"

    def snapshot(
        self,
        name: str = "",
        user_id: str = "",
        project_id: Optional[str] = None,
        templates: Optional[List[CalculationTemplate]] = None,
    ) -> SavedCalculation:
        """
        Self-contained copy of the session.

        ``templates`` defaults to the session's own template. Every nested
        object is deep-copied, so later edits to the session or to global
        configuration never reach the snapshot.
        """
        now = datetime.now(timezone.utc)
        if templates is None:
            templates = [self.template] if self.template is not None else []
        snap = SavedCalculation(
            user_id=user_id,
            project_id=project_id if project_id is not None else self.project_id,
            date=now,
            name=(name or self.title or "").strip() or self.default_name(now),
            inputs=self.inputs.model_copy(deep=True),
            stages=[s.model_copy(deep=True) for s in self.stages],
            team=[m.model_copy() for m in self.team],
            templates=[t.model_copy(deep=True) for t in templates],
            multipliers=self.multipliers.model_copy(deep=True),
            total_cost=self.summary().total_cost,
        )
        logger.info("Snapshot taken: %s", snap.name, extra={"user_id": user_id})
        return snap

    @classmethod
    def from_snapshot(cls, saved: SavedCalculation) -> "FeeCalculator":
        """
        New variant seeded from a saved calculation.

        The template is taken from the snapshot's own embedded copy, never from
        live configuration. The variant keeps the project grouping and gets a
        " (copy)" title suffix.
        """
        template = next((t for t in saved.templates if t.id == saved.inputs.template_id), None)
        if template is None and saved.inputs.template_id:
            logger.warning("Snapshot %s does not embed template %s", saved.id, saved.inputs.template_id)
        return cls(
            template=template,
            team=saved.team,
            multipliers=merge_multipliers(saved.multipliers),
            stages=saved.stages,
            inputs=saved.inputs,
            title=f"{saved.name}{config.COPY_SUFFIX}",
            project_id=saved.project_id,
        )
