"""
labor_engine.py — Fee/Hours Converter

Covers:
  - Average hourly rate per role and the role-weighted rate sum of a template
  - Enabled external fixed costs and the internal fee budget
  - Forward conversion: target fee -> total RBH (template default stages)
  - Reverse conversion: edited total cost -> total RBH -> stage allocations
    (currently enabled internal stages)

The two directions use different stage-weight sums: the forward
path sizes the project from the template's default stage set, the reverse path
from whatever stages the operator has enabled right now.

Degenerate inputs (no rates, no weights, no fee) resolve to 0 hours and never
raise.
"""
import logging
from typing import List, Optional

from app.models.fee_schema import CalculationTemplate, Stage, StageKind, TeamMember
from app.services.allocation_engine import StageAllocator

logger = logging.getLogger("archfee-labor")


# ---------------------------------------------------------------------------
# LaborEngine
# ---------------------------------------------------------------------------

class LaborEngine:
    """
    Converts between fees and labor hours.

    All monetary values share the team's rate currency.
    """

    # -----------------------------------------------------------------------
    # 1. Rates
    # -----------------------------------------------------------------------

    def average_role_rate(self, team: List[TeamMember], role: str) -> float:
        """Mean hourly rate of members holding ``role``; 0 when nobody does."""
        rates = [m.rate for m in team if m.role == role]
        if not rates:
            return 0.0
        return sum(rates) / len(rates)

    def weighted_role_rate_sum(self, template: CalculationTemplate, team: List[TeamMember]) -> float:
        """
        Σ average_role_rate(role) × fraction over the template's role distribution.

        Roles with no matching team member contribute 0.
        """
        total = 0.0
        for role, fraction in template.role_distribution.items():
            if any(m.role == role for m in team):
                total += self.average_role_rate(team, role) * fraction
        return total

    # -----------------------------------------------------------------------
    # 2. Budget
    # -----------------------------------------------------------------------

    def external_cost_sum(self, stages: List[Stage]) -> float:
        return sum(
            s.fixed_price or 0.0
            for s in stages
            if s.is_enabled and s.kind == StageKind.EXTERNAL_FIXED
        )

    def internal_budget(self, fee: float, stages: List[Stage], include_external: bool) -> float:
        """Part of ``fee`` available for internal labor."""
        if include_external:
            return max(0.0, fee - self.external_cost_sum(stages))
        return fee

    # -----------------------------------------------------------------------
    # 3. Stage weight sums
    # -----------------------------------------------------------------------

    def default_stage_weight_sum(self, template: CalculationTemplate) -> float:
        # An explicitly empty default list is respected and sums to 0
        if template.default_enabled_stages is not None:
            stage_ids = template.default_enabled_stages
        else:
            stage_ids = list(template.stage_weights.keys())
        return sum(template.stage_weights.get(sid, 0.0) for sid in stage_ids)

    def enabled_stage_weight_sum(self, template: CalculationTemplate, stages: List[Stage]) -> float:
        return sum(
            template.stage_weights.get(s.id, 0.0)
            for s in stages
            if s.is_enabled and s.kind == StageKind.INTERNAL_RBH
        )

    # -----------------------------------------------------------------------
    # 4. Forward: fee -> hours
    # -----------------------------------------------------------------------

    def convert_fee_to_hours(
        self,
        template: CalculationTemplate,
        team: List[TeamMember],
        stages: List[Stage],
        target_fee: Optional[float],
        include_external: bool = False,
    ) -> float:
        """
        Total RBH implied by a target fee.

        Formula: internal_budget / (default_stage_weight_sum × weighted_role_rate_sum)
        """
        if not target_fee or target_fee <= 0:
            return 0.0

        budget = self.internal_budget(target_fee, stages, include_external)

        rate_sum = self.weighted_role_rate_sum(template, team)
        if rate_sum == 0:
            logger.debug("Fee conversion skipped for %s: no matching role rates", template.id)
            return 0.0

        weight_sum = self.default_stage_weight_sum(template)
        if weight_sum == 0:
            logger.debug("Fee conversion skipped for %s: default stage weights sum to 0", template.id)
            return 0.0

        return budget / (weight_sum * rate_sum)

    # -----------------------------------------------------------------------
    # 5. Reverse: edited total cost -> hours -> allocations
    # -----------------------------------------------------------------------

    def hours_for_cost_edit(
        self,
        template: CalculationTemplate,
        team: List[TeamMember],
        stages: List[Stage],
        edited_total_cost: float,
        include_external: bool = True,
    ) -> float:
        """
        Total RBH that makes the enabled internal stages cost ``edited_total_cost``
        (net of enabled external costs when ``include_external``). 0 if degenerate.
        """
        budget = self.internal_budget(edited_total_cost, stages, include_external)
        rate_sum = self.weighted_role_rate_sum(template, team)
        weight_sum = self.enabled_stage_weight_sum(template, stages)
        if rate_sum == 0 or weight_sum == 0:
            return 0.0
        return budget / (weight_sum * rate_sum)

    def convert_cost_edit_to_allocations(
        self,
        template: CalculationTemplate,
        team: List[TeamMember],
        stages: List[Stage],
        edited_total_cost: float,
        include_external: bool = True,
    ) -> List[Stage]:
        """
        Reallocate every enabled internal stage so the total matches the edited cost.

        Disabled and external stages come back untouched. When the conversion is
        degenerate (no rates or no enabled weights) all stages come back unchanged.
        """
        rate_sum = self.weighted_role_rate_sum(template, team)
        weight_sum = self.enabled_stage_weight_sum(template, stages)
        if rate_sum == 0 or weight_sum == 0:
            logger.warning(
                "Cost edit ignored for %s: rate_sum=%.2f weight_sum=%.4f",
                template.id, rate_sum, weight_sum,
            )
            return [s.model_copy(deep=True) for s in stages]

        total_hours = self.hours_for_cost_edit(template, team, stages, edited_total_cost, include_external)
        return StageAllocator().allocate_stages(
            total_hours, template, team, stages, only_enabled=True, skip_unchanged=False,
        )
