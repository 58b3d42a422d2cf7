"""
Stage Allocator — splits total RBH across internal stages and team members.

    stage_hours  = total_hours × stage_weights[stage.id]
    member_hours = round(stage_hours × role_distribution[member.role] / peers)

where ``peers`` is the number of team members sharing the member's role.
Hours are stored as whole numbers; rounding is half-up on the non-negative
values the allocator produces.

External stages are never touched here. Disabled internal stages still get
their allocations recomputed so re-enabling one restores sensible hours.
"""
import logging
import math
from typing import List

from app import config
from app.models.fee_schema import CalculationTemplate, RoleAllocation, Stage, StageKind, TeamMember
from app.services.costing_engine import hours_per_unit

logger = logging.getLogger("archfee-allocation")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class StageAllocator:

    def member_hours(
        self,
        stage_hours: float,
        member: TeamMember,
        template: CalculationTemplate,
        team: List[TeamMember],
    ) -> int:
        role_pct = template.role_distribution.get(member.role, 0.0)
        peers = sum(1 for m in team if m.role == member.role)
        if peers == 0 or role_pct <= 0:
            return 0
        return round_half_up(stage_hours * role_pct / peers)

    def allocate_stage(
        self,
        stage: Stage,
        total_hours: float,
        template: CalculationTemplate,
        team: List[TeamMember],
    ) -> List[RoleAllocation]:
        """One allocation row per team member, in team order."""
        stage_hours = total_hours * template.stage_weights.get(stage.id, 0.0)
        return [
            RoleAllocation(member_id=m.id, hours=self.member_hours(stage_hours, m, template, team))
            for m in team
        ]

    def allocate_stages(
        self,
        total_hours: float,
        template: CalculationTemplate,
        team: List[TeamMember],
        stages: List[Stage],
        *,
        only_enabled: bool = False,
        skip_unchanged: bool = True,
    ) -> List[Stage]:
        """
        Fresh allocations for internal stages; returns new Stage objects.

        ``only_enabled`` restricts reallocation to enabled stages (reverse cost
        edit). With ``skip_unchanged`` a stage that already carries non-zero
        hours summing to within ALLOCATION_EPSILON of the new sum is kept as is,
        which preserves manual per-member edits that keep the stage total.
        """
        result: List[Stage] = []
        for stage in stages:
            if stage.kind != StageKind.INTERNAL_RBH or (only_enabled and not stage.is_enabled):
                result.append(stage.model_copy(deep=True))
                continue

            allocations = self.allocate_stage(stage, total_hours, template, team)

            if skip_unchanged:
                has_hours = any(a.hours > 0 for a in stage.role_allocations)
                current_sum = sum(a.hours for a in stage.role_allocations)
                new_sum = sum(a.hours for a in allocations)
                if has_hours and abs(current_sum - new_sum) <= config.ALLOCATION_EPSILON:
                    result.append(stage.model_copy(deep=True))
                    continue

            result.append(stage.model_copy(deep=True, update={"role_allocations": allocations}))
        return result

    # -----------------------------------------------------------------------
    # Manual edits
    # -----------------------------------------------------------------------

    def set_member_hours(
        self,
        stages: List[Stage],
        stage_id: str,
        member_id: str,
        value: float,
        unit: str = "h",
    ) -> List[Stage]:
        """
        Manual per-member override on one stage.

        ``value`` is expressed in ``unit`` (h/d/w) and stored as whole hours.
        An allocation row is added when the member has none on that stage.
        """
        hours = max(0, round_half_up(float(value) * hours_per_unit(unit)))
        result: List[Stage] = []
        for stage in stages:
            stage = stage.model_copy(deep=True)
            if stage.id == stage_id:
                for alloc in stage.role_allocations:
                    if alloc.member_id == member_id:
                        alloc.hours = hours
                        break
                else:
                    stage.role_allocations.append(RoleAllocation(member_id=member_id, hours=hours))
                logger.debug("Manual hours on %s for member %s: %d", stage_id, member_id, hours)
            result.append(stage)
        return result

    def toggle_stage(self, stages: List[Stage], stage_id: str) -> List[Stage]:
        """Flip a stage's enablement; its allocations and price are retained."""
        return [
            s.model_copy(deep=True, update={"is_enabled": not s.is_enabled}) if s.id == stage_id
            else s.model_copy(deep=True)
            for s in stages
        ]
