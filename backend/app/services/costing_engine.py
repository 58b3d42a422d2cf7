"""
Cost Aggregator — priced summary of the enabled stages.

Internal stages cost Σ allocated hours × member rate; external stages cost
their fixed price. Disabled stages contribute nothing, and allocations naming a
member who is no longer on the team count as 0 hours and 0 cost.

Also home to the display time units (hours / days / weeks). Stored hours are
always RBH; units only scale what goes in and out.
"""
from typing import Dict, List, Optional

from app import config
from app.models.fee_schema import CostSummary, Stage, StageCostLine, StageKind, TeamMember


# ---------------------------------------------------------------------------
# Time units
# ---------------------------------------------------------------------------

def hours_per_unit(unit: str) -> int:
    """RBH in one ``unit``: h=1, d=8, w=40."""
    try:
        return config.TIME_UNIT_HOURS[unit]
    except KeyError:
        raise ValueError(f"Unknown time unit '{unit}' (expected one of {sorted(config.TIME_UNIT_HOURS)})") from None


def hours_to_unit(hours: float, unit: str) -> float:
    return hours / hours_per_unit(unit)


def rate_per_unit(rate: float, unit: str) -> float:
    """Hourly rate expressed per day / week."""
    return rate * hours_per_unit(unit)


# ---------------------------------------------------------------------------
# CostingEngine
# ---------------------------------------------------------------------------

class CostingEngine:
    """
    Pure cost aggregation over a stage list.

    Nothing is cached; every call recomputes from the stages it is given.
    """

    def _members(self, team: List[TeamMember]) -> Dict[str, TeamMember]:
        return {m.id: m for m in team}

    def aggregate_cost(self, stages: List[Stage], team: List[TeamMember], area: float = 0.0) -> CostSummary:
        """
        Summary over enabled stages.

        avg_rate is internal cost per internal hour; cost_per_area is total cost
        per unit of floor area. Both are 0 when their denominator is 0.
        """
        members = self._members(team)
        total_hours = 0.0
        internal_cost = 0.0
        external_cost = 0.0

        for stage in stages:
            if not stage.is_enabled:
                continue
            if stage.kind == StageKind.INTERNAL_RBH:
                for alloc in stage.role_allocations:
                    member = members.get(alloc.member_id)
                    if member is None:
                        continue
                    total_hours += alloc.hours
                    internal_cost += alloc.hours * member.rate
            else:
                external_cost += stage.fixed_price or 0.0

        total_cost = internal_cost + external_cost
        return CostSummary(
            total_hours=total_hours,
            total_cost=total_cost,
            internal_cost=internal_cost,
            external_cost=external_cost,
            avg_rate=internal_cost / total_hours if total_hours > 0 else 0.0,
            cost_per_area=total_cost / area if area and area > 0 else 0.0,
        )

    def stage_cost_lines(self, stages: List[Stage], team: List[TeamMember]) -> List[StageCostLine]:
        """
        Itemised breakdown of the enabled stages.

        One line per team member with hours on an internal stage, one line per
        priced external stage (carrying the selected quote's name, if any).
        """
        members = self._members(team)
        lines: List[StageCostLine] = []
        for stage in stages:
            if not stage.is_enabled:
                continue
            if stage.kind == StageKind.INTERNAL_RBH:
                for alloc in stage.role_allocations:
                    member = members.get(alloc.member_id)
                    if member is None or alloc.hours <= 0:
                        continue
                    lines.append(StageCostLine(
                        stage_id=stage.id,
                        stage_name=stage.name,
                        kind=stage.kind,
                        member_id=member.id,
                        role=member.role,
                        rate=member.rate,
                        hours=alloc.hours,
                        cost=alloc.hours * member.rate,
                    ))
            elif (stage.fixed_price or 0.0) > 0:
                lines.append(StageCostLine(
                    stage_id=stage.id,
                    stage_name=stage.name,
                    kind=stage.kind,
                    cost=stage.fixed_price,
                    quote_name=self._selected_quote_name(stage),
                ))
        return lines

    @staticmethod
    def _selected_quote_name(stage: Stage) -> Optional[str]:
        for quote in stage.external_quotes:
            if quote.id == stage.selected_quote_id:
                return quote.name
        return None
