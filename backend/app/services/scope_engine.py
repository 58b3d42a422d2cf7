"""
Scope Aggregator — functional scope to multiplied labor hours (RBH).

Walks every functional element of a template, reads the operator's value for
it and sums the element contributions into raw hours, then applies the global
multipliers:

    hours = raw × complexity × lod × (express | 1) × scale

    scale = (base_area / area) ** exponent   when scale is enabled and area > 0
          = 1                                 otherwise

Public API:
    engine = ScopeEngine()
    hours  = engine.compute_scope_hours(template, element_values, multipliers, area=150)
"""
import logging
from typing import Any, Dict, List, Optional

from app import config
from app.models.fee_schema import (
    CalculationTemplate,
    ElementContribution,
    FunctionalElement,
    GlobalMultipliers,
    InputKind,
)

logger = logging.getLogger("archfee-scope")


def _numeric(value: Any) -> float:
    """Numeric element value; anything that is not a number counts as 0."""
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


class ScopeEngine:
    """Stateless scope-to-hours calculator."""

    # -----------------------------------------------------------------------
    # Raw hours
    # -----------------------------------------------------------------------

    def element_hours(self, element: FunctionalElement, value: Any) -> float:
        if element.input_kind == InputKind.SELECT:
            if not isinstance(value, str):
                return 0.0
            for option in element.options:
                if option.id == value:
                    return float(option.hours)
            return 0.0
        return _numeric(value) * element.base_hours

    def element_breakdown(
        self, template: CalculationTemplate, element_values: Dict[str, Any]
    ) -> List[ElementContribution]:
        """Per-element contribution to raw hours, for elements that contribute anything."""
        rows: List[ElementContribution] = []
        for group in template.groups:
            for element in group.elements:
                hours = self.element_hours(element, element_values.get(element.id))
                if hours:
                    rows.append(ElementContribution(group_id=group.id, element_id=element.id, hours=hours))
        return rows

    def raw_hours(self, template: CalculationTemplate, element_values: Dict[str, Any]) -> float:
        return sum(
            self.element_hours(element, element_values.get(element.id))
            for group in template.groups
            for element in group.elements
        )

    # -----------------------------------------------------------------------
    # Multipliers
    # -----------------------------------------------------------------------

    def scale_factor(self, multipliers: GlobalMultipliers, area: float) -> float:
        scale = multipliers.scale
        if scale is None or not scale.enabled or not area or area <= 0:
            return 1.0
        if scale.base_area <= 0:
            return 0.0
        return (scale.base_area / area) ** scale.exponent

    def multiplier_factor(
        self,
        multipliers: GlobalMultipliers,
        complexity: str = config.DEFAULT_COMPLEXITY,
        lod: str = config.DEFAULT_LOD,
        is_express: bool = False,
        area: float = 0.0,
    ) -> float:
        comp = getattr(multipliers.complexity, complexity, 1.0)
        detail = getattr(multipliers.lod, lod, 1.0)
        express = multipliers.express if is_express else 1.0
        return comp * detail * express * self.scale_factor(multipliers, area)

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    def compute_scope_hours(
        self,
        template: CalculationTemplate,
        element_values: Dict[str, Any],
        multipliers: GlobalMultipliers,
        area: float = 0.0,
        complexity: str = config.DEFAULT_COMPLEXITY,
        lod: str = config.DEFAULT_LOD,
        is_express: bool = False,
    ) -> float:
        raw = self.raw_hours(template, element_values)
        hours = raw * self.multiplier_factor(multipliers, complexity, lod, is_express, area)
        logger.debug("Scope hours for %s: raw=%.2f total=%.2f", template.id, raw, hours)
        return hours

    # -----------------------------------------------------------------------
    # Input bounds
    # -----------------------------------------------------------------------

    def count_bounds(self, element: FunctionalElement) -> tuple:
        lower = element.min if element.min is not None else 0
        if element.input_kind == InputKind.BOOLEAN:
            upper = 1
        else:
            upper = element.max if element.max is not None else config.DEFAULT_COUNT_MAX
        return lower, upper

    def clamp_count(self, element: FunctionalElement, value: Any) -> Optional[Any]:
        """
        Constrain an operator-entered count to the element's [min, max] range.

        Select values pass through untouched. Computation never clamps; this is
        applied only where a value is being set.
        """
        if element.input_kind == InputKind.SELECT:
            return value
        lower, upper = self.count_bounds(element)
        number = _numeric(value)
        clamped = max(lower, min(upper, number))
        return int(clamped) if float(clamped).is_integer() else clamped
