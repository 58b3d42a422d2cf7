"""
Fee calculation data model.

Plain structured records exchanged between the configuration repository, the
calculation engines, the HTTP layer and the history store. Every model
round-trips losslessly through ``model_dump(mode="json")`` / ``model_validate``.

Role and stage identifiers are open strings. Every ``Dict[str, float]`` weight
map follows the same contract: a missing key reads as 0.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class StageKind(str, Enum):
    INTERNAL_RBH = "INTERNAL_RBH"      # team hours × member rate
    EXTERNAL_FIXED = "EXTERNAL_FIXED"  # subcontracted, fixed price


class InputKind(str, Enum):
    BOOLEAN = "boolean"
    COUNT = "count"
    SELECT = "select"


class QuoteState(str, Enum):
    UNPRICED = "UNPRICED"
    QUOTED = "QUOTED"
    SELECTED = "SELECTED"


Complexity = Literal["low", "medium", "high"]
LevelOfDetail = Literal["standard", "high"]
TimeUnit = Literal["h", "d", "w"]


# ── Reference lists ───────────────────────────────────────────────────────────

class BuildingType(BaseModel):
    id: str
    name: str


class ActionType(BaseModel):
    id: str
    name: str


# ── Functional scope ──────────────────────────────────────────────────────────

class SelectOption(BaseModel):
    id: str
    name: str = ""
    hours: float = 0.0


class FunctionalElement(BaseModel):
    id: str
    name: str = ""
    description: Optional[str] = None
    base_hours: float = 0.0            # RBH per unit; ignored for select elements
    input_kind: InputKind = InputKind.COUNT
    min: Optional[int] = None
    max: Optional[int] = None
    options: List[SelectOption] = Field(default_factory=list)


class FunctionalGroup(BaseModel):
    id: str
    name: str = ""
    elements: List[FunctionalElement] = Field(default_factory=list)


class CalculationTemplate(BaseModel):
    """Functional elements and weights bound to a (building type, action type) pair."""
    id: str
    building_type_id: str
    action_type_id: str
    name: str = ""
    description: Optional[str] = None
    role_distribution: Dict[str, float] = Field(default_factory=dict)
    stage_weights: Dict[str, float] = Field(default_factory=dict)
    default_fixed_costs: Optional[Dict[str, float]] = None
    default_enabled_stages: Optional[List[str]] = None
    groups: List[FunctionalGroup] = Field(default_factory=list)


# ── Team & multipliers ────────────────────────────────────────────────────────

class TeamMember(BaseModel):
    id: str
    role: str
    rate: float = Field(0.0, ge=0, description="Hourly rate per RBH")


class ComplexityFactors(BaseModel):
    low: float = 0.9
    medium: float = 1.0
    high: float = 1.2


class LodFactors(BaseModel):
    standard: float = 1.0
    high: float = 1.25


class ScaleSettings(BaseModel):
    enabled: bool = False
    base_area: float = 150.0
    exponent: float = 0.2


class GlobalMultipliers(BaseModel):
    complexity: ComplexityFactors = Field(default_factory=ComplexityFactors)
    lod: LodFactors = Field(default_factory=LodFactors)
    express: float = 1.2
    scale: Optional[ScaleSettings] = None


# ── Stages ────────────────────────────────────────────────────────────────────

class RoleAllocation(BaseModel):
    member_id: str
    hours: int = 0


class ExternalQuote(BaseModel):
    id: str
    name: str
    price: float = 0.0


class StageDefinition(BaseModel):
    """A billable phase as configured, before any hours are allocated."""
    id: str
    kind: StageKind = StageKind.INTERNAL_RBH
    name: str = ""
    description: str = ""
    is_enabled: bool = True
    fixed_price: float = 0.0
    external_quotes: List[ExternalQuote] = Field(default_factory=list)
    selected_quote_id: Optional[str] = None


class Stage(StageDefinition):
    role_allocations: List[RoleAllocation] = Field(default_factory=list)

    @property
    def allocated_hours(self) -> int:
        return sum(a.hours for a in self.role_allocations)


# ── Calculation request ───────────────────────────────────────────────────────

class FunctionalMode(BaseModel):
    mode: Literal["functional"] = "functional"
    element_values: Dict[str, Any] = Field(default_factory=dict)


class FeeMode(BaseModel):
    mode: Literal["fee"] = "fee"
    target_fee: Optional[float] = None
    include_external: bool = False


CalculationMode = Annotated[Union[FunctionalMode, FeeMode], Field(discriminator="mode")]


class ProjectInputs(BaseModel):
    building_type_id: str = ""
    action_type_id: str = ""
    template_id: str = ""
    area: float = 0.0
    location: str = ""
    budget: Optional[float] = None
    deadline: Optional[str] = None

    calculation_mode: Literal["functional", "fee"] = "functional"
    target_fee: Optional[float] = None
    # True: target_fee is gross for the project (external costs included)
    include_external_in_fee: bool = False

    element_values: Dict[str, Any] = Field(default_factory=dict)

    complexity: Complexity = "medium"
    lod: LevelOfDetail = "standard"
    is_express: bool = False

    def mode_spec(self) -> Union[FunctionalMode, FeeMode]:
        if self.calculation_mode == "fee":
            return FeeMode(target_fee=self.target_fee, include_external=self.include_external_in_fee)
        return FunctionalMode(element_values=dict(self.element_values))


# ── Results ───────────────────────────────────────────────────────────────────

class ElementContribution(BaseModel):
    group_id: str
    element_id: str
    hours: float


class CostSummary(BaseModel):
    total_hours: float = 0.0
    total_cost: float = 0.0
    internal_cost: float = 0.0
    external_cost: float = 0.0
    avg_rate: float = 0.0
    cost_per_area: float = 0.0


class StageCostLine(BaseModel):
    stage_id: str
    stage_name: str
    kind: StageKind
    member_id: Optional[str] = None
    role: Optional[str] = None
    rate: Optional[float] = None
    hours: Optional[float] = None
    cost: float = 0.0
    quote_name: Optional[str] = None


class CalculationResult(BaseModel):
    total_hours: float
    raw_hours: float = 0.0
    stages: List[Stage]
    summary: CostSummary
    scope_breakdown: List[ElementContribution] = Field(default_factory=list)


# ── Persistence snapshots ─────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SavedCalculation(BaseModel):
    """
    Immutable record of a calculation session.

    Embeds its own copy of template / team / multiplier state so later edits to
    global configuration never alter historical records.
    """
    id: str = ""
    user_id: str
    project_id: Optional[str] = None
    date: datetime = Field(default_factory=_utcnow)
    name: str = ""
    inputs: ProjectInputs
    stages: List[Stage] = Field(default_factory=list)
    team: List[TeamMember] = Field(default_factory=list)
    templates: List[CalculationTemplate] = Field(default_factory=list)
    multipliers: GlobalMultipliers = Field(default_factory=GlobalMultipliers)
    total_cost: float = 0.0


class ProjectGroup(BaseModel):
    id: str = ""
    user_id: str
    name: str
    created_at: datetime = Field(default_factory=_utcnow)
    default_inputs: Optional[ProjectInputs] = None
