"""
Calculator routes — stateless access to the fee calculation pipeline.

Every request carries the state it needs (template, stages, team...) and gets
the recomputed values back. Team and multipliers fall back to the configured
defaults when omitted. Nothing here is persisted.
"""
import logging
from typing import Any, Dict, List, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import TemplateStore, get_template_store
from app.models.fee_schema import (
    CalculationResult,
    CalculationTemplate,
    Complexity,
    CostSummary,
    ElementContribution,
    GlobalMultipliers,
    LevelOfDetail,
    ProjectInputs,
    QuoteState,
    Stage,
    StageCostLine,
    TeamMember,
    TimeUnit,
)
from app.services import quote_engine
from app.services.allocation_engine import StageAllocator
from app.services.costing_engine import CostingEngine, hours_to_unit, rate_per_unit
from app.services.fee_calculator import FeeCalculator, apply_template_defaults
from app.services.labor_engine import LaborEngine
from app.services.scope_engine import ScopeEngine
from app.services.template_store import ConfigNotFoundError

router = APIRouter(prefix="/api/calculator", tags=["Calculator"])
logger = logging.getLogger("archfee-api.calculator")

_scope = ScopeEngine()
_labor = LaborEngine()
_allocator = StageAllocator()
_costing = CostingEngine()


# ── Request / response models ────────────────────────────────────────────────

class ScopeHoursRequest(BaseModel):
    template: CalculationTemplate
    element_values: Dict[str, Any] = Field(default_factory=dict)
    multipliers: Optional[GlobalMultipliers] = None
    area: float = 0.0
    complexity: Complexity = "medium"
    lod: LevelOfDetail = "standard"
    is_express: bool = False


class ScopeHoursResponse(BaseModel):
    total_hours: float
    raw_hours: float
    multiplier: float
    breakdown: List[ElementContribution]


class FeeHoursRequest(BaseModel):
    template: CalculationTemplate
    team: Optional[List[TeamMember]] = None
    stages: List[Stage] = Field(default_factory=list)
    target_fee: Optional[float] = None
    include_external: bool = False


class HoursResponse(BaseModel):
    total_hours: float


class AllocateRequest(BaseModel):
    total_hours: float = Field(..., ge=0)
    template: CalculationTemplate
    team: Optional[List[TeamMember]] = None
    stages: List[Stage]
    skip_unchanged: bool = True


class StagesResponse(BaseModel):
    stages: List[Stage]


class AggregateRequest(BaseModel):
    stages: List[Stage]
    team: Optional[List[TeamMember]] = None
    area: float = 0.0
    unit: TimeUnit = "h"


class AggregateResponse(BaseModel):
    summary: CostSummary
    lines: List[StageCostLine]
    unit: TimeUnit
    total_in_unit: float
    avg_rate_in_unit: float


class CostEditRequest(BaseModel):
    template: CalculationTemplate
    team: Optional[List[TeamMember]] = None
    stages: List[Stage]
    edited_total_cost: float = Field(..., ge=0)
    include_external: bool = True
    area: float = 0.0


class CostEditResponse(BaseModel):
    total_hours: float
    stages: List[Stage]
    summary: CostSummary


class RecomputeRequest(BaseModel):
    inputs: ProjectInputs
    template: Optional[CalculationTemplate] = None
    team: Optional[List[TeamMember]] = None
    multipliers: Optional[GlobalMultipliers] = None
    stages: Optional[List[Stage]] = None


class QuoteRequest(BaseModel):
    stage: Stage
    action: Literal["add", "select", "delete", "manual_price"]
    name: Optional[str] = None
    price: float = 0.0
    quote_id: Optional[str] = None


class QuoteResponse(BaseModel):
    stage: Stage
    state: QuoteState


class StageHoursRequest(BaseModel):
    stages: List[Stage]
    stage_id: str
    member_id: str
    value: float = Field(..., ge=0)
    unit: TimeUnit = "h"


class ToggleStageRequest(BaseModel):
    stages: List[Stage]
    stage_id: str


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.post("/scope-hours", response_model=ScopeHoursResponse)
async def scope_hours(req: ScopeHoursRequest, store: TemplateStore = Depends(get_template_store)):
    """Functional scope → multiplied RBH, with the per-element breakdown."""
    multipliers = req.multipliers or store.get_multipliers()
    factor = _scope.multiplier_factor(multipliers, req.complexity, req.lod, req.is_express, req.area)
    raw = _scope.raw_hours(req.template, req.element_values)
    return ScopeHoursResponse(
        total_hours=raw * factor,
        raw_hours=raw,
        multiplier=factor,
        breakdown=_scope.element_breakdown(req.template, req.element_values),
    )


@router.post("/fee-hours", response_model=HoursResponse)
async def fee_hours(req: FeeHoursRequest, store: TemplateStore = Depends(get_template_store)):
    team = req.team if req.team is not None else store.get_team()
    hours = _labor.convert_fee_to_hours(req.template, team, req.stages, req.target_fee, req.include_external)
    return HoursResponse(total_hours=hours)


@router.post("/allocate", response_model=StagesResponse)
async def allocate(req: AllocateRequest, store: TemplateStore = Depends(get_template_store)):
    team = req.team if req.team is not None else store.get_team()
    stages = _allocator.allocate_stages(
        req.total_hours, req.template, team, req.stages, skip_unchanged=req.skip_unchanged,
    )
    return StagesResponse(stages=stages)


@router.post("/aggregate", response_model=AggregateResponse)
async def aggregate(req: AggregateRequest, store: TemplateStore = Depends(get_template_store)):
    team = req.team if req.team is not None else store.get_team()
    summary = _costing.aggregate_cost(req.stages, team, req.area)
    return AggregateResponse(
        summary=summary,
        lines=_costing.stage_cost_lines(req.stages, team),
        unit=req.unit,
        total_in_unit=hours_to_unit(summary.total_hours, req.unit),
        avg_rate_in_unit=rate_per_unit(summary.avg_rate, req.unit),
    )


@router.post("/cost-edit", response_model=CostEditResponse)
async def cost_edit(req: CostEditRequest, store: TemplateStore = Depends(get_template_store)):
    """Reverse path: an edited gross total becomes new allocations on enabled internal stages."""
    team = req.team if req.team is not None else store.get_team()
    stages = _labor.convert_cost_edit_to_allocations(
        req.template, team, req.stages, req.edited_total_cost, req.include_external,
    )
    hours = _labor.hours_for_cost_edit(req.template, team, req.stages, req.edited_total_cost, req.include_external)
    return CostEditResponse(
        total_hours=hours,
        stages=stages,
        summary=_costing.aggregate_cost(stages, team, req.area),
    )


@router.post("/recompute", response_model=CalculationResult)
async def recompute(req: RecomputeRequest, store: TemplateStore = Depends(get_template_store)):
    """
    Full pipeline for one session state.

    Omitted template/team/multipliers/stages are taken from configuration; a
    fresh stage list gets the template's stage defaults applied first.
    """
    template = req.template
    if template is None:
        if not req.inputs.template_id:
            raise HTTPException(status_code=400, detail="inputs.template_id or template is required")
        try:
            template = store.get_template(req.inputs.template_id)
        except ConfigNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e.args[0]))

    stages = req.stages
    if stages is None:
        stages = apply_template_defaults(store.new_session_stages(), template)

    calc = FeeCalculator(
        template=template,
        team=req.team if req.team is not None else store.get_team(),
        multipliers=req.multipliers or store.get_multipliers(),
        stages=stages,
        inputs=req.inputs,
    )
    return calc.recompute()


@router.post("/quotes", response_model=QuoteResponse)
async def quotes(req: QuoteRequest):
    """Apply one quote-state transition to an external stage."""
    if req.action == "add":
        if not req.name or not req.name.strip():
            raise HTTPException(status_code=400, detail="Quote name is required")
        stage = quote_engine.add_quote(req.stage, req.name, req.price, req.quote_id)
    elif req.action == "select":
        if not req.quote_id:
            raise HTTPException(status_code=400, detail="quote_id is required")
        stage = quote_engine.select_quote(req.stage, req.quote_id)
    elif req.action == "delete":
        if not req.quote_id:
            raise HTTPException(status_code=400, detail="quote_id is required")
        stage = quote_engine.delete_quote(req.stage, req.quote_id)
    else:
        stage = quote_engine.set_manual_price(req.stage, req.price)
    return QuoteResponse(stage=stage, state=quote_engine.quote_state(stage))


@router.post("/stage-hours", response_model=StagesResponse)
async def stage_hours(req: StageHoursRequest):
    """Manual per-member hours on one stage, entered in h / d / w."""
    if not any(s.id == req.stage_id for s in req.stages):
        raise HTTPException(status_code=404, detail=f"Stage '{req.stage_id}' not in request")
    return StagesResponse(
        stages=_allocator.set_member_hours(req.stages, req.stage_id, req.member_id, req.value, req.unit)
    )


@router.post("/toggle-stage", response_model=StagesResponse)
async def toggle_stage(req: ToggleStageRequest):
    if not any(s.id == req.stage_id for s in req.stages):
        raise HTTPException(status_code=404, detail=f"Stage '{req.stage_id}' not in request")
    return StagesResponse(stages=_allocator.toggle_stage(req.stages, req.stage_id))
