"""
Configuration routes — templates, team rates, multipliers, stage definitions
and the building/action type lists.

Reads without an X-User-ID see the shared defaults; identified callers read
and edit their own saved configuration. Edits here only affect new
calculation sessions; saved calculations carry their own copies.
"""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import TemplateStore, get_template_store, get_user_id
from app.models.fee_schema import (
    ActionType,
    BuildingType,
    CalculationTemplate,
    GlobalMultipliers,
    Stage,
    StageDefinition,
    StageKind,
    TeamMember,
)
from app.services.config_defaults import SUGGESTED_ROLES
from app.services.template_store import ConfigNotFoundError

router = APIRouter(prefix="/api/config", tags=["Configuration"])
logger = logging.getLogger("archfee-api.config")

# Configuration is per owner; changing it needs an identified caller
_WRITE_ACCESS = [Depends(get_user_id)]


class CloneTemplateRequest(BaseModel):
    building_type_id: str
    action_type_id: str


class NewTemplateRequest(BaseModel):
    building_type_id: str
    action_type_id: str
    copy_from: Optional[str] = None


class MemberRequest(BaseModel):
    role: str = Field(..., min_length=1)
    rate: float = Field(0.0, ge=0)


class MemberUpdateRequest(BaseModel):
    role: Optional[str] = None
    rate: Optional[float] = Field(None, ge=0)


class StageDefinitionUpdate(BaseModel):
    kind: Optional[StageKind] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_enabled: Optional[bool] = None
    fixed_price: Optional[float] = None


class NameRequest(BaseModel):
    name: str = Field(..., min_length=1)


def _not_found(e: KeyError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found")


# ── Templates ────────────────────────────────────────────────────────────────

@router.get("/templates", response_model=List[CalculationTemplate])
async def list_templates(store: TemplateStore = Depends(get_template_store)):
    return store.list_templates()


@router.get("/templates/match", response_model=CalculationTemplate)
async def match_template(
    building_type_id: str,
    action_type_id: str,
    store: TemplateStore = Depends(get_template_store),
):
    """Template for a building/action pair; 404 when the combination is not supported yet."""
    tpl = store.find_template(building_type_id, action_type_id)
    if tpl is None:
        raise HTTPException(
            status_code=404,
            detail=f"No template for building type '{building_type_id}' and action '{action_type_id}'",
        )
    return tpl


@router.get("/templates/{template_id}", response_model=CalculationTemplate)
async def get_template(template_id: str, store: TemplateStore = Depends(get_template_store)):
    try:
        return store.get_template(template_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.post("/templates", response_model=CalculationTemplate, status_code=201, dependencies=_WRITE_ACCESS)
async def create_template(req: NewTemplateRequest, store: TemplateStore = Depends(get_template_store)):
    try:
        if req.copy_from:
            return store.clone_template(req.copy_from, req.building_type_id, req.action_type_id)
        return store.create_template(req.building_type_id, req.action_type_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.put("/templates/{template_id}", response_model=CalculationTemplate, dependencies=_WRITE_ACCESS)
async def put_template(
    template_id: str,
    template: CalculationTemplate,
    store: TemplateStore = Depends(get_template_store),
):
    if template.id != template_id:
        raise HTTPException(status_code=400, detail="Template id in body does not match path")
    return store.upsert_template(template)


@router.delete("/templates/{template_id}", status_code=204, dependencies=_WRITE_ACCESS)
async def delete_template(template_id: str, store: TemplateStore = Depends(get_template_store)):
    try:
        store.delete_template(template_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.post(
    "/templates/{template_id}/clone",
    response_model=CalculationTemplate,
    status_code=201,
    dependencies=_WRITE_ACCESS,
)
async def clone_template(
    template_id: str,
    req: CloneTemplateRequest,
    store: TemplateStore = Depends(get_template_store),
):
    try:
        return store.clone_template(template_id, req.building_type_id, req.action_type_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)


# ── Team ─────────────────────────────────────────────────────────────────────

@router.get("/team", response_model=List[TeamMember])
async def get_team(store: TemplateStore = Depends(get_template_store)):
    return store.get_team()


@router.put("/team", response_model=List[TeamMember], dependencies=_WRITE_ACCESS)
async def put_team(team: List[TeamMember], store: TemplateStore = Depends(get_template_store)):
    if not team:
        raise HTTPException(status_code=400, detail="The team must keep at least one member")
    return store.set_team(team)


@router.get("/team/roles", response_model=List[str])
async def suggested_roles(store: TemplateStore = Depends(get_template_store)):
    """Suggested roles followed by any custom roles already in use."""
    roles = list(SUGGESTED_ROLES)
    for member in store.get_team():
        if member.role not in roles:
            roles.append(member.role)
    return roles


@router.post("/team", response_model=TeamMember, status_code=201, dependencies=_WRITE_ACCESS)
async def add_member(req: MemberRequest, store: TemplateStore = Depends(get_template_store)):
    return store.add_member(req.role, req.rate)


@router.patch("/team/{member_id}", response_model=TeamMember, dependencies=_WRITE_ACCESS)
async def update_member(
    member_id: str,
    req: MemberUpdateRequest,
    store: TemplateStore = Depends(get_template_store),
):
    try:
        return store.update_member(member_id, role=req.role, rate=req.rate)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.delete("/team/{member_id}", status_code=204, dependencies=_WRITE_ACCESS)
async def remove_member(member_id: str, store: TemplateStore = Depends(get_template_store)):
    try:
        store.remove_member(member_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ── Multipliers ──────────────────────────────────────────────────────────────

@router.get("/multipliers", response_model=GlobalMultipliers)
async def get_multipliers(store: TemplateStore = Depends(get_template_store)):
    return store.get_multipliers()


@router.put("/multipliers", response_model=GlobalMultipliers, dependencies=_WRITE_ACCESS)
async def put_multipliers(multipliers: GlobalMultipliers, store: TemplateStore = Depends(get_template_store)):
    logger.info("Global multipliers updated")
    return store.set_multipliers(multipliers)


# ── Stage definitions ────────────────────────────────────────────────────────

@router.get("/stages", response_model=List[StageDefinition])
async def list_stages(store: TemplateStore = Depends(get_template_store)):
    return store.list_stage_definitions()


@router.get("/stages/session", response_model=List[Stage])
async def new_session_stages(store: TemplateStore = Depends(get_template_store)):
    """Stage list for a new calculation, allocations empty."""
    return store.new_session_stages()


@router.post("/stages", response_model=StageDefinition, status_code=201, dependencies=_WRITE_ACCESS)
async def add_stage(definition: StageDefinition, store: TemplateStore = Depends(get_template_store)):
    try:
        return store.add_stage_definition(definition)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/stages/{stage_id}", response_model=StageDefinition, dependencies=_WRITE_ACCESS)
async def update_stage(
    stage_id: str,
    req: StageDefinitionUpdate,
    store: TemplateStore = Depends(get_template_store),
):
    fields: Dict[str, Any] = req.model_dump(exclude_none=True)
    try:
        return store.update_stage_definition(stage_id, **fields)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.delete("/stages/{stage_id}", status_code=204, dependencies=_WRITE_ACCESS)
async def delete_stage(stage_id: str, store: TemplateStore = Depends(get_template_store)):
    try:
        store.delete_stage_definition(stage_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)


# ── Building / action types ──────────────────────────────────────────────────

@router.get("/building-types", response_model=List[BuildingType])
async def list_building_types(store: TemplateStore = Depends(get_template_store)):
    return store.list_building_types()


@router.post("/building-types", response_model=BuildingType, status_code=201, dependencies=_WRITE_ACCESS)
async def add_building_type(req: NameRequest, store: TemplateStore = Depends(get_template_store)):
    return store.add_building_type(req.name)


@router.patch("/building-types/{item_id}", response_model=BuildingType, dependencies=_WRITE_ACCESS)
async def rename_building_type(item_id: str, req: NameRequest, store: TemplateStore = Depends(get_template_store)):
    try:
        return store.rename_building_type(item_id, req.name)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.delete("/building-types/{item_id}", status_code=204, dependencies=_WRITE_ACCESS)
async def delete_building_type(item_id: str, store: TemplateStore = Depends(get_template_store)):
    try:
        store.delete_building_type(item_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.get("/action-types", response_model=List[ActionType])
async def list_action_types(store: TemplateStore = Depends(get_template_store)):
    return store.list_action_types()


@router.post("/action-types", response_model=ActionType, status_code=201, dependencies=_WRITE_ACCESS)
async def add_action_type(req: NameRequest, store: TemplateStore = Depends(get_template_store)):
    return store.add_action_type(req.name)


@router.patch("/action-types/{item_id}", response_model=ActionType, dependencies=_WRITE_ACCESS)
async def rename_action_type(item_id: str, req: NameRequest, store: TemplateStore = Depends(get_template_store)):
    try:
        return store.rename_action_type(item_id, req.name)
    except ConfigNotFoundError as e:
        raise _not_found(e)


@router.delete("/action-types/{item_id}", status_code=204, dependencies=_WRITE_ACCESS)
async def delete_action_type(item_id: str, store: TemplateStore = Depends(get_template_store)):
    try:
        store.delete_action_type(item_id)
    except ConfigNotFoundError as e:
        raise _not_found(e)
