"""
History routes — saved calculations and project groups, scoped to the caller
identified by the X-User-ID header.
"""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import get_history_store, get_user_id
from app.models.fee_schema import (
    GlobalMultipliers,
    ProjectGroup,
    ProjectInputs,
    SavedCalculation,
    Stage,
    TeamMember,
)
from app.services.fee_calculator import FeeCalculator
from app.services.history_store import (
    CalculationHistoryStore,
    CalculationNotFoundError,
    ProjectNotFoundError,
)

router = APIRouter(tags=["History"])
logger = logging.getLogger("archfee-api.history")


class SaveResponse(BaseModel):
    id: str


class MoveRequest(BaseModel):
    project_id: Optional[str] = None


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    default_inputs: Optional[ProjectInputs] = None


class ProjectRenameRequest(BaseModel):
    name: str = Field(..., min_length=1)


class VariantResponse(BaseModel):
    """Session state for a new variant of a saved calculation."""
    name: str
    project_id: Optional[str]
    inputs: ProjectInputs
    stages: List[Stage]
    team: List[TeamMember]
    multipliers: GlobalMultipliers


async def _owned(store: CalculationHistoryStore, calc_id: str, user_id: str) -> SavedCalculation:
    try:
        saved = await store.get(calc_id)
    except CalculationNotFoundError:
        raise HTTPException(status_code=404, detail="Calculation not found")
    if saved.user_id != user_id:
        raise HTTPException(status_code=404, detail="Calculation not found")
    return saved


async def _owned_project(store: CalculationHistoryStore, project_id: str, user_id: str) -> None:
    projects = await store.list_projects(user_id)
    if not any(p.id == project_id for p in projects):
        raise HTTPException(status_code=404, detail="Project not found")


# ── Saved calculations ───────────────────────────────────────────────────────

@router.post("/api/history", response_model=SaveResponse, status_code=201)
async def save_calculation(
    snapshot: SavedCalculation,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    """Persist a snapshot. The owner always comes from the caller, never the body."""
    snapshot = snapshot.model_copy(update={"user_id": user_id})
    if snapshot.project_id:
        await _owned_project(store, snapshot.project_id, user_id)
    calc_id = await store.save(snapshot)
    return SaveResponse(id=calc_id)


@router.get("/api/history", response_model=List[SavedCalculation])
async def list_calculations(
    project_id: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    """Caller's calculations, newest first; optionally only one project's."""
    items = await store.list(user_id)
    if project_id is not None:
        items = [c for c in items if c.project_id == project_id]
    return items


@router.get("/api/history/{calc_id}", response_model=SavedCalculation)
async def get_calculation(
    calc_id: str,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    return await _owned(store, calc_id, user_id)


@router.patch("/api/history/{calc_id}", response_model=SavedCalculation)
async def update_calculation(
    calc_id: str,
    partial: Dict[str, Any],
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    """Merge fields into a saved calculation; a new project must belong to the caller."""
    await _owned(store, calc_id, user_id)
    if partial.get("project_id") is not None:
        await _owned_project(store, partial["project_id"], user_id)
    try:
        return await store.update(calc_id, partial)
    except ProjectNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")
    except ValueError as e:
        # pydantic ValidationError is a ValueError
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/api/history/{calc_id}", status_code=204)
async def delete_calculation(
    calc_id: str,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    await _owned(store, calc_id, user_id)
    await store.delete(calc_id)


@router.put("/api/history/{calc_id}/project", response_model=SavedCalculation)
async def move_calculation(
    calc_id: str,
    req: MoveRequest,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    await _owned(store, calc_id, user_id)
    if req.project_id is not None:
        await _owned_project(store, req.project_id, user_id)
    try:
        return await store.move_calculation(calc_id, req.project_id)
    except ProjectNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")


@router.post("/api/history/{calc_id}/variant", response_model=VariantResponse)
async def new_variant(
    calc_id: str,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    """Session state for a new variant of a saved calculation (not saved until posted back)."""
    saved = await _owned(store, calc_id, user_id)
    calc = FeeCalculator.from_snapshot(saved)
    return VariantResponse(
        name=calc.title,
        project_id=calc.project_id,
        inputs=calc.inputs,
        stages=calc.stages,
        team=calc.team,
        multipliers=calc.multipliers,
    )


# ── Project groups ───────────────────────────────────────────────────────────

@router.post("/api/projects", response_model=ProjectGroup, status_code=201)
async def create_project(
    req: ProjectCreateRequest,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    return await store.create_project(user_id, req.name.strip(), req.default_inputs)


@router.get("/api/projects", response_model=List[ProjectGroup])
async def list_projects(
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    return await store.list_projects(user_id)


@router.patch("/api/projects/{project_id}", response_model=ProjectGroup)
async def rename_project(
    project_id: str,
    req: ProjectRenameRequest,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    await _owned_project(store, project_id, user_id)
    return await store.rename_project(project_id, req.name.strip())


@router.delete("/api/projects/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    store: CalculationHistoryStore = Depends(get_history_store),
):
    """Delete a project; its calculations stay in history, ungrouped."""
    await _owned_project(store, project_id, user_id)
    await store.delete_project(project_id)
