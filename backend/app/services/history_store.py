"""
Calculation history — persistence for saved calculations and project groups.

Backed by PostgreSQL through async SQLAlchemy. Each SavedCalculation is stored
whole as a JSONB snapshot, so it reads back exactly as it was written; the
scalar columns (user, project, name, total, date) are kept in step for listing
and filtering.

The session is owned by the caller (``get_db`` in the API layer commits or
rolls back at the end of the request); this store only flushes.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete as sa_delete, select, update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.fee_schema import ProjectGroup, ProjectInputs, SavedCalculation
from app.models.orm_models import ProjectGroupRecord, SavedCalculationRecord, gen_uuid
from app.services.perf_monitor import timed_async

logger = logging.getLogger("archfee-history")

# Fields a partial update may not overwrite
_IMMUTABLE_FIELDS = {"id", "user_id"}


class CalculationNotFoundError(KeyError):
    """Raised when a saved calculation id does not exist."""


class ProjectNotFoundError(KeyError):
    """Raised when a project group id does not exist."""


def _is_uuid(value: Optional[str]) -> bool:
    """Ids are UUID columns; anything else can never match a row."""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _to_saved(record: SavedCalculationRecord) -> SavedCalculation:
    data = dict(record.snapshot or {})
    data.update({
        "id": record.id,
        "user_id": record.user_id,
        "project_id": record.project_id,
        "name": record.name,
        "total_cost": record.total_cost,
    })
    return SavedCalculation.model_validate(data)


def _to_project(record: ProjectGroupRecord) -> ProjectGroup:
    return ProjectGroup(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        created_at=record.created_at,
        default_inputs=ProjectInputs.model_validate(record.default_inputs) if record.default_inputs else None,
    )


def _write(record: SavedCalculationRecord, saved: SavedCalculation) -> None:
    record.user_id = saved.user_id
    record.project_id = saved.project_id
    record.name = saved.name
    record.total_cost = saved.total_cost
    record.saved_at = saved.date
    record.snapshot = saved.model_dump(mode="json")


class CalculationHistoryStore:

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Saved calculations
    # ------------------------------------------------------------------

    async def _record(self, calc_id: str) -> SavedCalculationRecord:
        record = await self.session.get(SavedCalculationRecord, calc_id) if _is_uuid(calc_id) else None
        if record is None:
            raise CalculationNotFoundError(f"Calculation '{calc_id}' not found")
        return record

    @timed_async
    async def save(self, snapshot: SavedCalculation) -> str:
        """
        Persist a new snapshot and return its id. Any id on the snapshot is replaced.

        Raises ProjectNotFoundError when ``project_id`` names no project.
        """
        project = await self._project(snapshot.project_id) if snapshot.project_id else None
        calc_id = gen_uuid()
        saved = snapshot.model_copy(deep=True, update={"id": calc_id})
        record = SavedCalculationRecord(id=calc_id)
        _write(record, saved)
        self.session.add(record)

        # A project remembers the inputs of its latest calculation
        if project is not None:
            project.default_inputs = saved.inputs.model_dump(mode="json")
        await self.session.flush()

        logger.info("Calculation saved", extra={"calculation_id": calc_id, "user_id": saved.user_id})
        return calc_id

    async def list(self, user_id: str) -> List[SavedCalculation]:
        """All calculations of ``user_id``, newest first."""
        result = await self.session.execute(
            select(SavedCalculationRecord)
            .where(SavedCalculationRecord.user_id == user_id)
            .order_by(SavedCalculationRecord.saved_at.desc())
        )
        return [_to_saved(r) for r in result.scalars().all()]

    async def get(self, calc_id: str) -> SavedCalculation:
        return _to_saved(await self._record(calc_id))

    async def delete(self, calc_id: str) -> None:
        record = await self._record(calc_id)
        await self.session.delete(record)
        await self.session.flush()
        logger.info("Calculation deleted", extra={"calculation_id": calc_id})

    @timed_async
    async def update(self, calc_id: str, partial: Dict[str, Any]) -> SavedCalculation:
        """
        Merge ``partial`` (any SavedCalculation fields) into a stored snapshot.

        The merged result is validated as a whole, so a partial update can never
        leave a malformed snapshot behind. A new ``project_id`` must name an
        existing project (ProjectNotFoundError otherwise).
        """
        record = await self._record(calc_id)
        current = _to_saved(record).model_dump(mode="json")
        changes = {k: v for k, v in partial.items() if k not in _IMMUTABLE_FIELDS}
        if changes.get("project_id") is not None:
            await self._project(changes["project_id"])
        merged = SavedCalculation.model_validate({**current, **changes})
        _write(record, merged)
        await self.session.flush()
        logger.info("Calculation updated: %s", sorted(changes), extra={"calculation_id": calc_id})
        return merged

    async def move_calculation(self, calc_id: str, project_id: Optional[str]) -> SavedCalculation:
        """Assign a calculation to a project group, or ungroup it with ``None``."""
        return await self.update(calc_id, {"project_id": project_id})

    # ------------------------------------------------------------------
    # Project groups
    # ------------------------------------------------------------------

    async def _project(self, project_id: str) -> ProjectGroupRecord:
        record = await self.session.get(ProjectGroupRecord, project_id) if _is_uuid(project_id) else None
        if record is None:
            raise ProjectNotFoundError(f"Project '{project_id}' not found")
        return record

    async def create_project(
        self, user_id: str, name: str, default_inputs: Optional[ProjectInputs] = None
    ) -> ProjectGroup:
        record = ProjectGroupRecord(
            id=gen_uuid(),
            user_id=user_id,
            name=name,
            default_inputs=default_inputs.model_dump(mode="json") if default_inputs else None,
        )
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return _to_project(record)

    async def list_projects(self, user_id: str) -> List[ProjectGroup]:
        result = await self.session.execute(
            select(ProjectGroupRecord)
            .where(ProjectGroupRecord.user_id == user_id)
            .order_by(ProjectGroupRecord.created_at)
        )
        return [_to_project(r) for r in result.scalars().all()]

    async def rename_project(self, project_id: str, name: str) -> ProjectGroup:
        record = await self._project(project_id)
        record.name = name
        await self.session.flush()
        return _to_project(record)

    async def delete_project(self, project_id: str) -> None:
        """Delete a project group; its calculations are kept and become ungrouped."""
        record = await self._project(project_id)
        await self.session.execute(
            sa_update(SavedCalculationRecord)
            .where(SavedCalculationRecord.project_id == project_id)
            .values(project_id=None)
        )
        await self.session.execute(sa_delete(ProjectGroupRecord).where(ProjectGroupRecord.id == record.id))
        await self.session.flush()
        logger.info("Project deleted: %s", project_id)
