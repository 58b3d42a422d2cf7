"""
conftest.py — Shared pytest fixtures for the fee estimator backend test suite.

Engine tests are pure unit tests that exercise computation classes in
isolation. API tests run the FastAPI app through TestClient with the history
store replaced by an in-memory double and the database session by an
in-memory configuration session, so no database is needed anywhere.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def scope_engine():
    from app.services.scope_engine import ScopeEngine
    return ScopeEngine()


@pytest.fixture(scope="session")
def labor_engine():
    """LaborEngine is stateless; one instance serves the whole session."""
    from app.services.labor_engine import LaborEngine
    return LaborEngine()


@pytest.fixture(scope="session")
def allocator():
    from app.services.allocation_engine import StageAllocator
    return StageAllocator()


@pytest.fixture(scope="session")
def costing_engine():
    from app.services.costing_engine import CostingEngine
    return CostingEngine()


@pytest.fixture
def template_store():
    """Fresh store seeded with the built-in defaults for every test."""
    from app.services.template_store import TemplateStore
    return TemplateStore()


# ---------------------------------------------------------------------------
# Sample configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def neutral_multipliers():
    """All factors 1.0 and no scale effect, so hours equal raw hours."""
    from app.models.fee_schema import GlobalMultipliers
    return GlobalMultipliers.model_validate({
        "complexity": {"low": 1.0, "medium": 1.0, "high": 1.0},
        "lod": {"standard": 1.0, "high": 1.0},
        "express": 1.0,
        "scale": {"enabled": False, "base_area": 150.0, "exponent": 0.2},
    })


@pytest.fixture
def simple_template():
    """
    One boolean element (120 h) and one count element (15 h/unit).

    Single "Architect" role, two internal stages weighted 0.4 / 0.6 and both
    enabled by default, so stage weights over default stages sum to 1.0.
    """
    from app.models.fee_schema import CalculationTemplate
    return CalculationTemplate.model_validate({
        "id": "tpl_simple",
        "building_type_id": "b_house",
        "action_type_id": "act_new",
        "name": "Simple",
        "role_distribution": {"Architect": 1.0},
        "stage_weights": {"st_a": 0.4, "st_b": 0.6},
        "default_enabled_stages": ["st_a", "st_b", "ext_x"],
        "default_fixed_costs": {"ext_x": 2000.0},
        "groups": [
            {
                "id": "g1",
                "name": "Group",
                "elements": [
                    {"id": "el_base", "name": "Base", "base_hours": 120, "input_kind": "boolean"},
                    {"id": "el_bath", "name": "Bathroom", "base_hours": 15, "input_kind": "count",
                     "min": 1, "max": 4},
                    {"id": "el_roof", "name": "Roof", "input_kind": "select",
                     "options": [{"id": "flat", "name": "Flat", "hours": 10},
                                 {"id": "pitched", "name": "Pitched", "hours": 30}]},
                ],
            }
        ],
    })


@pytest.fixture
def architect_team():
    from app.models.fee_schema import TeamMember
    return [TeamMember(id="m1", role="Architect", rate=250.0)]


@pytest.fixture
def mixed_team():
    """Two architects (200, 300) and one assistant (100)."""
    from app.models.fee_schema import TeamMember
    return [
        TeamMember(id="a1", role="Architect", rate=200.0),
        TeamMember(id="a2", role="Architect", rate=300.0),
        TeamMember(id="s1", role="Assistant", rate=100.0),
    ]


@pytest.fixture
def simple_stages():
    """Two internal stages plus one external stage, all enabled, no allocations."""
    from app.models.fee_schema import Stage, StageKind
    return [
        Stage(id="st_a", kind=StageKind.INTERNAL_RBH, name="Stage A", is_enabled=True),
        Stage(id="st_b", kind=StageKind.INTERNAL_RBH, name="Stage B", is_enabled=True),
        Stage(id="ext_x", kind=StageKind.EXTERNAL_FIXED, name="External X", is_enabled=True, fixed_price=0.0),
    ]


@pytest.fixture
def external_stage():
    from app.models.fee_schema import Stage, StageKind
    return Stage(id="ext_geo", kind=StageKind.EXTERNAL_FIXED, name="Surveying", is_enabled=True)


# ---------------------------------------------------------------------------
# In-memory session for the configuration repository
# ---------------------------------------------------------------------------

class _ScalarRows:
    def __init__(self, rows):
        self._rows = rows

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class InMemoryConfigSession:
    """
    Just enough of AsyncSession for ConfigRepository: the owner filter of its
    single SELECT is applied to a list of FeeConfigRecord rows that outlives
    individual requests, like the real table does.
    """

    def __init__(self):
        self.records: List[Any] = []
        self.statements: List[Any] = []

    async def execute(self, statement):
        self.statements.append(statement)
        (owner_id,) = statement.compile().params.values()
        return _ScalarRows([r for r in self.records if r.owner_id == owner_id])

    def add(self, record) -> None:
        from app.models.orm_models import gen_uuid
        record.id = record.id or gen_uuid()
        self.records.append(record)

    async def flush(self) -> None:
        pass

    def payload(self, owner_id: str, collection: str):
        return next(r.payload for r in self.records if r.owner_id == owner_id and r.collection == collection)


@pytest.fixture
def config_session():
    return InMemoryConfigSession()


# ---------------------------------------------------------------------------
# In-memory history store double
# ---------------------------------------------------------------------------

class InMemoryHistoryStore:
    """Same contract as CalculationHistoryStore, backed by dicts, including its error paths."""

    def __init__(self):
        self.calculations: Dict[str, Dict[str, Any]] = {}
        self.projects: Dict[str, Dict[str, Any]] = {}

    def _check_project(self, project_id: str) -> None:
        from app.services.history_store import ProjectNotFoundError, _is_uuid
        if not _is_uuid(project_id) or project_id not in self.projects:
            raise ProjectNotFoundError(f"Project '{project_id}' not found")

    async def save(self, snapshot) -> str:
        if snapshot.project_id:
            self._check_project(snapshot.project_id)
        calc_id = str(uuid.uuid4())
        self.calculations[calc_id] = snapshot.model_copy(update={"id": calc_id}).model_dump(mode="json")
        if snapshot.project_id:
            self.projects[snapshot.project_id]["default_inputs"] = snapshot.inputs.model_dump(mode="json")
        return calc_id

    async def list(self, user_id: str):
        from app.models.fee_schema import SavedCalculation
        items = [SavedCalculation.model_validate(c) for c in self.calculations.values() if c["user_id"] == user_id]
        return sorted(items, key=lambda c: c.date, reverse=True)

    async def get(self, calc_id: str):
        from app.models.fee_schema import SavedCalculation
        from app.services.history_store import CalculationNotFoundError, _is_uuid
        if not _is_uuid(calc_id) or calc_id not in self.calculations:
            raise CalculationNotFoundError(f"Calculation '{calc_id}' not found")
        return SavedCalculation.model_validate(self.calculations[calc_id])

    async def delete(self, calc_id: str) -> None:
        await self.get(calc_id)
        del self.calculations[calc_id]

    async def update(self, calc_id: str, partial: Dict[str, Any]):
        from app.models.fee_schema import SavedCalculation
        current = (await self.get(calc_id)).model_dump(mode="json")
        changes = {k: v for k, v in partial.items() if k not in ("id", "user_id")}
        if changes.get("project_id") is not None:
            self._check_project(changes["project_id"])
        merged = SavedCalculation.model_validate({**current, **changes})
        self.calculations[calc_id] = merged.model_dump(mode="json")
        return merged

    async def move_calculation(self, calc_id: str, project_id: Optional[str]):
        return await self.update(calc_id, {"project_id": project_id})

    async def create_project(self, user_id: str, name: str, default_inputs=None):
        from app.models.fee_schema import ProjectGroup
        project = ProjectGroup(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            created_at=datetime.now(timezone.utc),
            default_inputs=default_inputs,
        )
        self.projects[project.id] = project.model_dump(mode="json")
        return project

    async def list_projects(self, user_id: str) -> List[Any]:
        from app.models.fee_schema import ProjectGroup
        return [ProjectGroup.model_validate(p) for p in self.projects.values() if p["user_id"] == user_id]

    async def rename_project(self, project_id: str, name: str):
        from app.models.fee_schema import ProjectGroup
        self._check_project(project_id)
        self.projects[project_id]["name"] = name
        return ProjectGroup.model_validate(self.projects[project_id])

    async def delete_project(self, project_id: str) -> None:
        self._check_project(project_id)
        del self.projects[project_id]
        for calc in self.calculations.values():
            if calc.get("project_id") == project_id:
                calc["project_id"] = None


@pytest.fixture
def history_store():
    return InMemoryHistoryStore()


@pytest.fixture
def client(history_store, config_session):
    """
    TestClient with the history store replaced by its double and the database
    session by the in-memory configuration session; configuration requests go
    through the real ConfigRepository.
    """
    from fastapi.testclient import TestClient
    from app.api.deps import get_history_store
    from app.db import get_db
    from app.main import app

    async def _db():
        yield config_session

    app.dependency_overrides[get_history_store] = lambda: history_store
    app.dependency_overrides[get_db] = _db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-ID": "user-1"}
