"""
TemplateStore — configuration repository for the fee estimator.

Holds the long-lived configuration a calculation session reads at start:
  - Calculation templates keyed by (building type, action type)
  - Team roster (rate table)
  - Global multipliers
  - Stage definitions
  - Building-type and action-type reference lists

A TemplateStore is the working copy of one owner's configuration: seeded from
config_defaults, overridden by the JSON file at FEE_CONFIG_PATH and then by
whatever the owner has saved (see config_repository, which loads and persists
it per request). Every getter returns deep copies, so callers can mutate what
they receive without touching stored configuration.
"""
import copy
import json
import logging
import os
import threading
import uuid
from typing import Any, Dict, List, Optional

from app import config
from app.models.fee_schema import (
    ActionType,
    BuildingType,
    CalculationTemplate,
    GlobalMultipliers,
    Stage,
    StageDefinition,
    TeamMember,
)
from app.services import config_defaults

logger = logging.getLogger("archfee-config")

# Export keys, one persisted collection each
COLLECTIONS = ("templates", "team", "multipliers", "stages", "building_types", "action_types")

_file_seed: Optional[Dict[str, Any]] = None


class ConfigNotFoundError(KeyError):
    """Raised when a configuration record id does not exist."""


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def load_seed_file(path: Optional[str]) -> Dict[str, Any]:
    """Configuration collections from a JSON file; empty when the file is missing."""
    if not path or not os.path.exists(path):
        if path:
            logger.warning("Fee config file not found at %s, using built-in defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    logger.info("Loaded fee configuration from %s", path)
    return data


def file_seed() -> Dict[str, Any]:
    """Seed from FEE_CONFIG_PATH, read once per process."""
    global _file_seed
    if _file_seed is None:
        _file_seed = load_seed_file(config.FEE_CONFIG_PATH)
    return copy.deepcopy(_file_seed)


class TemplateStore:
    """Thread-safe configuration working copy."""

    def __init__(self, seed: Optional[Dict[str, Any]] = None) -> None:
        self._lock = threading.Lock()
        self._templates: Dict[str, CalculationTemplate] = {}
        self._team: List[TeamMember] = []
        self._multipliers: GlobalMultipliers = GlobalMultipliers()
        self._stage_definitions: List[StageDefinition] = []
        self._building_types: List[BuildingType] = []
        self._action_types: List[ActionType] = []
        self.reset(seed)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def reset(self, seed: Optional[Dict[str, Any]] = None) -> None:
        """Restore the built-in defaults, then apply any keys present in ``seed``."""
        seed = seed or {}
        with self._lock:
            templates = [CalculationTemplate.model_validate(t) for t in seed["templates"]] \
                if "templates" in seed else [t.model_copy(deep=True) for t in config_defaults.DEFAULT_TEMPLATES]
            self._templates = {t.id: t for t in templates}

            self._team = [TeamMember.model_validate(m) for m in seed["team"]] \
                if "team" in seed else [m.model_copy() for m in config_defaults.DEFAULT_TEAM]

            self._multipliers = GlobalMultipliers.model_validate(seed["multipliers"]) \
                if "multipliers" in seed else config_defaults.DEFAULT_MULTIPLIERS.model_copy(deep=True)

            self._stage_definitions = [StageDefinition.model_validate(s) for s in seed["stages"]] \
                if "stages" in seed else [s.model_copy(deep=True) for s in config_defaults.DEFAULT_STAGE_DEFINITIONS]

            self._building_types = [BuildingType.model_validate(b) for b in seed["building_types"]] \
                if "building_types" in seed else [b.model_copy() for b in config_defaults.DEFAULT_BUILDING_TYPES]

            self._action_types = [ActionType.model_validate(a) for a in seed["action_types"]] \
                if "action_types" in seed else [a.model_copy() for a in config_defaults.DEFAULT_ACTION_TYPES]

    @classmethod
    def from_file(cls, path: str) -> "TemplateStore":
        """Build a store seeded from a JSON file; falls back to defaults if the file is missing."""
        return cls(seed=load_seed_file(path))

    def export(self) -> Dict[str, Any]:
        """Full configuration as JSON-compatible data (same shape ``from_file`` reads)."""
        with self._lock:
            return {
                "templates": [t.model_dump(mode="json") for t in self._templates.values()],
                "team": [m.model_dump(mode="json") for m in self._team],
                "multipliers": self._multipliers.model_dump(mode="json"),
                "stages": [s.model_dump(mode="json") for s in self._stage_definitions],
                "building_types": [b.model_dump(mode="json") for b in self._building_types],
                "action_types": [a.model_dump(mode="json") for a in self._action_types],
            }

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(self) -> List[CalculationTemplate]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._templates.values()]

    def get_template(self, template_id: str) -> CalculationTemplate:
        with self._lock:
            tpl = self._templates.get(template_id)
            if tpl is None:
                raise ConfigNotFoundError(f"Unknown template '{template_id}'")
            return tpl.model_copy(deep=True)

    def find_template(self, building_type_id: str, action_type_id: str) -> Optional[CalculationTemplate]:
        """Template configured for the (building type, action type) pair, or None if unsupported."""
        with self._lock:
            for tpl in self._templates.values():
                if tpl.building_type_id == building_type_id and tpl.action_type_id == action_type_id:
                    return tpl.model_copy(deep=True)
        return None

    def upsert_template(self, template: CalculationTemplate) -> CalculationTemplate:
        with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
        logger.info("Template saved: %s", template.id)
        return template

    def delete_template(self, template_id: str) -> None:
        # Saved calculations embed their own template copies, so deletion is always safe
        with self._lock:
            if self._templates.pop(template_id, None) is None:
                raise ConfigNotFoundError(f"Unknown template '{template_id}'")
        logger.info("Template deleted: %s", template_id)

    def create_template(self, building_type_id: str, action_type_id: str) -> CalculationTemplate:
        """Empty template for a building/action pair."""
        tpl = CalculationTemplate(
            id=_new_id("tpl"),
            building_type_id=building_type_id,
            action_type_id=action_type_id,
            name=self._pair_name(building_type_id, action_type_id),
            description="New fee template",
        )
        return self.upsert_template(tpl)

    def clone_template(self, source_id: str, building_type_id: str, action_type_id: str) -> CalculationTemplate:
        """
        Deep copy of ``source_id`` bound to a new building/action pair.

        Groups, weights and defaults are duplicated; the clone gets a fresh id
        and its description is suffixed so it is distinguishable from the source.
        """
        source = self.get_template(source_id)
        tpl = source.model_copy(deep=True, update={
            "id": _new_id("tpl"),
            "building_type_id": building_type_id,
            "action_type_id": action_type_id,
            "name": self._pair_name(building_type_id, action_type_id),
            "description": (source.description or "") + config.COPY_SUFFIX,
        })
        return self.upsert_template(tpl)

    def _pair_name(self, building_type_id: str, action_type_id: str) -> str:
        with self._lock:
            building = next((b.name for b in self._building_types if b.id == building_type_id), building_type_id)
            action = next((a.name for a in self._action_types if a.id == action_type_id), action_type_id)
        return f"{building} - {action}"

    # ------------------------------------------------------------------
    # Team (rate table)
    # ------------------------------------------------------------------

    def get_team(self) -> List[TeamMember]:
        with self._lock:
            return [m.model_copy() for m in self._team]

    def set_team(self, team: List[TeamMember]) -> List[TeamMember]:
        with self._lock:
            self._team = [m.model_copy() for m in team]
        return self.get_team()

    def add_member(self, role: str, rate: float = 0.0) -> TeamMember:
        member = TeamMember(id=uuid.uuid4().hex[:9], role=role, rate=rate)
        with self._lock:
            self._team.append(member)
        return member.model_copy()

    def update_member(self, member_id: str, role: Optional[str] = None, rate: Optional[float] = None) -> TeamMember:
        with self._lock:
            for i, m in enumerate(self._team):
                if m.id == member_id:
                    updates: Dict[str, Any] = {}
                    if role is not None:
                        updates["role"] = role
                    if rate is not None:
                        updates["rate"] = rate
                    self._team[i] = TeamMember.model_validate({**m.model_dump(), **updates})
                    return self._team[i].model_copy()
        raise ConfigNotFoundError(f"Unknown team member '{member_id}'")

    def remove_member(self, member_id: str) -> None:
        with self._lock:
            if not any(m.id == member_id for m in self._team):
                raise ConfigNotFoundError(f"Unknown team member '{member_id}'")
            if len(self._team) <= 1:
                raise ValueError("The team must keep at least one member")
            self._team = [m for m in self._team if m.id != member_id]

    # ------------------------------------------------------------------
    # Multipliers
    # ------------------------------------------------------------------

    def get_multipliers(self) -> GlobalMultipliers:
        with self._lock:
            return self._multipliers.model_copy(deep=True)

    def set_multipliers(self, multipliers: GlobalMultipliers) -> GlobalMultipliers:
        with self._lock:
            self._multipliers = multipliers.model_copy(deep=True)
        return self.get_multipliers()

    # ------------------------------------------------------------------
    # Stage definitions
    # ------------------------------------------------------------------

    def list_stage_definitions(self) -> List[StageDefinition]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._stage_definitions]

    def add_stage_definition(self, definition: StageDefinition) -> StageDefinition:
        if not definition.id:
            definition = definition.model_copy(update={"id": _new_id("stage")})
        with self._lock:
            if any(s.id == definition.id for s in self._stage_definitions):
                raise ValueError(f"Stage '{definition.id}' already exists")
            self._stage_definitions.append(definition.model_copy(deep=True))
        return definition

    def update_stage_definition(self, stage_id: str, **fields: Any) -> StageDefinition:
        with self._lock:
            for i, s in enumerate(self._stage_definitions):
                if s.id == stage_id:
                    self._stage_definitions[i] = StageDefinition.model_validate(
                        {**s.model_dump(), **fields, "id": stage_id}
                    )
                    return self._stage_definitions[i].model_copy(deep=True)
        raise ConfigNotFoundError(f"Unknown stage '{stage_id}'")

    def delete_stage_definition(self, stage_id: str) -> None:
        with self._lock:
            before = len(self._stage_definitions)
            self._stage_definitions = [s for s in self._stage_definitions if s.id != stage_id]
            if len(self._stage_definitions) == before:
                raise ConfigNotFoundError(f"Unknown stage '{stage_id}'")

    def new_session_stages(self) -> List[Stage]:
        """Fresh stage list for a new calculation session, with empty allocations."""
        return [Stage.model_validate(s.model_dump()) for s in self.list_stage_definitions()]

    # ------------------------------------------------------------------
    # Reference lists
    # ------------------------------------------------------------------

    def list_building_types(self) -> List[BuildingType]:
        with self._lock:
            return [b.model_copy() for b in self._building_types]

    def add_building_type(self, name: str) -> BuildingType:
        item = BuildingType(id=_new_id("b"), name=name.strip())
        with self._lock:
            self._building_types.append(item)
        return item

    def rename_building_type(self, building_type_id: str, name: str) -> BuildingType:
        with self._lock:
            for i, b in enumerate(self._building_types):
                if b.id == building_type_id:
                    self._building_types[i] = BuildingType(id=b.id, name=name.strip())
                    return self._building_types[i].model_copy()
        raise ConfigNotFoundError(f"Unknown building type '{building_type_id}'")

    def delete_building_type(self, building_type_id: str) -> None:
        with self._lock:
            before = len(self._building_types)
            self._building_types = [b for b in self._building_types if b.id != building_type_id]
            if len(self._building_types) == before:
                raise ConfigNotFoundError(f"Unknown building type '{building_type_id}'")

    def list_action_types(self) -> List[ActionType]:
        with self._lock:
            return [a.model_copy() for a in self._action_types]

    def add_action_type(self, name: str) -> ActionType:
        item = ActionType(id=_new_id("act"), name=name.strip())
        with self._lock:
            self._action_types.append(item)
        return item

    def rename_action_type(self, action_type_id: str, name: str) -> ActionType:
        with self._lock:
            for i, a in enumerate(self._action_types):
                if a.id == action_type_id:
                    self._action_types[i] = ActionType(id=a.id, name=name.strip())
                    return self._action_types[i].model_copy()
        raise ConfigNotFoundError(f"Unknown action type '{action_type_id}'")

    def delete_action_type(self, action_type_id: str) -> None:
        with self._lock:
            before = len(self._action_types)
            self._action_types = [a for a in self._action_types if a.id != action_type_id]
            if len(self._action_types) == before:
                raise ConfigNotFoundError(f"Unknown action type '{action_type_id}'")

