"""
Seed configuration for the fee estimator.

Default team roster, global multipliers, stage definitions, reference lists and
the two starter templates (single-family house and industrial hall, both new
builds). TemplateStore deep-copies these on startup; nothing here is mutated.
"""
from typing import List

from app.models.fee_schema import (
    ActionType,
    BuildingType,
    CalculationTemplate,
    GlobalMultipliers,
    StageDefinition,
    StageKind,
    TeamMember,
)


# ---------------------------------------------------------------------------
# Suggested role vocabulary (roles are open strings; these are just defaults)
# ---------------------------------------------------------------------------
ROLE_ARCHITECT: str = "Architect"
ROLE_ASSISTANT: str = "Assistant"
ROLE_MANAGER: str = "Project Manager"

SUGGESTED_ROLES: List[str] = [ROLE_ARCHITECT, ROLE_ASSISTANT, ROLE_MANAGER]


DEFAULT_TEAM: List[TeamMember] = [
    TeamMember(id="1", role=ROLE_ARCHITECT, rate=250.0),
    TeamMember(id="2", role=ROLE_ASSISTANT, rate=100.0),
    TeamMember(id="3", role=ROLE_MANAGER, rate=300.0),
]


DEFAULT_MULTIPLIERS: GlobalMultipliers = GlobalMultipliers.model_validate({
    "complexity": {"low": 0.9, "medium": 1.0, "high": 1.2},
    "lod": {"standard": 1.0, "high": 1.25},
    "express": 1.20,
    "scale": {"enabled": True, "base_area": 150.0, "exponent": 0.2},
})


# Fallback stage split when a template defines no weights of its own
STAGE_DISTRIBUTION = {
    "stage_inventory": 0.05,
    "stage_concept": 0.15,
    "stage_permit": 0.30,
    "stage_technical": 0.20,
    "stage_executive": 0.20,
    "stage_supervision": 0.10,
}


DEFAULT_BUILDING_TYPES: List[BuildingType] = [
    BuildingType(id="b_house", name="Single-Family House"),
    BuildingType(id="b_industrial", name="Industrial Building / Hall"),
    BuildingType(id="b_office", name="Office Building"),
    BuildingType(id="b_multi", name="Multi-Family Residential"),
    BuildingType(id="b_interior", name="Interiors"),
]

DEFAULT_ACTION_TYPES: List[ActionType] = [
    ActionType(id="act_new", name="New Build"),
    ActionType(id="act_extension", name="Extension"),
    ActionType(id="act_superstructure", name="Superstructure"),
    ActionType(id="act_rebuild", name="Rebuild"),
    ActionType(id="act_modernization", name="Modernization"),
    ActionType(id="act_usage_change", name="Change of Use"),
    ActionType(id="act_revital", name="Revitalization / Restoration"),
]


def _internal(stage_id: str, name: str, description: str) -> StageDefinition:
    return StageDefinition(id=stage_id, kind=StageKind.INTERNAL_RBH, name=name,
                           description=description, is_enabled=True)


def _external(stage_id: str, name: str, description: str) -> StageDefinition:
    return StageDefinition(id=stage_id, kind=StageKind.EXTERNAL_FIXED, name=name,
                           description=description, is_enabled=False, fixed_price=0.0)


DEFAULT_STAGE_DEFINITIONS: List[StageDefinition] = [
    _internal("stage_inventory", "Feasibility / Site Analysis", "Zoning plan and site constraints review."),
    _internal("stage_concept", "Concept Design", "Functional layouts, visualisations."),
    _internal("stage_permit", "Building Permit Design", "Documentation for the building permit."),
    _internal("stage_technical", "Technical Design", "Structure and MEP coordination."),
    _internal("stage_executive", "Construction Documents", "Architectural details."),
    _internal("stage_supervision", "Design Supervision", "Site visits during construction."),
    # External
    _external("ext_geo", "Surveying (Map)", "Map for design purposes."),
    _external("ext_soil", "Geotechnics", "Soil investigation."),
    _external("ext_constr", "Structural Engineering", "Structural designer."),
    _external("ext_hvac", "Mechanical (HVAC)", "Water, drainage, heating, ventilation."),
    _external("ext_ele", "Electrical Engineering", "Power and low-voltage systems."),
    _external("ext_fire", "Fire Safety Consultant", "Fire protection approval."),
]


DEFAULT_TEMPLATES: List[CalculationTemplate] = [
    CalculationTemplate.model_validate({
        "id": "tpl_house_new",
        "building_type_id": "b_house",
        "action_type_id": "act_new",
        "name": "Single-Family House - New Build",
        "description": "Template for detached and semi-detached single-family homes.",
        "role_distribution": {ROLE_ARCHITECT: 0.6, ROLE_ASSISTANT: 0.4},
        "stage_weights": dict(STAGE_DISTRIBUTION),
        "default_fixed_costs": {"ext_geo": 1500.0, "ext_soil": 1000.0},
        "default_enabled_stages": [
            "stage_concept", "stage_permit", "stage_technical", "stage_executive", "ext_geo",
        ],
        "groups": [
            {
                "id": "g_mass",
                "name": "Massing & Structure",
                "elements": [
                    {"id": "el_base", "name": "Project base", "description": "Standard scope, core documentation.",
                     "base_hours": 120, "input_kind": "boolean"},
                    {"id": "el_story", "name": "Additional storey", "description": "Upper floor or usable attic.",
                     "base_hours": 40, "input_kind": "count", "min": 0, "max": 5},
                    {"id": "el_basement", "name": "Basement", "description": "Waterproofing, deep foundations.",
                     "base_hours": 50, "input_kind": "boolean"},
                    {"id": "el_complex_roof", "name": "Complex / multi-pitch roof",
                     "description": "Roof framing with complex geometry.", "base_hours": 35, "input_kind": "boolean"},
                    {"id": "el_garage", "name": "Integrated garage",
                     "description": "Garage inside the residential volume.", "base_hours": 20, "input_kind": "boolean"},
                ],
            },
            {
                "id": "g_interior",
                "name": "Functional Layout",
                "elements": [
                    {"id": "el_bathroom", "name": "Bathroom / WC", "description": "Details, wall elevations, services.",
                     "base_hours": 15, "input_kind": "count", "min": 1},
                    {"id": "el_kitchen", "name": "Kitchen", "description": "Functional kitchen design.",
                     "base_hours": 15, "input_kind": "count", "min": 1},
                    {"id": "el_rooms", "name": "Rooms / Bedrooms", "description": "Number of habitable rooms.",
                     "base_hours": 5, "input_kind": "count"},
                    {"id": "el_mezzanine", "name": "Mezzanine / Void", "description": "Open space, railings, views.",
                     "base_hours": 25, "input_kind": "boolean"},
                ],
            },
            {
                "id": "g_tech",
                "name": "Technical Zones",
                "elements": [
                    {"id": "el_hvac_recu", "name": "Heat recovery ventilation",
                     "description": "Mechanical ventilation coordination.", "base_hours": 15, "input_kind": "boolean"},
                    {"id": "el_smarthome", "name": "Smart home", "description": "Advanced electrical design.",
                     "base_hours": 30, "input_kind": "boolean"},
                    {"id": "el_heat_pump", "name": "Heat pump", "description": "Unit selection and placement.",
                     "base_hours": 10, "input_kind": "boolean"},
                ],
            },
            {
                "id": "g_facade",
                "name": "Envelope & Detail",
                "elements": [
                    {"id": "el_glass", "name": "Large-format glazing",
                     "description": "Lift-and-slide, curtain walls, installation details.",
                     "base_hours": 40, "input_kind": "boolean"},
                    {"id": "el_terrace", "name": "Terrace / Balcony",
                     "description": "Build-ups, drainage, balustrades.", "base_hours": 20, "input_kind": "count"},
                    {"id": "el_facade_detail", "name": "Bespoke facade detail",
                     "description": "Stone, timber, sintered panels.", "base_hours": 35, "input_kind": "boolean"},
                ],
            },
        ],
    }),
    CalculationTemplate.model_validate({
        "id": "tpl_industrial_new",
        "building_type_id": "b_industrial",
        "action_type_id": "act_new",
        "name": "Industrial Building - New Build",
        "description": "Template for production halls, warehouses and logistics buildings.",
        "role_distribution": {ROLE_ARCHITECT: 0.5, ROLE_ASSISTANT: 0.3, ROLE_MANAGER: 0.2},
        "stage_weights": {
            "stage_inventory": 0.05,
            "stage_concept": 0.10,
            "stage_permit": 0.35,
            "stage_technical": 0.25,
            "stage_executive": 0.15,
            "stage_supervision": 0.10,
        },
        "default_fixed_costs": {},
        "default_enabled_stages": ["stage_concept", "stage_permit", "stage_technical"],
        "groups": [
            {
                "id": "g_ind_struct",
                "name": "Hall Structure",
                "elements": [
                    {"id": "el_ind_base", "name": "Hall project base",
                     "description": "Primary structure, system cladding.", "base_hours": 250, "input_kind": "boolean"},
                    {"id": "el_ind_nave", "name": "Additional bay",
                     "description": "Repeated structural grid.", "base_hours": 80, "input_kind": "count"},
                    {"id": "el_ind_soc", "name": "Staff/office area (small)",
                     "description": "Built-in, up to 200 m2.", "base_hours": 100, "input_kind": "boolean"},
                    {"id": "el_ind_soc_large", "name": "Office block (>200 m2)",
                     "description": "Separate office volume.", "base_hours": 250, "input_kind": "boolean"},
                ],
            },
            {
                "id": "g_ind_process",
                "name": "Process & Technology",
                "elements": [
                    {"id": "el_ind_line", "name": "Production line",
                     "description": "Coordination with process technology.", "base_hours": 60, "input_kind": "count"},
                    {"id": "el_ind_crane", "name": "Overhead crane",
                     "description": "Crane beams, foundations.", "base_hours": 40, "input_kind": "count"},
                    {"id": "el_ind_zone", "name": "Separate fire zone",
                     "description": "Fire walls, fire doors.", "base_hours": 30, "input_kind": "count"},
                ],
            },
            {
                "id": "g_ind_logistics",
                "name": "Logistics",
                "elements": [
                    {"id": "el_ind_dock", "name": "Loading dock",
                     "description": "Ramp, seals, details.", "base_hours": 15, "input_kind": "count"},
                    {"id": "el_ind_gate", "name": "Grade-level door",
                     "description": "Drive-in access at ground level.", "base_hours": 10, "input_kind": "count"},
                    {"id": "el_ind_roads", "name": "HGV road layout",
                     "description": "Yards, turning radii.", "base_hours": 60, "input_kind": "boolean"},
                ],
            },
            {
                "id": "g_ind_install",
                "name": "Industrial Services",
                "elements": [
                    {"id": "el_ind_sprinkler", "name": "Sprinkler system",
                     "description": "Tank and pump room coordination.", "base_hours": 40, "input_kind": "boolean"},
                    {"id": "el_ind_ex", "name": "Explosion hazard zones (EX)",
                     "description": "Specialist solutions.", "base_hours": 80, "input_kind": "boolean"},
                ],
            },
        ],
    }),
]
