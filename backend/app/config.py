"""
Fee estimator configuration — single source of truth for environment
settings and calculation constants.

Import from here in all services and routes rather than hardcoding values.
"""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


# ── Environment ───────────────────────────────────────────────────────────────

DATABASE_URL: str = os.getenv("DATABASE_URL", "")
DB_RESET_ON_STARTUP: bool = os.getenv("DB_RESET_ON_STARTUP", "").lower() in ("1", "true", "yes")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
JSON_LOGS: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"

CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")
    if o.strip()
]

# Optional JSON file overriding the seeded templates / team / multipliers
FEE_CONFIG_PATH: str = os.getenv("FEE_CONFIG_PATH", "")

APP_VERSION: str = "1.0.0"


# ── Time units ────────────────────────────────────────────────────────────────
# Stage hours are always stored in RBH; days and weeks are display conversions.

HOURS_PER_DAY: int = 8
HOURS_PER_WEEK: int = 40

TIME_UNIT_HOURS: dict[str, int] = {
    "h": 1,
    "d": HOURS_PER_DAY,
    "w": HOURS_PER_WEEK,
}


# ── Calculation constants ─────────────────────────────────────────────────────

# Stage allocator leaves a stage alone when the recomputed hour sum is within this
ALLOCATION_EPSILON: float = 0.001

# Upper bound for count elements with no explicit max
DEFAULT_COUNT_MAX: int = 99

# Selectors used when ProjectInputs does not name one
DEFAULT_COMPLEXITY: str = "medium"
DEFAULT_LOD: str = "standard"

# Appended to names of cloned templates and restored calculation variants
COPY_SUFFIX: str = " (copy)"
