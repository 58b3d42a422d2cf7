"""ORM Models for the fee estimator — SQLAlchemy 2.0"""
import uuid
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, Float, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── PROJECT GROUPS ────────────────────────────────────────────────────────────
class ProjectGroupRecord(Base):
    __tablename__ = "project_groups"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # ProjectInputs JSON used to prefill new calculations in this project
    default_inputs: Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    calculations: Mapped[list["SavedCalculationRecord"]] = relationship(
        "SavedCalculationRecord", back_populates="project"
    )


# ── SAVED CALCULATIONS ────────────────────────────────────────────────────────
class SavedCalculationRecord(Base):
    """
    One saved calculation. ``snapshot`` holds the full SavedCalculation JSON
    (inputs, stages, team, templates, multipliers); the scalar columns are
    the parts that are listed, filtered or edited without reading the blob.
    """
    __tablename__ = "saved_calculations"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    project_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("project_groups.id", ondelete="SET NULL")
    )
    name: Mapped[str] = mapped_column(String(255), default="")
    total_cost: Mapped[float] = mapped_column(Float, default=0.0)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    project: Mapped[Optional["ProjectGroupRecord"]] = relationship(
        "ProjectGroupRecord", back_populates="calculations"
    )

    __table_args__ = (
        Index("ix_saved_calculations_user_saved_at", "user_id", "saved_at"),
    )


# ── FEE CONFIGURATION ─────────────────────────────────────────────────────────
class FeeConfigRecord(Base):
    """
    One configuration collection of one owner: ``collection`` is a TemplateStore
    export key (templates, team, multipliers, stages, building_types,
    action_types) and ``payload`` its JSON. Collections without a row fall back
    to the built-in defaults.
    """
    __tablename__ = "fee_config"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    collection: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[Any] = mapped_column(JSONB, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "collection", name="uq_fee_config_owner_collection"),
    )
