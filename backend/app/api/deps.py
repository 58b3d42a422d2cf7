"""FastAPI dependency injection — stores and caller identity."""
from typing import AsyncGenerator, Optional
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.db import get_db
from app.services.config_repository import ConfigRepository
from app.services.history_store import CalculationHistoryStore
from app.services.template_store import TemplateStore, file_seed

__all__ = [
    "get_history_store",
    "get_template_store",
    "get_optional_user_id",
    "get_user_id",
    "TemplateStore",
]


async def get_history_store(db: AsyncSession = Depends(get_db)) -> CalculationHistoryStore:
    return CalculationHistoryStore(db)


async def get_optional_user_id(x_user_id: str = Header("", alias="X-User-ID")) -> Optional[str]:
    return x_user_id.strip() or None


async def get_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    """
    Identity of the caller. Authentication happens upstream; this service only
    needs a stable owner id to scope configuration, saved calculations and
    projects.
    """
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-ID header required")
    return user_id


async def get_template_store(
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[TemplateStore, None]:
    """
    The caller's configuration for this request.

    Anonymous callers get the shared defaults, never persisted. An identified
    caller gets their saved configuration; whatever the route changed is
    written back before ``get_db`` commits.
    """
    if user_id is None:
        yield TemplateStore(seed=file_seed())
        return
    repo = ConfigRepository(db, user_id)
    store = await repo.load()
    yield store
    await repo.save(store)
