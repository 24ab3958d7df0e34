from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.rbac import require_super_admin, require_teacher
from tuitiondesk.auth.schemas import CurrentUser
from tuitiondesk.db.session import get_db

from .schemas import SystemStats, TeacherStats
from . import service

router = APIRouter(prefix="/api/v1/stats", tags=["stats"])


@router.get("/teacher", response_model=TeacherStats)
async def teacher_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> TeacherStats:
    """Dashboard totals across all of the caller's batches."""
    return await service.get_teacher_stats(db, current_user.id)


@router.get("/system", response_model=SystemStats)
async def system_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_super_admin),
) -> SystemStats:
    return await service.get_system_stats(db)
