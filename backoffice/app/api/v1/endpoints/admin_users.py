"""
Admin User API Endpoints.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backoffice.app.api.v1.results import unwrap
from backoffice.app.core.guards import require_admin
from backoffice.app.db.session import get_db
from backoffice.app.domain.admin import user_admin
from backoffice.app.models.enums import UserRole
from backoffice.app.schemas.admin import ReasonRequest, RoleChangeRequest, UserResponse, UserStats
from backoffice.app.schemas.common import PagedResponse

router = APIRouter(prefix="/admin/users", tags=["Admin - Users"])


@router.get("", response_model=PagedResponse)
async def list_users(
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    data = unwrap(await user_admin.list_users(db, role, is_active, search, page, page_size))
    return PagedResponse(
        items=[UserResponse.model_validate(row) for row in data["items"]],
        meta=data["meta"],
    )


@router.get("/stats", response_model=UserStats)
async def user_stats(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await user_admin.user_stats(db))


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await user_admin.get_user(db, user_id))


@router.post("/{user_id}/ban")
async def ban_user(
    data: ReasonRequest,
    user_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Ban a user.

    The account is deactivated first; active orders are then cancelled in a
    separate step whose failure does not undo the ban.
    """
    outcome = unwrap(await user_admin.ban_user(db, current_user["user_id"], user_id, data.reason))
    return {
        "user": UserResponse.model_validate(outcome["user"]),
        "cancelled_orders": outcome["cancelled_orders"],
    }


@router.post("/{user_id}/unban", response_model=UserResponse)
async def unban_user(
    user_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await user_admin.unban_user(db, current_user["user_id"], user_id))


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_role(
    data: RoleChangeRequest,
    user_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await user_admin.change_user_role(db, current_user["user_id"], user_id, data.role))
