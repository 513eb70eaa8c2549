import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import settings
from app.database import get_db
from app.dependencies import require_admin
from app.exceptions import InvalidState
from app.models import Role, User
from app.schemas import (
    AuditReport,
    ContentLikesResponse,
    DeleteUserRequest,
    LikeStatsResponse,
    OrphanCleanupReport,
    PromoteUserRequest,
    ResyncReport,
    UserCreate,
    UserDeletionTally,
    UserListResponse,
    UserResponse,
)
from app.services import cascade_service, consistency_service, like_service, user_service
from app.services.content_registry import parse_content_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

def _parse_scope(types: list[str] | None):
    return [parse_content_type(t) for t in types] if types else None

@router.post("/create-first-admin", status_code=201, response_model=UserResponse)
async def create_first_admin(
    data: UserCreate,
    secret_key: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    if not settings.FIRST_ADMIN_SECRET:
        raise HTTPException(status_code=503, detail="First-admin bootstrap is not configured")
    if secret_key != settings.FIRST_ADMIN_SECRET:
        raise HTTPException(status_code=403, detail="Invalid secret key")
    if await user_service.admin_exists(db):
        raise InvalidState("An administrator already exists")
    try:
        admin = await user_service.create_user(db, data, role=Role.ADMIN)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="A user with this username or email already exists")
    logger.info("First administrator created: %s", admin["email"])
    return admin

@router.get("/users", response_model=UserListResponse)
async def list_users(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await user_service.get_users_overview(db)

@router.post("/promote-user", response_model=UserResponse)
async def promote_user(
    data: PromoteUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.promote_user(db, data, admin)

@router.delete("/users/{user_id}", response_model=UserDeletionTally)
async def delete_user(
    user_id: int,
    data: DeleteUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not data.confirm_action:
        raise InvalidState("Deletion must be confirmed with confirm_action=true")
    if user_id == admin.id:
        raise InvalidState("Use DELETE /api/v1/users/me to delete your own account")
    logger.info("Admin %s requested deletion of user %s", admin.email, user_id)
    return await cascade_service.delete_user(db, user_id)

@router.get("/likes/diagnostic", response_model=AuditReport)
async def audit_consistency(
    content_type: list[str] | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await consistency_service.audit_consistency(db, _parse_scope(content_type))

@router.post("/likes/sync-counters", response_model=ResyncReport)
async def resync_counters(
    content_type: list[str] | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    logger.info("Counter resync requested by %s", admin.email)
    return await consistency_service.resync_counters(db, _parse_scope(content_type))

@router.post("/cleanup-orphaned-likes", response_model=OrphanCleanupReport)
async def cleanup_orphaned_likes(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    logger.info("Orphaned-like cleanup requested by %s", admin.email)
    return await consistency_service.cleanup_orphaned_likes(db)

@router.get("/likes/stats", response_model=LikeStatsResponse)
async def like_stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await like_service.get_like_stats(db)

@router.get("/likes/{content_type}/{content_id}", response_model=ContentLikesResponse)
async def content_likes(
    content_type: str,
    content_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.list_content_likes(db, parse_content_type(content_type), content_id)
