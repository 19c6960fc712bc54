"""
图书馆管理路由
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.schemas import LibraryCreate, LibraryUpdate, LibraryResponse
from app.routers.common import http_error
from app.security.auth import CallerContext, require_librarian
from app.services.errors import BookingDomainError
from app.services.library_service import LibraryService

router = APIRouter(prefix="/libraries", tags=["图书馆管理"])


@router.post("", response_model=LibraryResponse, status_code=status.HTTP_201_CREATED)
def register_library(data: LibraryCreate, db: Session = Depends(get_db)):
    """注册图书馆"""
    return LibraryService(db).create_library(data)


@router.get("/me", response_model=LibraryResponse)
def get_my_library(
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """获取当前管理员所属图书馆"""
    try:
        return LibraryService(db).get_library(ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.put("/me", response_model=LibraryResponse)
def update_my_library(
    data: LibraryUpdate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """编辑图书馆资料"""
    try:
        return LibraryService(db).update_library(ctx.library_id, data)
    except BookingDomainError as e:
        raise http_error(e)


@router.patch("/me/deactivate", response_model=LibraryResponse)
def deactivate_my_library(
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """停用图书馆（不删除）"""
    try:
        return LibraryService(db).set_active(ctx.library_id, False)
    except BookingDomainError as e:
        raise http_error(e)


@router.patch("/me/activate", response_model=LibraryResponse)
def activate_my_library(
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        return LibraryService(db).set_active(ctx.library_id, True)
    except BookingDomainError as e:
        raise http_error(e)
