"""
座位管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import SeatMode
from app.models.schemas import SeatCreate, SeatUpdate, SeatResponse, SeatDetailResponse
from app.routers.common import http_error
from app.security.auth import CallerContext, require_librarian
from app.services.errors import BookingDomainError
from app.services.seat_service import SeatService

router = APIRouter(prefix="/seats", tags=["座位管理"])


@router.get("", response_model=List[SeatResponse])
def list_seats(
    seat_for: Optional[SeatMode] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """获取本馆座位列表"""
    return SeatService(db).get_seats(ctx.library_id, seat_for, is_active)


@router.post("", response_model=SeatResponse, status_code=status.HTTP_201_CREATED)
def create_seat(
    data: SeatCreate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """创建座位"""
    try:
        return SeatService(db).create_seat(ctx.library_id, data.seat_number, data.seat_name, data.seat_for)
    except BookingDomainError as e:
        raise http_error(e)


@router.post("/bulk", response_model=List[SeatResponse], status_code=status.HTTP_201_CREATED)
def bulk_create_seats(
    data: List[SeatCreate],
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """批量创建座位（全有或全无）"""
    try:
        return SeatService(db).bulk_create_seats(ctx.library_id, data)
    except BookingDomainError as e:
        raise http_error(e)


@router.get("/{seat_id}", response_model=SeatResponse)
def get_seat(
    seat_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        return SeatService(db).get_seat(seat_id, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.get("/{seat_id}/details", response_model=SeatDetailResponse)
def get_seat_details(
    seat_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """座位详情（已分配时段、各状态预订数）"""
    try:
        return SeatService(db).get_seat_detail(seat_id, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.put("/{seat_id}", response_model=SeatResponse)
def update_seat(
    seat_id: int,
    data: SeatUpdate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        return SeatService(db).update_seat(seat_id, data, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.patch("/{seat_id}/toggle-status", response_model=SeatResponse)
def toggle_seat_status(
    seat_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """启用/停用座位"""
    try:
        return SeatService(db).toggle_active(seat_id, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.delete("/{seat_id}")
def delete_seat(
    seat_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """删除座位（仅限从未被预订的座位）"""
    try:
        SeatService(db).delete_seat(seat_id, ctx.library_id)
        return {"message": "删除成功"}
    except BookingDomainError as e:
        raise http_error(e)
