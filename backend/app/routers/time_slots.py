"""
时段管理路由
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.schemas import (
    TimeSlotCreate, TimeSlotUpdate, TimeSlotResponse, SeatIdsRequest, SeatResponse
)
from app.routers.common import http_error
from app.security.auth import CallerContext, get_caller_context, require_librarian
from app.services.errors import BookingDomainError
from app.services.time_slot_service import TimeSlotService

router = APIRouter(prefix="/time-slots", tags=["时段管理"])


@router.get("", response_model=List[TimeSlotResponse])
def list_time_slots(
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """获取本馆时段列表"""
    return TimeSlotService(db).get_time_slots(ctx.library_id, is_active)


@router.get("/library/{library_id}", response_model=List[TimeSlotResponse])
def list_library_time_slots(
    library_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """预订人查看某图书馆的可用时段"""
    return TimeSlotService(db).get_time_slots(library_id, is_active=True)


@router.post("", response_model=TimeSlotResponse, status_code=status.HTTP_201_CREATED)
def create_time_slot(
    data: TimeSlotCreate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """创建时段"""
    try:
        return TimeSlotService(db).create_time_slot(ctx.library_id, data.start_time, data.end_time, data.price)
    except BookingDomainError as e:
        raise http_error(e)


@router.get("/{time_slot_id}", response_model=TimeSlotResponse)
def get_time_slot(
    time_slot_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        return TimeSlotService(db).get_time_slot(time_slot_id, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.put("/{time_slot_id}", response_model=TimeSlotResponse)
def update_time_slot(
    time_slot_id: int,
    data: TimeSlotUpdate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """修改时段（不影响已有预订金额）"""
    try:
        return TimeSlotService(db).update_time_slot(time_slot_id, data, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.patch("/{time_slot_id}/toggle-status", response_model=TimeSlotResponse)
def toggle_time_slot_status(
    time_slot_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        return TimeSlotService(db).toggle_active(time_slot_id, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.delete("/{time_slot_id}")
def delete_time_slot(
    time_slot_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        TimeSlotService(db).delete_time_slot(time_slot_id, ctx.library_id)
        return {"message": "删除成功"}
    except BookingDomainError as e:
        raise http_error(e)


@router.post("/{time_slot_id}/add-seats", response_model=TimeSlotResponse)
def add_seats(
    time_slot_id: int,
    data: SeatIdsRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """分配座位到时段（幂等）"""
    try:
        return TimeSlotService(db).assign_seats(time_slot_id, data.seat_ids, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.post("/{time_slot_id}/remove-seats", response_model=TimeSlotResponse)
def remove_seats(
    time_slot_id: int,
    data: SeatIdsRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """从时段移除座位（已有预订保留）"""
    try:
        return TimeSlotService(db).unassign_seats(time_slot_id, data.seat_ids, ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.get("/{time_slot_id}/available-seats", response_model=List[SeatResponse])
def list_available_seats(
    time_slot_id: int,
    booking_date: date,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """查询指定日期该时段的空闲座位"""
    try:
        return TimeSlotService(db).get_available_seats(time_slot_id, booking_date)
    except BookingDomainError as e:
        raise http_error(e)
