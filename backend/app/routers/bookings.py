"""
预订管理路由
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import BookingStatus, BookingType
from app.models.schemas import (
    DailyBookingCreate, MonthlyBookingCreate, BookingResponse,
    BookingStatusUpdate, BookingReasonRequest, PaymentStatusUpdate
)
from app.routers.common import http_error
from app.security.auth import CallerContext, get_caller_context, require_librarian
from app.services.booking_service import BookingService
from app.services.errors import BookingDomainError

router = APIRouter(prefix="/bookings", tags=["预订管理"])


# ============== 预订人 ==============

@router.post("/daily", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_daily_booking(
    data: DailyBookingCreate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """创建单次预订"""
    try:
        return BookingService(db).create_daily_booking(
            library_id=data.library_id,
            user_id=ctx.user_id,
            seat_id=data.seat_id,
            time_slot_id=data.time_slot_id,
            booking_date=data.booking_date,
        )
    except BookingDomainError as e:
        raise http_error(e)


@router.post("/monthly", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_monthly_booking(
    data: MonthlyBookingCreate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """创建月度预订"""
    try:
        return BookingService(db).create_monthly_booking(
            library_id=data.library_id,
            user_id=ctx.user_id,
            seat_id=data.seat_id,
            start_date=data.start_date,
            end_date=data.end_date,
            amount=data.amount,
        )
    except BookingDomainError as e:
        raise http_error(e)


@router.get("/my-bookings", response_model=List[BookingResponse])
def list_my_bookings(
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    return BookingService(db).get_user_bookings(ctx.user_id)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_my_booking(
    booking_id: int,
    data: Optional[BookingReasonRequest] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """预订人取消自己的预订"""
    service = BookingService(db)
    try:
        booking = service.get_booking(booking_id)
        if booking.user_id != ctx.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="只能取消自己的预订")
        return service.cancel(booking_id, reason=data.reason if data else None)
    except BookingDomainError as e:
        raise http_error(e)


# ============== 管理员 ==============

@router.get("/library", response_model=List[BookingResponse])
def list_library_bookings(
    status_filter: Optional[BookingStatus] = None,
    booking_date: Optional[date] = None,
    user_id: Optional[int] = None,
    seat_id: Optional[int] = None,
    booking_type: Optional[BookingType] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """本馆预订列表"""
    return BookingService(db).get_bookings(
        ctx.library_id,
        status=status_filter,
        booking_date=booking_date,
        user_id=user_id,
        seat_id=seat_id,
        booking_type=booking_type,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """获取预订详情（预订人本人或所属图书馆管理员）"""
    try:
        booking = BookingService(db).get_booking(booking_id)
    except BookingDomainError as e:
        raise http_error(e)
    if booking.user_id != ctx.user_id and not (ctx.is_librarian and ctx.library_id == booking.library_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="无权查看该预订")
    return booking


@router.put("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """变更预订状态（按转换表校验）"""
    try:
        return BookingService(db).transition(booking_id, data.status, library_id=ctx.library_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.put("/{booking_id}/reject", response_model=BookingResponse)
def reject_booking(
    booking_id: int,
    data: Optional[BookingReasonRequest] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    try:
        return BookingService(db).reject(
            booking_id, reason=data.reason if data else None, library_id=ctx.library_id
        )
    except BookingDomainError as e:
        raise http_error(e)


@router.put("/{booking_id}/payment-status", response_model=BookingResponse)
def update_payment_status(
    booking_id: int,
    data: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """变更支付状态"""
    try:
        return BookingService(db).update_payment_status(
            booking_id, data.payment_status, library_id=ctx.library_id
        )
    except BookingDomainError as e:
        raise http_error(e)
