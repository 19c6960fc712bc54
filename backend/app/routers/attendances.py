"""
签到管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Booking
from app.models.schemas import CheckInRequest, AttendanceResponse
from app.routers.common import http_error
from app.security.auth import CallerContext, get_caller_context, require_librarian
from app.services.attendance_service import AttendanceService
from app.services.errors import BookingDomainError

router = APIRouter(prefix="/attendances", tags=["签到管理"])


def _check_access(booking: Booking, ctx: CallerContext) -> None:
    """预订人本人，或所属图书馆的管理员"""
    if booking.user_id == ctx.user_id:
        return
    if ctx.is_librarian and ctx.library_id == booking.library_id:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="无权操作该预订")


@router.post("/{booking_id}/check-in", response_model=AttendanceResponse,
             status_code=status.HTTP_201_CREATED)
def check_in(
    booking_id: int,
    data: Optional[CheckInRequest] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """签到（扫码或人工）"""
    service = AttendanceService(db)
    try:
        _check_access(service.booking_service.get_booking(booking_id), ctx)
        method = data.method if data else CheckInRequest().method
        return service.check_in(booking_id, method=method)
    except BookingDomainError as e:
        raise http_error(e)


@router.post("/{booking_id}/check-out", response_model=AttendanceResponse)
def check_out(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context)
):
    """签退"""
    service = AttendanceService(db)
    try:
        _check_access(service.booking_service.get_booking(booking_id), ctx)
        return service.check_out(booking_id)
    except BookingDomainError as e:
        raise http_error(e)


@router.get("/library", response_model=List[AttendanceResponse])
def list_library_attendances(
    booking_id: Optional[int] = None,
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """本馆签到记录"""
    return AttendanceService(db).get_attendances(ctx.library_id, booking_id=booking_id, user_id=user_id)
