"""
签到服务 - 本体操作层
记录到馆签到/签退（扫码或人工）

- 单次预订：签到驱动 confirmed -> checked-in，签退驱动 checked-in -> completed，
  状态变更一律走 BookingService.transition
- 月度预订：整个区间内保持 confirmed，只记录每次到馆的签到会话
"""
from datetime import datetime
from typing import Callable, List, Optional, Union
import logging
from sqlalchemy.orm import Session
from app.models.ontology import (
    Attendance, AttendanceMethod, Booking, BookingStatus, BookingType
)
from app.models.events import EventType, AttendanceData
from app.services.event_bus import event_bus, Event
from app.services.booking_service import BookingService
from app.services.errors import AttendanceError, IllegalTransition

logger = logging.getLogger(__name__)


class AttendanceService:
    """签到服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 booking_service: Optional[BookingService] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self.booking_service = booking_service or BookingService(db, event_publisher)

    def get_attendances(self, library_id: int, booking_id: Optional[int] = None,
                        user_id: Optional[int] = None) -> List[Attendance]:
        query = self.db.query(Attendance).filter(Attendance.library_id == library_id)
        if booking_id is not None:
            query = query.filter(Attendance.booking_id == booking_id)
        if user_id is not None:
            query = query.filter(Attendance.user_id == user_id)
        return query.order_by(Attendance.check_in_time.desc()).all()

    def get_open_session(self, booking_id: int) -> Optional[Attendance]:
        return self.db.query(Attendance).filter(
            Attendance.booking_id == booking_id,
            Attendance.check_out_time.is_(None)
        ).order_by(Attendance.check_in_time.desc()).first()

    def check_in(self, booking_id: int, method: Union[str, AttendanceMethod] = AttendanceMethod.QR,
                 at: Optional[datetime] = None, library_id: Optional[int] = None) -> Attendance:
        """
        签到

        先完成全部校验；单次预订的签到记录与 confirmed -> checked-in 同一次提交
        """
        at = at or datetime.utcnow()
        method = self._parse_method(method)
        booking = self.booking_service.get_booking(booking_id, library_id)

        if self.get_open_session(booking.id):
            raise AttendanceError("已签到，请先签退", {"booking_id": booking_id})

        attendance = Attendance(
            booking_id=booking.id,
            library_id=booking.library_id,
            user_id=booking.user_id,
            method=method,
            check_in_time=at,
        )

        if booking.booking_type == BookingType.DAILY:
            self.booking_service.transition(booking.id, BookingStatus.CHECKED_IN, with_rows=[attendance])
        else:
            self._require_monthly_window(booking, at)
            self.db.add(attendance)
            self.db.commit()
        self.db.refresh(attendance)

        logger.info(f"Booking {booking_id} checked in ({attendance.method.value})")
        self._emit(EventType.ATTENDANCE_CHECKED_IN, attendance)
        return attendance

    def check_out(self, booking_id: int, at: Optional[datetime] = None,
                  library_id: Optional[int] = None) -> Attendance:
        """签退，补全本次会话时长"""
        at = at or datetime.utcnow()
        booking = self.booking_service.get_booking(booking_id, library_id)

        attendance = self.get_open_session(booking.id)
        if attendance is None:
            raise AttendanceError("没有进行中的签到记录", {"booking_id": booking_id})
        if at < attendance.check_in_time:
            raise AttendanceError("签退时间早于签到时间", {"booking_id": booking_id})

        attendance.check_out_time = at
        attendance.duration_minutes = int((at - attendance.check_in_time).total_seconds() // 60)

        if booking.booking_type == BookingType.DAILY:
            # 会话关闭与 checked-in -> completed 同一次提交
            try:
                self.booking_service.transition(booking.id, BookingStatus.COMPLETED, with_rows=[attendance])
            except IllegalTransition:
                self.db.rollback()
                raise
        else:
            self.db.commit()
        self.db.refresh(attendance)

        logger.info(f"Booking {booking_id} checked out after {attendance.duration_minutes} min")
        self._emit(EventType.ATTENDANCE_CHECKED_OUT, attendance)
        return attendance

    @staticmethod
    def _parse_method(value: Union[str, AttendanceMethod]) -> AttendanceMethod:
        try:
            return AttendanceMethod(value)
        except ValueError:
            allowed = ", ".join(m.value for m in AttendanceMethod)
            raise AttendanceError(f"签到方式 '{value}' 不合法，可选值: {allowed}", {"method": str(value)})

    @staticmethod
    def _require_monthly_window(booking: Booking, at: datetime) -> None:
        if booking.status != BookingStatus.CONFIRMED:
            raise AttendanceError(
                f"月度预订状态为 {booking.status.value}，不能签到",
                {"booking_id": booking.id}
            )
        if not (booking.start_date <= at.date() <= booking.end_date):
            raise AttendanceError(
                "不在月度预订有效期内",
                {"booking_id": booking.id, "start_date": booking.start_date.isoformat(),
                 "end_date": booking.end_date.isoformat()}
            )

    def _emit(self, event_type: EventType, attendance: Attendance) -> None:
        try:
            self._publish_event(Event(
                event_type=event_type.value,
                data=AttendanceData(
                    attendance_id=attendance.id,
                    booking_id=attendance.booking_id,
                    library_id=attendance.library_id,
                    user_id=attendance.user_id,
                    method=attendance.method.value,
                    duration_minutes=attendance.duration_minutes,
                ).to_dict(),
                source="attendance_service"
            ))
        except Exception as e:
            logger.error(f"Failed to publish {event_type.value}: {e}", exc_info=True)
