"""
预订服务 - 本体操作层
管理 Booking 对象（分配与生命周期的聚合根）

- 创建：校验座位/时段后，通过存储的原子条件插入防止同一座位区间被重复分配
- 状态：所有状态变更都经过转换表校验（transition 是唯一入口），以比较并交换方式写入
- 支付状态独立演进，与预订状态不做自动联动
"""
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, Union
import logging
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from app.models.ontology import (
    Booking, BookingType, BookingStatus, PaymentStatus, SeatMode,
    ACTIVE_BOOKING_STATUSES
)
from app.models.events import (
    EventType, BookingCreatedData, BookingStatusChangedData, BookingPaymentChangedData
)
from app.services.event_bus import event_bus, Event
from app.services.booking_lifecycle import booking_state_machine, payment_state_machine
from app.services.booking_store import SqlAlchemyBookingStore
from app.services.library_service import LibraryService
from app.services.seat_service import SeatService
from app.services.time_slot_service import TimeSlotService, overlapping_slot_ids, validate_price
from app.services.errors import (
    BookingNotFound, IllegalTransition, InvalidDateRange, SeatInactive,
    SeatNotAssigned, TimeSlotInactive, WrongSeatMode
)
from core.persistence.store import IConditionalStore

logger = logging.getLogger(__name__)


# ============== 冲突条件 ==============

def daily_conflict_criteria(seat_id: int, slot_ids: List[int], booking_date: date) -> list:
    """单次预订冲突：同座位、同日期、重叠时段上的占用中预订"""
    return [
        Booking.seat_id == seat_id,
        Booking.booking_type == BookingType.DAILY,
        Booking.booking_date == booking_date,
        Booking.time_slot_id.in_(slot_ids),
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    ]


def monthly_conflict_criteria(seat_id: int, start_date: date, end_date: date) -> list:
    """月度预订冲突：existing.start <= new.end AND existing.end >= new.start"""
    return [
        Booking.seat_id == seat_id,
        Booking.booking_type == BookingType.MONTHLY,
        Booking.start_date <= end_date,
        Booking.end_date >= start_date,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    ]


class BookingService:
    """预订服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 store: Optional[IConditionalStore] = None):
        self.db = db
        self.store = store or SqlAlchemyBookingStore(db)
        self.library_service = LibraryService(db)
        self.seat_service = SeatService(db, event_publisher)
        self.time_slot_service = TimeSlotService(db, event_publisher)
        self._publish_event = event_publisher or event_bus.publish

    # ============== 查询 ==============

    def get_booking(self, booking_id: int, library_id: Optional[int] = None) -> Booking:
        query = self.db.query(Booking).filter(Booking.id == booking_id)
        if library_id is not None:
            query = query.filter(Booking.library_id == library_id)
        booking = query.first()
        if not booking:
            raise BookingNotFound("预订不存在", {"booking_id": booking_id})
        return booking

    def get_bookings(self, library_id: int, status: Optional[BookingStatus] = None,
                     booking_date: Optional[date] = None, user_id: Optional[int] = None,
                     seat_id: Optional[int] = None,
                     booking_type: Optional[BookingType] = None) -> List[Booking]:
        """获取图书馆预订列表；按日期过滤时月度预订以区间包含该日为准"""
        query = self.db.query(Booking).filter(Booking.library_id == library_id)

        if status:
            query = query.filter(Booking.status == status)
        if booking_date:
            query = query.filter(or_(
                Booking.booking_date == booking_date,
                and_(Booking.start_date <= booking_date, Booking.end_date >= booking_date)
            ))
        if user_id is not None:
            query = query.filter(Booking.user_id == user_id)
        if seat_id is not None:
            query = query.filter(Booking.seat_id == seat_id)
        if booking_type:
            query = query.filter(Booking.booking_type == booking_type)

        return query.order_by(Booking.booked_at.desc(), Booking.id.desc()).all()

    def get_user_bookings(self, user_id: int) -> List[Booking]:
        """获取用户自己的预订（跨图书馆）"""
        return self.db.query(Booking).filter(
            Booking.user_id == user_id
        ).order_by(Booking.booked_at.desc(), Booking.id.desc()).all()

    # ============== 创建 ==============

    def create_daily_booking(self, library_id: int, user_id: int, seat_id: int,
                             time_slot_id: int, booking_date: date) -> Booking:
        """
        创建单次预订

        校验顺序：图书馆启用 -> 座位为单次模式且启用 -> 时段启用且已分配该座位 -> 冲突检查。
        金额取创建时的时段价格，之后时段改价不影响此预订。
        """
        self.library_service.require_active(library_id)

        seat = self.seat_service.get_seat(seat_id, library_id)
        if seat.seat_for != SeatMode.DAILY:
            raise WrongSeatMode(f"座位 {seat.seat_number} 仅支持月度预订", {"seat_id": seat_id})
        if not seat.is_active:
            raise SeatInactive(f"座位 {seat.seat_number} 已停用", {"seat_id": seat_id})

        slot = self.time_slot_service.get_time_slot(time_slot_id, library_id)
        if not slot.is_active:
            raise TimeSlotInactive("时段已停用", {"time_slot_id": time_slot_id})
        if seat.id not in slot.seat_ids:
            raise SeatNotAssigned(
                f"座位 {seat.seat_number} 未分配到时段 {slot.start_time}-{slot.end_time}",
                {"seat_id": seat_id, "time_slot_id": time_slot_id}
            )

        booking = Booking(
            library_id=library_id,
            user_id=user_id,
            seat_id=seat.id,
            booking_type=BookingType.DAILY,
            time_slot_id=slot.id,
            booking_date=booking_date,
            amount=slot.price,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )
        criteria = daily_conflict_criteria(seat.id, overlapping_slot_ids(self.db, slot), booking_date)
        booking = self.store.insert_if_no_conflict(booking, criteria)

        logger.info(
            f"Daily booking {booking.id} created: seat {seat_id}, slot {time_slot_id}, "
            f"date {booking_date}, user {user_id}"
        )
        self._emit_created(booking)
        return booking

    def create_monthly_booking(self, library_id: int, user_id: int, seat_id: int,
                               start_date: date, end_date: date,
                               amount: Optional[Union[Decimal, int, float, str]] = None) -> Booking:
        """
        创建月度预订

        金额缺省时使用图书馆月租；区间为闭区间 [start_date, end_date]。
        """
        library = self.library_service.require_active(library_id)

        seat = self.seat_service.get_seat(seat_id, library_id)
        if seat.seat_for != SeatMode.MONTHLY:
            raise WrongSeatMode(f"座位 {seat.seat_number} 仅支持单次预订", {"seat_id": seat_id})
        if not seat.is_active:
            raise SeatInactive(f"座位 {seat.seat_number} 已停用", {"seat_id": seat_id})

        if start_date > end_date:
            raise InvalidDateRange(
                "开始日期不能晚于结束日期",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )

        price = validate_price(amount if amount is not None else library.monthly_fee)

        booking = Booking(
            library_id=library_id,
            user_id=user_id,
            seat_id=seat.id,
            booking_type=BookingType.MONTHLY,
            start_date=start_date,
            end_date=end_date,
            amount=price,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )
        booking = self.store.insert_if_no_conflict(
            booking, monthly_conflict_criteria(seat.id, start_date, end_date)
        )

        logger.info(
            f"Monthly booking {booking.id} created: seat {seat_id}, "
            f"{start_date} ~ {end_date}, user {user_id}"
        )
        self._emit_created(booking)
        return booking

    # ============== 状态转换 ==============

    def transition(self, booking_id: int, target_status: Union[str, BookingStatus],
                   reason: Optional[str] = None, library_id: Optional[int] = None,
                   with_rows: Iterable[Any] = ()) -> Booking:
        """
        变更预订状态（唯一入口，外部超时扫描也必须调用这里）

        with_rows 中的记录与状态变更在同一次提交中写入；转换失败时一并丢弃。

        Raises:
            IllegalTransition: (当前状态, 目标状态) 不在转换表中，或状态已被并发修改
        """
        booking = self.get_booking(booking_id, library_id)
        target = self._parse_status(target_status)
        current = booking.status

        result = booking_state_machine.validate(current.value, target.value)
        if not result.allowed:
            logger.warning(f"Booking {booking_id}: {result.reason}")
            raise IllegalTransition(result.reason, {
                "booking_id": booking_id,
                "current_status": current.value,
                "target_status": target.value,
                "valid_targets": result.valid_alternatives,
            })

        patch = {"status": target}
        if reason is not None and target in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
            patch["cancel_reason"] = reason

        self.db.add_all(list(with_rows))

        # 比较并交换：只有状态仍为 current 时才写入
        if not self.store.update(booking.id, patch, expected={"status": current}):
            self.db.refresh(booking)
            logger.warning(
                f"Booking {booking_id} changed concurrently: expected {current.value}, "
                f"found {booking.status.value}"
            )
            raise IllegalTransition(
                f"预订状态已被其他操作修改为 {booking.status.value}",
                {"booking_id": booking_id, "current_status": booking.status.value,
                 "target_status": target.value}
            )

        self.db.refresh(booking)
        logger.info(
            f"Booking {booking_id} {result.transition.trigger}: {current.value} -> {target.value}"
        )
        self._publish(EventType.BOOKING_STATUS_CHANGED, BookingStatusChangedData(
            booking_id=booking.id,
            library_id=booking.library_id,
            user_id=booking.user_id,
            seat_id=booking.seat_id,
            old_status=current.value,
            new_status=target.value,
            trigger=result.transition.trigger,
            reason=reason or "",
        ).to_dict())
        return booking

    def confirm(self, booking_id: int, library_id: Optional[int] = None) -> Booking:
        """管理员确认"""
        return self.transition(booking_id, BookingStatus.CONFIRMED, library_id=library_id)

    def complete(self, booking_id: int, library_id: Optional[int] = None) -> Booking:
        return self.transition(booking_id, BookingStatus.COMPLETED, library_id=library_id)

    def cancel(self, booking_id: int, reason: Optional[str] = None,
               library_id: Optional[int] = None) -> Booking:
        """预订人取消：任意非终态均可"""
        return self.transition(booking_id, BookingStatus.CANCELLED, reason=reason, library_id=library_id)

    def reject(self, booking_id: int, reason: Optional[str] = None,
               library_id: Optional[int] = None) -> Booking:
        """管理员拒绝：仅限待确认/已确认"""
        return self.transition(booking_id, BookingStatus.REJECTED, reason=reason, library_id=library_id)

    def update_payment_status(self, booking_id: int, target: Union[str, PaymentStatus],
                              library_id: Optional[int] = None) -> Booking:
        """变更支付状态（独立于预订状态）"""
        booking = self.get_booking(booking_id, library_id)
        try:
            target = PaymentStatus(target)
        except ValueError:
            raise IllegalTransition(f"未知的支付状态 '{target}'", {"booking_id": booking_id})
        current = booking.payment_status

        result = payment_state_machine.validate(current.value, target.value)
        if not result.allowed:
            logger.warning(f"Booking {booking_id} payment: {result.reason}")
            raise IllegalTransition(result.reason, {
                "booking_id": booking_id,
                "current_payment_status": current.value,
                "target_payment_status": target.value,
                "valid_targets": result.valid_alternatives,
            })

        if not self.store.update(booking.id, {"payment_status": target},
                                 expected={"payment_status": current}):
            self.db.refresh(booking)
            raise IllegalTransition(
                f"支付状态已被其他操作修改为 {booking.payment_status.value}",
                {"booking_id": booking_id}
            )

        self.db.refresh(booking)
        logger.info(f"Booking {booking_id} payment {current.value} -> {target.value}")
        self._publish(EventType.BOOKING_PAYMENT_CHANGED, BookingPaymentChangedData(
            booking_id=booking.id,
            library_id=booking.library_id,
            user_id=booking.user_id,
            old_payment_status=current.value,
            new_payment_status=target.value,
            amount=float(booking.amount),
        ).to_dict())
        return booking

    # ============== 内部 ==============

    @staticmethod
    def _parse_status(value: Union[str, BookingStatus]) -> BookingStatus:
        try:
            return BookingStatus(value)
        except ValueError:
            allowed = ", ".join(s.value for s in BookingStatus)
            raise IllegalTransition(f"未知的预订状态 '{value}'，可选值: {allowed}", {"status": str(value)})

    def _emit_created(self, booking: Booking) -> None:
        self._publish(EventType.BOOKING_CREATED, BookingCreatedData(
            booking_id=booking.id,
            library_id=booking.library_id,
            user_id=booking.user_id,
            seat_id=booking.seat_id,
            booking_type=booking.booking_type.value,
            time_slot_id=booking.time_slot_id,
            booking_date=booking.booking_date.isoformat() if booking.booking_date else None,
            start_date=booking.start_date.isoformat() if booking.start_date else None,
            end_date=booking.end_date.isoformat() if booking.end_date else None,
            amount=float(booking.amount),
        ).to_dict())

    def _publish(self, event_type: EventType, data: dict) -> None:
        """通知为 fire-and-forget：发布失败只记录日志"""
        try:
            self._publish_event(Event(event_type=event_type.value, data=data, source="booking_service"))
        except Exception as e:
            logger.error(f"Failed to publish {event_type.value}: {e}", exc_info=True)
