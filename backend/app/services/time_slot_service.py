"""
时段服务 - 本体操作层
管理 TimeSlot 对象及其与单次预订座位的多对多关联

- 时段创建时不含座位，座位按请求顺序追加
- 分配幂等：重复分配已在时段内的座位不报错
- 取消分配不影响已有预订，只阻止之后在该时段预订该座位
"""
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Union
import logging
import re
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.models.ontology import (
    TimeSlot, TimeSlotSeat, Seat, SeatMode, Booking, ACTIVE_BOOKING_STATUSES
)
from app.models.schemas import TimeSlotUpdate
from app.models.events import EventType, TimeSlotChangedData
from app.services.event_bus import event_bus, Event
from app.services.library_service import LibraryService
from app.services.errors import (
    InvalidTimeRange, InvalidPrice, WrongSeatMode, SeatNotFound,
    TimeSlotNotFound, TimeSlotHasBookings
)

logger = logging.getLogger(__name__)

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_time(value: str) -> str:
    """规范化为补零的 24 小时制 HH:MM；补零后字典序即时间先后"""
    match = _TIME_PATTERN.match(str(value).strip())
    if not match:
        raise InvalidTimeRange(f"时间 '{value}' 格式不正确，应为 HH:MM", {"time": value})
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeRange(f"时间 '{value}' 超出范围", {"time": value})
    return f"{hour:02d}:{minute:02d}"


def validate_time_range(start_time: str, end_time: str) -> tuple:
    start, end = normalize_time(start_time), normalize_time(end_time)
    if start >= end:
        raise InvalidTimeRange(
            f"开始时间 {start} 必须早于结束时间 {end}",
            {"start_time": start, "end_time": end}
        )
    return start, end


def validate_price(price: Union[Decimal, int, float, str]) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise InvalidPrice(f"价格 '{price}' 不是有效数字", {"price": str(price)})
    if not value.is_finite() or value <= 0:
        raise InvalidPrice("价格必须大于 0", {"price": str(price)})
    return value


def overlapping_slot_ids(db: Session, time_slot: TimeSlot) -> List[int]:
    """同一图书馆内与给定时段在钟面时间上重叠的时段（含自身）"""
    rows = db.query(TimeSlot.id).filter(
        TimeSlot.library_id == time_slot.library_id,
        TimeSlot.start_time < time_slot.end_time,
        TimeSlot.end_time > time_slot.start_time
    ).all()
    ids = {slot_id for (slot_id,) in rows}
    ids.add(time_slot.id)
    return sorted(ids)


class TimeSlotService:
    """时段服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.library_service = LibraryService(db)
        self._publish_event = event_publisher or event_bus.publish

    # ============== 查询 ==============

    def get_time_slot(self, time_slot_id: int, library_id: Optional[int] = None) -> TimeSlot:
        query = self.db.query(TimeSlot).filter(TimeSlot.id == time_slot_id)
        if library_id is not None:
            query = query.filter(TimeSlot.library_id == library_id)
        slot = query.first()
        if not slot:
            raise TimeSlotNotFound("时段不存在", {"time_slot_id": time_slot_id})
        return slot

    def get_time_slots(self, library_id: int, is_active: Optional[bool] = None) -> List[TimeSlot]:
        """获取图书馆的时段列表（按开始时间排序）"""
        query = self.db.query(TimeSlot).filter(TimeSlot.library_id == library_id)
        if is_active is not None:
            query = query.filter(TimeSlot.is_active == is_active)
        return query.order_by(TimeSlot.start_time, TimeSlot.end_time).all()

    def count_bookings(self, time_slot_id: int) -> int:
        return self.db.query(Booking).filter(Booking.time_slot_id == time_slot_id).count()

    def count_active_bookings(self, time_slot_id: int) -> int:
        return self.db.query(Booking).filter(
            Booking.time_slot_id == time_slot_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).count()

    def get_available_seats(self, time_slot_id: int, booking_date: date,
                            library_id: Optional[int] = None) -> List[Seat]:
        """指定日期该时段内仍可预订的座位（已分配、启用、重叠时段上无占用中的预订）"""
        slot = self.get_time_slot(time_slot_id, library_id)
        if not slot.is_active:
            return []
        taken = {
            seat_id for (seat_id,) in self.db.query(Booking.seat_id).filter(
                Booking.time_slot_id.in_(overlapping_slot_ids(self.db, slot)),
                Booking.booking_date == booking_date,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES)
            ).all()
        }
        return [seat for seat in slot.seats if seat.is_active and seat.id not in taken]

    # ============== 创建/修改 ==============

    def create_time_slot(self, library_id: int, start_time: str, end_time: str,
                         price: Union[Decimal, int, float, str]) -> TimeSlot:
        """创建时段（不含座位）"""
        self.library_service.get_library(library_id)
        start, end = validate_time_range(start_time, end_time)
        amount = validate_price(price)

        slot = TimeSlot(
            library_id=library_id,
            start_time=start,
            end_time=end,
            price=amount,
            is_active=True,
        )
        self.db.add(slot)
        self.db.commit()
        self.db.refresh(slot)
        logger.info(f"Time slot {slot.id} created in library {library_id}: {start}-{end} @ {amount}")
        self._emit(EventType.TIME_SLOT_CREATED, slot)
        return slot

    def update_time_slot(self, time_slot_id: int, data: TimeSlotUpdate,
                         library_id: Optional[int] = None) -> TimeSlot:
        """
        修改时段时间或价格

        价格可随时修改，已有预订的金额不受影响；
        时段上仍有占用中的预订时不能改时间
        """
        slot = self.get_time_slot(time_slot_id, library_id)
        update_data = data.model_dump(exclude_unset=True)

        start, end = validate_time_range(
            update_data.get('start_time') or slot.start_time,
            update_data.get('end_time') or slot.end_time,
        )
        if (start, end) != (slot.start_time, slot.end_time):
            active_count = self.count_active_bookings(time_slot_id)
            if active_count > 0:
                raise TimeSlotHasBookings(
                    f"该时段有 {active_count} 条占用中的预订，不能修改时间",
                    {"time_slot_id": time_slot_id, "booking_count": active_count}
                )
        slot.start_time, slot.end_time = start, end
        if update_data.get('price') is not None:
            slot.price = validate_price(update_data['price'])

        self.db.commit()
        self.db.refresh(slot)
        return slot

    def toggle_active(self, time_slot_id: int, library_id: Optional[int] = None) -> TimeSlot:
        """切换启用状态；只影响之后能否创建预订"""
        slot = self.get_time_slot(time_slot_id, library_id)
        slot.is_active = not slot.is_active
        self.db.commit()
        self.db.refresh(slot)
        self._emit(EventType.TIME_SLOT_STATUS_TOGGLED, slot)
        return slot

    def delete_time_slot(self, time_slot_id: int, library_id: Optional[int] = None) -> bool:
        """删除时段：被任何预订引用时拒绝"""
        slot = self.get_time_slot(time_slot_id, library_id)

        booking_count = self.count_bookings(time_slot_id)
        if booking_count > 0:
            raise TimeSlotHasBookings(
                f"该时段有 {booking_count} 条预订记录，无法删除，请停用",
                {"time_slot_id": time_slot_id, "booking_count": booking_count}
            )

        self.db.delete(slot)
        self.db.commit()
        return True

    # ============== 座位分配 ==============

    def assign_seats(self, time_slot_id: int, seat_ids: Iterable[int],
                     library_id: Optional[int] = None) -> TimeSlot:
        """
        把座位分配到时段

        整批校验：座位必须属于时段所在图书馆且为单次预订模式，
        任意一个不合法则整批拒绝。已分配的座位跳过。
        """
        return self._assign_seats(time_slot_id, list(dict.fromkeys(seat_ids)), library_id, retry=True)

    def _assign_seats(self, time_slot_id: int, ids: List[int],
                      library_id: Optional[int], retry: bool) -> TimeSlot:
        slot = self.get_time_slot(time_slot_id, library_id)
        if not ids:
            return slot

        seats = {
            seat.id: seat for seat in self.db.query(Seat).filter(
                Seat.id.in_(ids),
                Seat.library_id == slot.library_id
            ).all()
        }

        missing = [seat_id for seat_id in ids if seat_id not in seats]
        if missing:
            raise SeatNotFound(f"座位不存在: {missing}", {"seat_ids": missing})

        wrong_mode = [seats[seat_id] for seat_id in ids if seats[seat_id].seat_for != SeatMode.DAILY]
        if wrong_mode:
            raise WrongSeatMode(
                f"只有单次预订座位可以分配到时段: {', '.join(s.seat_number for s in wrong_mode)}",
                {"seat_ids": [s.id for s in wrong_mode]}
            )

        assigned = set(slot.seat_ids)
        position = max((link.position for link in slot.seat_links), default=-1) + 1
        added = []
        for seat_id in ids:
            if seat_id in assigned:
                continue
            slot.seat_links.append(TimeSlotSeat(seat_id=seat_id, position=position))
            position += 1
            added.append(seat_id)

        if not added:
            return slot

        try:
            self.db.commit()
        except IntegrityError:
            # 并发分配了同一座位，重新读取后按幂等语义再执行一次
            self.db.rollback()
            if not retry:
                raise
            return self._assign_seats(time_slot_id, ids, library_id, retry=False)

        self.db.refresh(slot)
        logger.info(f"Assigned seats {added} to time slot {time_slot_id}")
        self._emit(EventType.TIME_SLOT_SEATS_CHANGED, slot)
        return slot

    def unassign_seats(self, time_slot_id: int, seat_ids: Iterable[int],
                       library_id: Optional[int] = None) -> TimeSlot:
        """
        从时段移除座位

        不取消已有预订；未分配的座位 ID 忽略
        """
        slot = self.get_time_slot(time_slot_id, library_id)
        ids = set(seat_ids)
        remaining = [link for link in slot.seat_links if link.seat_id not in ids]
        if len(remaining) == len(slot.seat_links):
            return slot

        slot.seat_links = remaining
        self.db.commit()
        self.db.refresh(slot)
        logger.info(f"Unassigned seats {sorted(ids)} from time slot {time_slot_id}")
        self._emit(EventType.TIME_SLOT_SEATS_CHANGED, slot)
        return slot

    def _emit(self, event_type: EventType, slot: TimeSlot) -> None:
        try:
            self._publish_event(Event(
                event_type=event_type.value,
                data=TimeSlotChangedData(
                    time_slot_id=slot.id,
                    library_id=slot.library_id,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    is_active=bool(slot.is_active),
                    seat_ids=slot.seat_ids,
                ).to_dict(),
                source="time_slot_service"
            ))
        except Exception as e:
            logger.error(f"Failed to publish {event_type.value} for time slot {slot.id}: {e}", exc_info=True)
