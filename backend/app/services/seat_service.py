"""
座位服务 - 本体操作层
管理 Seat 对象：单个/批量创建、启停、删除、编辑
批量创建为全有或全无：任意一条不合法则整批拒绝
"""
from typing import Callable, Dict, Iterable, List, Optional, Union
import logging
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.models.ontology import Seat, SeatMode, Booking
from app.models.schemas import SeatCreate, SeatUpdate
from app.models.events import EventType, SeatChangedData
from app.services.event_bus import event_bus, Event
from app.services.library_service import LibraryService
from app.services.booking_store import SqlAlchemyBookingStore
from app.services.errors import (
    DuplicateSeatNumber, InvalidSeatFor, SeatHasBookings, SeatModeLocked, SeatNotFound
)
from core.engine.locks import allocation_locks

logger = logging.getLogger(__name__)


def parse_seat_mode(value: Union[str, SeatMode]) -> SeatMode:
    """解析座位模式，非法值抛出 InvalidSeatFor"""
    try:
        return SeatMode(value)
    except ValueError:
        allowed = ", ".join(m.value for m in SeatMode)
        raise InvalidSeatFor(f"座位模式 '{value}' 不合法，可选值: {allowed}", {"seat_for": str(value)})


class SeatService:
    """座位服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.library_service = LibraryService(db)
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    # ============== 查询 ==============

    def get_seat(self, seat_id: int, library_id: Optional[int] = None) -> Seat:
        """获取座位；指定 library_id 时只在该图书馆内查找"""
        query = self.db.query(Seat).filter(Seat.id == seat_id)
        if library_id is not None:
            query = query.filter(Seat.library_id == library_id)
        seat = query.first()
        if not seat:
            raise SeatNotFound("座位不存在", {"seat_id": seat_id})
        return seat

    def get_seats(self, library_id: int, seat_for: Optional[SeatMode] = None,
                  is_active: Optional[bool] = None) -> List[Seat]:
        query = self.db.query(Seat).filter(Seat.library_id == library_id)
        if seat_for is not None:
            query = query.filter(Seat.seat_for == parse_seat_mode(seat_for))
        if is_active is not None:
            query = query.filter(Seat.is_active == is_active)
        return query.order_by(Seat.seat_number).all()

    def get_seat_by_number(self, library_id: int, seat_number: str) -> Optional[Seat]:
        return self.db.query(Seat).filter(
            Seat.library_id == library_id,
            Seat.seat_number == seat_number
        ).first()

    def count_bookings(self, seat_id: int) -> int:
        """座位上的预订数（任意状态）"""
        return self.db.query(Booking).filter(Booking.seat_id == seat_id).count()

    def get_seat_detail(self, seat_id: int, library_id: Optional[int] = None) -> dict:
        """获取座位详情（含已分配时段和各状态预订数）"""
        seat = self.get_seat(seat_id, library_id)
        rows = self.db.query(Booking.status, func.count(Booking.id)).filter(
            Booking.seat_id == seat_id
        ).group_by(Booking.status).all()

        return {
            'id': seat.id,
            'library_id': seat.library_id,
            'seat_number': seat.seat_number,
            'seat_name': seat.seat_name,
            'seat_for': seat.seat_for,
            'is_active': seat.is_active,
            'created_at': seat.created_at,
            'time_slot_ids': [link.time_slot_id for link in seat.slot_links],
            'booking_counts': {status.value: count for status, count in rows},
        }

    # ============== 创建 ==============

    def create_seat(self, library_id: int, seat_number: str, seat_name: Optional[str],
                    seat_for: Union[str, SeatMode]) -> Seat:
        """创建单个座位"""
        return self.bulk_create_seats(library_id, [
            SeatCreate(seat_number=seat_number, seat_name=seat_name, seat_for=str(getattr(seat_for, "value", seat_for)))
        ])[0]

    def bulk_create_seats(self, library_id: int,
                          seat_specs: Iterable[Union[SeatCreate, Dict]]) -> List[Seat]:
        """
        批量创建座位（全有或全无）

        先校验整批（座位模式、与库内及批内的座位号重复），
        全部通过后一次提交；任何失败都不会留下部分座位。
        """
        self.library_service.get_library(library_id)
        specs = [s if isinstance(s, SeatCreate) else SeatCreate.model_validate(s) for s in seat_specs]
        if not specs:
            return []

        numbers = [spec.seat_number.strip() for spec in specs]
        existing = {
            number for (number,) in self.db.query(Seat.seat_number).filter(
                Seat.library_id == library_id,
                Seat.seat_number.in_(numbers)
            ).all()
        }

        seats = []
        seen = set()
        for index, (spec, number) in enumerate(zip(specs, numbers)):
            mode = parse_seat_mode(spec.seat_for)
            if number in existing or number in seen:
                raise DuplicateSeatNumber(
                    f"座位号 '{number}' 已存在",
                    {"library_id": library_id, "seat_number": number, "index": index}
                )
            seen.add(number)
            seats.append(Seat(
                library_id=library_id,
                seat_number=number,
                seat_name=spec.seat_name or number,
                seat_for=mode,
                is_active=True,
            ))

        self.db.add_all(seats)
        try:
            self.db.commit()
        except IntegrityError:
            # 与并发创建撞号：整批回滚
            self.db.rollback()
            raise DuplicateSeatNumber("座位号已存在，批量创建已整体回滚", {"library_id": library_id})

        for seat in seats:
            self.db.refresh(seat)
            self._emit(EventType.SEAT_CREATED, seat)

        logger.info(f"Created {len(seats)} seat(s) in library {library_id}")
        return seats

    # ============== 修改 ==============

    def update_seat(self, seat_id: int, data: SeatUpdate, library_id: Optional[int] = None) -> Seat:
        """
        编辑座位

        座位号需保持库内唯一；座位一旦有预订或时段分配，模式不可再改
        """
        seat = self.get_seat(seat_id, library_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get('seat_number') is not None:
            number = update_data['seat_number'].strip()
            existing = self.get_seat_by_number(seat.library_id, number)
            if existing and existing.id != seat.id:
                raise DuplicateSeatNumber(f"座位号 '{number}' 已存在", {"seat_number": number})
            update_data['seat_number'] = number

        if update_data.get('seat_for') is not None:
            mode = parse_seat_mode(update_data['seat_for'])
            if mode != seat.seat_for and (seat.slot_links or self.count_bookings(seat.id) > 0):
                raise SeatModeLocked(
                    "座位已有预订或时段分配，不能修改预订模式",
                    {"seat_id": seat.id, "seat_for": seat.seat_for.value}
                )
            update_data['seat_for'] = mode

        for key, value in update_data.items():
            if value is not None:
                setattr(seat, key, value)

        self.db.commit()
        self.db.refresh(seat)
        return seat

    def toggle_active(self, seat_id: int, library_id: Optional[int] = None) -> Seat:
        """切换启用状态（与已有预订无关）"""
        seat = self.get_seat(seat_id, library_id)
        seat.is_active = not seat.is_active
        self.db.commit()
        self.db.refresh(seat)
        self._emit(EventType.SEAT_STATUS_TOGGLED, seat)
        return seat

    def delete_seat(self, seat_id: int, library_id: Optional[int] = None) -> bool:
        """删除座位：只有从未被预订过的座位可以删除"""
        seat = self.get_seat(seat_id, library_id)

        booking_count = self.count_bookings(seat_id)
        if booking_count > 0:
            raise SeatHasBookings(
                f"该座位有 {booking_count} 条预订记录，无法删除，请停用",
                {"seat_id": seat_id, "booking_count": booking_count}
            )

        event_data = self._event_data(seat)
        # 时段关联随座位级联删除
        self.db.delete(seat)
        self.db.commit()
        for key in SqlAlchemyBookingStore.seat_allocation_keys(seat_id):
            allocation_locks.discard(key)
        self._publish(EventType.SEAT_DELETED, event_data)
        return True

    @staticmethod
    def _event_data(seat: Seat) -> dict:
        return SeatChangedData(
            seat_id=seat.id,
            library_id=seat.library_id,
            seat_number=seat.seat_number,
            seat_for=seat.seat_for.value,
            is_active=bool(seat.is_active),
        ).to_dict()

    def _emit(self, event_type: EventType, seat: Seat) -> None:
        self._publish(event_type, self._event_data(seat))

    def _publish(self, event_type: EventType, data: dict) -> None:
        try:
            self._publish_event(Event(event_type=event_type.value, data=data, source="seat_service"))
        except Exception as e:
            logger.error(f"Failed to publish {event_type.value}: {e}", exc_info=True)
