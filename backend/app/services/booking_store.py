"""
预订存储 - 持久化提供者的 SQLAlchemy 实现

insert_if_no_conflict 的原子性来自两层：
1. 进程内按 (座位, 预订类型) 加锁，冲突查询与插入在同一临界区内
2. 存储层部分唯一索引（单次预订），违反约束时重新执行冲突校验，而不是盲目重写
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.ontology import Booking, BookingType
from app.services.errors import SeatUnavailable, AllocationBusy, AmountLocked
from core.engine.locks import KeyedLockRegistry, LockTimeout, allocation_locks
from core.persistence.store import IConditionalStore

logger = logging.getLogger(__name__)


class SqlAlchemyBookingStore(IConditionalStore):
    """预订存储"""

    def __init__(self, db: Session, locks: Optional[KeyedLockRegistry] = None,
                 lock_timeout: Optional[float] = None, max_attempts: Optional[int] = None):
        self.db = db
        self._locks = locks or allocation_locks
        self._lock_timeout = lock_timeout if lock_timeout is not None else settings.ALLOCATION_LOCK_TIMEOUT
        self._max_attempts = max_attempts or settings.ALLOCATION_MAX_ATTEMPTS

    @staticmethod
    def allocation_key(booking: Booking) -> tuple:
        """分配键：同一座位同一预订模式的创建串行执行"""
        return ("seat", booking.seat_id, booking.booking_type.value)

    @staticmethod
    def seat_allocation_keys(seat_id: int) -> List[tuple]:
        """某座位在各预订模式下的分配键"""
        return [("seat", seat_id, booking_type.value) for booking_type in BookingType]

    def insert_if_no_conflict(self, entity: Booking, conflict_criteria: Sequence[Any]) -> Booking:
        key = self.allocation_key(entity)
        try:
            with self._locks.hold(key, self._lock_timeout):
                return self._insert_locked(entity, conflict_criteria)
        except LockTimeout:
            raise AllocationBusy(
                f"座位 {entity.seat_id} 正在被其他请求分配，请稍后重试",
                {"seat_id": entity.seat_id}
            )

    def _insert_locked(self, booking: Booking, conflict_criteria: Sequence[Any]) -> Booking:
        # 结束当前事务，冲突查询读取最新已提交数据
        self.db.commit()

        for attempt in range(1, self._max_attempts + 1):
            conflict = self.db.query(Booking).filter(*conflict_criteria).first()
            if conflict is not None:
                logger.warning(
                    f"Allocation conflict on seat {booking.seat_id}: "
                    f"booking {conflict.id} ({conflict.status.value}) already holds the interval"
                )
                raise SeatUnavailable(
                    f"座位 {booking.seat_id} 在所选时间已被占用",
                    {"seat_id": booking.seat_id, "conflicting_booking_id": conflict.id}
                )

            self.db.add(booking)
            try:
                self.db.commit()
            except IntegrityError:
                # 并发写入命中唯一索引：回滚后重新校验
                self.db.rollback()
                logger.warning(
                    f"Uniqueness violation on seat {booking.seat_id} (attempt {attempt}), revalidating"
                )
                continue

            self.db.refresh(booking)
            return booking

        raise AllocationBusy(
            f"座位 {booking.seat_id} 分配在 {self._max_attempts} 次校验后仍未完成",
            {"seat_id": booking.seat_id}
        )

    def update(self, entity_id: int, patch: Dict[str, Any],
               expected: Optional[Dict[str, Any]] = None) -> bool:
        if "amount" in patch:
            raise AmountLocked("预订金额创建后不可修改", {"booking_id": entity_id})

        query = self.db.query(Booking).filter(Booking.id == entity_id)
        for field_name, value in (expected or {}).items():
            query = query.filter(getattr(Booking, field_name) == value)

        values = dict(patch)
        values["updated_at"] = datetime.utcnow()
        count = query.update(values, synchronize_session=False)
        if count == 0:
            # 未命中预期状态：连同会话中暂存的附带记录一起丢弃
            self.db.rollback()
            return False
        self.db.commit()
        return True

    def find(self, **filters: Any) -> List[Booking]:
        return self.db.query(Booking).filter_by(**filters).order_by(Booking.id).all()
