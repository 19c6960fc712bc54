"""
领域事件定义 (Domain Events)
服务层在状态变更后发布事件，通知处理器据此发送站内/外部通知
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 座位相关
    SEAT_CREATED = "seat.created"
    SEAT_STATUS_TOGGLED = "seat.status_toggled"
    SEAT_DELETED = "seat.deleted"

    # 时段相关
    TIME_SLOT_CREATED = "time_slot.created"
    TIME_SLOT_SEATS_CHANGED = "time_slot.seats_changed"
    TIME_SLOT_STATUS_TOGGLED = "time_slot.status_toggled"

    # 预订相关
    BOOKING_CREATED = "booking.created"
    BOOKING_STATUS_CHANGED = "booking.status_changed"
    BOOKING_PAYMENT_CHANGED = "booking.payment_changed"

    # 签到相关
    ATTENDANCE_CHECKED_IN = "attendance.checked_in"
    ATTENDANCE_CHECKED_OUT = "attendance.checked_out"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        # 处理日期序列化
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
        return result


@dataclass
class SeatChangedData(BaseEventData):
    """座位变更事件数据"""
    seat_id: int = 0
    library_id: int = 0
    seat_number: str = ""
    seat_for: str = ""
    is_active: bool = True


@dataclass
class TimeSlotChangedData(BaseEventData):
    """时段变更事件数据"""
    time_slot_id: int = 0
    library_id: int = 0
    start_time: str = ""
    end_time: str = ""
    is_active: bool = True
    seat_ids: list = field(default_factory=list)


@dataclass
class BookingCreatedData(BaseEventData):
    """预订创建事件数据"""
    booking_id: int = 0
    library_id: int = 0
    user_id: int = 0
    seat_id: int = 0
    booking_type: str = ""
    time_slot_id: Optional[int] = None
    booking_date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    amount: float = 0.0


@dataclass
class BookingStatusChangedData(BaseEventData):
    """预订状态变更事件数据"""
    booking_id: int = 0
    library_id: int = 0
    user_id: int = 0
    seat_id: int = 0
    old_status: str = ""
    new_status: str = ""
    trigger: str = ""
    reason: str = ""


@dataclass
class BookingPaymentChangedData(BaseEventData):
    """支付状态变更事件数据"""
    booking_id: int = 0
    library_id: int = 0
    user_id: int = 0
    old_payment_status: str = ""
    new_payment_status: str = ""
    amount: float = 0.0


@dataclass
class AttendanceData(BaseEventData):
    """签到/签退事件数据"""
    attendance_id: int = 0
    booking_id: int = 0
    library_id: int = 0
    user_id: int = 0
    method: str = ""
    duration_minutes: Optional[int] = None


# 事件数据类型映射
EVENT_DATA_CLASSES = {
    EventType.SEAT_CREATED: SeatChangedData,
    EventType.SEAT_STATUS_TOGGLED: SeatChangedData,
    EventType.SEAT_DELETED: SeatChangedData,
    EventType.TIME_SLOT_CREATED: TimeSlotChangedData,
    EventType.TIME_SLOT_SEATS_CHANGED: TimeSlotChangedData,
    EventType.TIME_SLOT_STATUS_TOGGLED: TimeSlotChangedData,
    EventType.BOOKING_CREATED: BookingCreatedData,
    EventType.BOOKING_STATUS_CHANGED: BookingStatusChangedData,
    EventType.BOOKING_PAYMENT_CHANGED: BookingPaymentChangedData,
    EventType.ATTENDANCE_CHECKED_IN: AttendanceData,
    EventType.ATTENDANCE_CHECKED_OUT: AttendanceData,
}
