"""
领域错误定义

所有错误继承 ValueError，路由层可以统一捕获；
category 决定调用方应如何响应：
- validation: 调用方可修正的输入错误，立即返回，不自动重试
- conflict: 竞争或客户端视图过期，调用方应重新获取状态后再决策
- referential: 阻止破坏性操作，绝不静默绕过
- not_found: 引用的实体不存在
"""
from typing import Any, Dict, Optional


class ErrorCategory:
    """错误类别"""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    REFERENTIAL = "referential"
    NOT_FOUND = "not_found"


class BookingDomainError(ValueError):
    """
    领域错误基类

    Attributes:
        message: 可读错误信息
        context: 附加上下文（实体 ID 等）
    """

    category: str = ErrorCategory.VALIDATION

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    @property
    def code(self) -> str:
        """错误码，即异常类名"""
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category,
            "detail": self.message,
            "context": self.context,
        }


# ============== validation ==============

class InvalidTimeRange(BookingDomainError):
    pass


class InvalidPrice(BookingDomainError):
    pass


class InvalidDateRange(BookingDomainError):
    pass


class DuplicateSeatNumber(BookingDomainError):
    pass


class InvalidSeatFor(BookingDomainError):
    pass


class WrongSeatMode(BookingDomainError):
    pass


class SeatModeLocked(BookingDomainError):
    """座位已被使用，不能再修改预订模式"""


class SeatInactive(BookingDomainError):
    pass


class TimeSlotInactive(BookingDomainError):
    pass


class SeatNotAssigned(BookingDomainError):
    """座位未分配到该时段"""


class LibraryInactive(BookingDomainError):
    pass


class AmountLocked(BookingDomainError):
    """预订金额在创建后不可修改"""


class AttendanceError(BookingDomainError):
    """签到/签退条件不满足"""


# ============== conflict ==============

class ConflictError(BookingDomainError):
    category = ErrorCategory.CONFLICT


class SeatUnavailable(ConflictError):
    pass


class IllegalTransition(ConflictError):
    pass


class AllocationBusy(ConflictError):
    """在限定时间内未能获取座位分配锁"""


# ============== referential ==============

class ReferentialError(BookingDomainError):
    category = ErrorCategory.REFERENTIAL


class SeatHasBookings(ReferentialError):
    pass


class TimeSlotHasBookings(ReferentialError):
    pass


# ============== not found ==============

class EntityNotFound(BookingDomainError):
    category = ErrorCategory.NOT_FOUND


class LibraryNotFound(EntityNotFound):
    pass


class SeatNotFound(EntityNotFound):
    pass


class TimeSlotNotFound(EntityNotFound):
    pass


class BookingNotFound(EntityNotFound):
    pass
