"""
Pydantic 模式定义
用于 API 请求/响应验证
业务校验（时间范围、价格、座位模式等）由服务层完成，这里只约束形状
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict
from app.models.ontology import (
    SeatMode, BookingType, BookingStatus, PaymentStatus, AttendanceMethod
)


# ============== 图书馆 Schemas ==============

class LibraryBase(BaseModel):
    name: str = Field(..., max_length=100)
    hourly_fee: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_fee: Decimal = Field(default=Decimal("0"), ge=0)


class LibraryCreate(LibraryBase):
    pass


class LibraryUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    hourly_fee: Optional[Decimal] = Field(None, ge=0)
    monthly_fee: Optional[Decimal] = Field(None, ge=0)


class LibraryResponse(LibraryBase):
    id: int
    is_active: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 座位 Schemas ==============

class SeatCreate(BaseModel):
    seat_number: str = Field(..., min_length=1, max_length=20)
    seat_name: Optional[str] = Field(None, max_length=100)
    seat_for: str  # 服务层校验，非法值整体拒绝批量创建


class SeatUpdate(BaseModel):
    seat_number: Optional[str] = Field(None, max_length=20)
    seat_name: Optional[str] = Field(None, max_length=100)
    seat_for: Optional[str] = None


class SeatResponse(BaseModel):
    id: int
    library_id: int
    seat_number: str
    seat_name: Optional[str] = None
    seat_for: SeatMode
    is_active: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SeatDetailResponse(SeatResponse):
    time_slot_ids: List[int] = []
    booking_counts: Dict[str, int] = {}


# ============== 时段 Schemas ==============

class TimeSlotCreate(BaseModel):
    start_time: str = Field(..., examples=["09:00"])
    end_time: str = Field(..., examples=["11:00"])
    price: Decimal


class TimeSlotUpdate(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    price: Optional[Decimal] = None


class TimeSlotResponse(BaseModel):
    id: int
    library_id: int
    start_time: str
    end_time: str
    price: Decimal
    is_active: bool
    seat_ids: List[int] = []
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SeatIdsRequest(BaseModel):
    seat_ids: List[int] = Field(..., min_length=1)


# ============== 预订 Schemas ==============

class DailyBookingCreate(BaseModel):
    library_id: int
    seat_id: int
    time_slot_id: int
    booking_date: date


class MonthlyBookingCreate(BaseModel):
    library_id: int
    seat_id: int
    start_date: date
    end_date: date
    amount: Optional[Decimal] = None  # 缺省时使用图书馆月租


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingReasonRequest(BaseModel):
    reason: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class BookingResponse(BaseModel):
    id: int
    library_id: int
    user_id: int
    seat_id: int
    booking_type: BookingType
    time_slot_id: Optional[int] = None
    booking_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    cancel_reason: Optional[str] = None
    booked_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 签到 Schemas ==============

class CheckInRequest(BaseModel):
    method: AttendanceMethod = AttendanceMethod.QR


class AttendanceResponse(BaseModel):
    id: int
    booking_id: int
    library_id: int
    user_id: int
    method: AttendanceMethod
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)
