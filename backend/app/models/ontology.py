"""
本体对象定义 (Ontology Objects)
图书馆座位预订的核心实体：图书馆、座位、时段、预订、签到记录
座位与时段的多对多关联由时段持有（TimeSlotSeat 关联对象，按分配顺序排列）
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date,
    ForeignKey, Text, Enum as SQLEnum, Boolean, Numeric,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, validates
from app.database import Base


# ============== 枚举定义 ==============

class SeatMode(str, Enum):
    """座位预订模式（创建后实际上不可变）"""
    DAILY = "daily-booking"        # 按时段单次预订
    MONTHLY = "monthly-booking"    # 按月订阅


class BookingType(str, Enum):
    """预订类型"""
    DAILY = "daily"
    MONTHLY = "monthly"


class BookingStatus(str, Enum):
    """预订状态枚举"""
    PENDING = "pending"              # 待确认
    CONFIRMED = "confirmed"          # 已确认
    CHECKED_IN = "checked-in"        # 已签到
    COMPLETED = "completed"          # 已完成
    CANCELLED = "cancelled"          # 已取消（预订人）
    REJECTED = "rejected"            # 已拒绝（管理员）
    MISSED = "missed"                # 未签到
    NO_CHECKOUT = "no-checkout"      # 未签退


class PaymentStatus(str, Enum):
    """支付状态，独立于预订状态演进"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class AttendanceMethod(str, Enum):
    """签到方式"""
    QR = "QR"
    MANUAL = "manual"


# 占用座位的状态；其余状态均为终态
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN,
)


# ============== 本体对象定义 ==============

class Library(Base):
    """
    图书馆对象 - 租户
    注册时创建，只停用不删除
    """
    __tablename__ = "libraries"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    hourly_fee = Column(Numeric(10, 2), default=0)       # 默认小时费用
    monthly_fee = Column(Numeric(10, 2), default=0)      # 默认月租费用
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    seats = relationship("Seat", back_populates="library")
    time_slots = relationship("TimeSlot", back_populates="library")
    bookings = relationship("Booking", back_populates="library")


class Seat(Base):
    """
    座位对象
    座位号在图书馆内唯一；seat_for 决定其只能用于单次或月度预订
    """
    __tablename__ = "seats"
    __table_args__ = (
        UniqueConstraint("library_id", "seat_number", name="uq_seat_library_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    library_id = Column(Integer, ForeignKey("libraries.id"), nullable=False, index=True)
    seat_number = Column(String(20), nullable=False)     # 座位号
    seat_name = Column(String(100))                      # 座位名称
    seat_for = Column(SQLEnum(SeatMode), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    library = relationship("Library", back_populates="seats")
    slot_links = relationship("TimeSlotSeat", back_populates="seat", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="seat")


class TimeSlot(Base):
    """
    时段对象 - 每日重复的时间段（不是预订本身）
    start_time/end_time 为补零的 HH:MM，字典序比较即时间先后
    """
    __tablename__ = "time_slots"

    id = Column(Integer, primary_key=True, index=True)
    library_id = Column(Integer, ForeignKey("libraries.id"), nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    library = relationship("Library", back_populates="time_slots")
    seat_links = relationship(
        "TimeSlotSeat",
        back_populates="time_slot",
        order_by="TimeSlotSeat.position",
        cascade="all, delete-orphan",
    )
    bookings = relationship("Booking", back_populates="time_slot")

    @property
    def seat_ids(self):
        """按分配顺序排列的座位 ID"""
        return [link.seat_id for link in self.seat_links]

    @property
    def seats(self):
        return [link.seat for link in self.seat_links]


class TimeSlotSeat(Base):
    """时段-座位关联（有序集合）"""
    __tablename__ = "time_slot_seats"

    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), primary_key=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    time_slot = relationship("TimeSlot", back_populates="seat_links")
    seat = relationship("Seat", back_populates="slot_links")


class Booking(Base):
    """
    预订对象 - 分配与生命周期的聚合根
    单次预订：seat + time_slot + booking_date
    月度预订：seat + [start_date, end_date]
    amount 在创建时从时段价格捕获，之后不可修改
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    library_id = Column(Integer, ForeignKey("libraries.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)   # 外部身份系统解析后的用户 ID
    seat_id = Column(Integer, ForeignKey("seats.id"), nullable=False, index=True)
    booking_type = Column(SQLEnum(BookingType), nullable=False)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=True)
    booking_date = Column(Date, nullable=True)              # 单次预订日期
    start_date = Column(Date, nullable=True)                # 月度预订起始
    end_date = Column(Date, nullable=True)                  # 月度预订结束（含）
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    payment_status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    cancel_reason = Column(Text)
    booked_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 存储层兜底：同一座位同一时段同一天只能有一条占用中的预订
    __table_args__ = (
        Index(
            "uq_booking_daily_active",
            seat_id, time_slot_id, booking_date,
            unique=True,
            sqlite_where=status.in_(ACTIVE_BOOKING_STATUSES),
            postgresql_where=status.in_(ACTIVE_BOOKING_STATUSES),
        ),
    )

    # 链接
    library = relationship("Library", back_populates="bookings")
    seat = relationship("Seat", back_populates="bookings")
    time_slot = relationship("TimeSlot", back_populates="bookings")
    attendances = relationship("Attendance", back_populates="booking", order_by="Attendance.check_in_time")

    @validates("amount")
    def _validate_amount(self, key, value):
        if self.amount is not None and value != self.amount:
            from app.services.errors import AmountLocked
            raise AmountLocked("预订金额创建后不可修改", {"booking_id": self.id})
        return value

    @property
    def is_active(self) -> bool:
        """是否仍占用座位"""
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def effective_date(self):
        """统计口径日期：单次取预订日期，月度取起始日期"""
        return self.booking_date if self.booking_type == BookingType.DAILY else self.start_date


class Attendance(Base):
    """签到记录 - 每次签到一条，签退时补全时长"""
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    library_id = Column(Integer, ForeignKey("libraries.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    method = Column(SQLEnum(AttendanceMethod), default=AttendanceMethod.QR)
    check_in_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    check_out_time = Column(DateTime)
    duration_minutes = Column(Integer)

    booking = relationship("Booking", back_populates="attendances")
