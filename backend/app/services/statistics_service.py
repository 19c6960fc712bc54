"""
统计服务 - 只读汇总
每次都从预订记录重新计算，不维护缓存计数（仪表盘读取，O(n) 可接受）
"""
from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from app.models.ontology import Booking, BookingStatus, BookingType, PaymentStatus, Seat


# ============== 纯函数汇总 ==============

def count_by_status(bookings: Iterable[Booking]) -> Dict[str, int]:
    """各状态预订数（包含数量为 0 的状态）"""
    counts = Counter(b.status.value for b in bookings)
    return {status.value: counts.get(status.value, 0) for status in BookingStatus}


def paid_revenue(bookings: Iterable[Booking]) -> Decimal:
    """已支付预订的金额合计"""
    return sum(
        (Decimal(b.amount) for b in bookings if b.payment_status == PaymentStatus.PAID),
        Decimal("0")
    )


def seat_utilization(bookings: Iterable[Booking]) -> Dict[int, int]:
    """每个座位的预订数"""
    return dict(Counter(b.seat_id for b in bookings))


def user_distribution(bookings: Iterable[Booking]) -> Dict[int, int]:
    """每个用户的预订数"""
    return dict(Counter(b.user_id for b in bookings))


def monthly_trend(bookings: Iterable[Booking]) -> Dict[str, int]:
    """按月分桶的预订数（YYYY-MM -> count），按月份升序"""
    counts = Counter(
        b.effective_date.strftime("%Y-%m") for b in bookings if b.effective_date is not None
    )
    return dict(sorted(counts.items()))


def earnings_breakdown(bookings: Iterable[Booking], today: Optional[date] = None) -> dict:
    """
    收入拆分：单次/月度、今日，以及各类预订数

    今日口径按预订创建日期（booked_at）计算
    """
    today = today or date.today()
    bookings = list(bookings)
    daily = [b for b in bookings if b.booking_type == BookingType.DAILY]
    monthly = [b for b in bookings if b.booking_type == BookingType.MONTHLY]

    def _booked_today(b: Booking) -> bool:
        return b.booked_at is not None and b.booked_at.date() == today

    return {
        'total_bookings': len(bookings),
        'total_daily_bookings': len(daily),
        'total_monthly_bookings': len(monthly),
        'todays_daily_bookings': len([b for b in daily if _booked_today(b)]),
        'todays_monthly_bookings': len([b for b in monthly if _booked_today(b)]),
        'total_revenue': paid_revenue(bookings),
        'daily_earnings': paid_revenue(daily),
        'monthly_earnings': paid_revenue(monthly),
        'todays_daily_earning': paid_revenue(b for b in daily if _booked_today(b)),
        'todays_monthly_earning': paid_revenue(b for b in monthly if _booked_today(b)),
    }


def filter_bookings(bookings: Iterable[Booking], start_date: Optional[date] = None,
                    end_date: Optional[date] = None,
                    status: Optional[BookingStatus] = None) -> List[Booking]:
    """按统计日期区间与状态过滤"""
    result = []
    for b in bookings:
        day = b.effective_date
        if start_date and (day is None or day < start_date):
            continue
        if end_date and (day is None or day > end_date):
            continue
        if status and b.status != status:
            continue
        result.append(b)
    return result


# ============== 数据库读取 ==============

class StatisticsService:
    """统计服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_bookings(self, library_id: int, start_date: Optional[date] = None,
                     end_date: Optional[date] = None,
                     status: Optional[BookingStatus] = None) -> List[Booking]:
        bookings = self.db.query(Booking).filter(Booking.library_id == library_id).all()
        return filter_bookings(bookings, start_date, end_date, status)

    def get_library_stats(self, library_id: int, start_date: Optional[date] = None,
                          end_date: Optional[date] = None,
                          status: Optional[BookingStatus] = None,
                          today: Optional[date] = None) -> dict:
        """获取图书馆仪表盘统计"""
        bookings = self.get_bookings(library_id, start_date, end_date, status)
        seats = self.db.query(Seat).filter(Seat.library_id == library_id).all()

        utilization = seat_utilization(bookings)
        seat_stats = [
            {
                'seat_id': seat.id,
                'seat_number': seat.seat_number,
                'seat_for': seat.seat_for.value,
                'is_active': seat.is_active,
                'booking_count': utilization.get(seat.id, 0),
            }
            for seat in sorted(seats, key=lambda s: s.seat_number)
        ]

        return {
            'library_id': library_id,
            'counts': {
                'total_seats': len(seats),
                'active_seats': len([s for s in seats if s.is_active]),
                'total_bookings': len(bookings),
            },
            'booking_status': count_by_status(bookings),
            'revenue': paid_revenue(bookings),
            'earnings': earnings_breakdown(bookings, today),
            'seat_stats': seat_stats,
            'user_distribution': user_distribution(bookings),
            'monthly_trend': monthly_trend(bookings),
        }
