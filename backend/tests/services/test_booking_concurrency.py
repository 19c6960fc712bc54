"""
并发分配测试：同一座位同一区间的并发创建只能有一个成功
使用文件型 SQLite，每个线程独立会话
"""
import threading
import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.models.ontology import (
    Booking, Library, Seat, SeatMode, TimeSlot, TimeSlotSeat, ACTIVE_BOOKING_STATUSES
)
from app.services.booking_service import BookingService
from app.services.errors import AllocationBusy, SeatUnavailable

WORKERS = 8


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    db = session_factory()
    library = Library(name="并发馆", monthly_fee=Decimal("300"), is_active=True)
    db.add(library)
    db.flush()
    daily = Seat(library_id=library.id, seat_number="D1", seat_for=SeatMode.DAILY, is_active=True)
    monthly = Seat(library_id=library.id, seat_number="M1", seat_for=SeatMode.MONTHLY, is_active=True)
    db.add_all([daily, monthly])
    db.flush()
    slot = TimeSlot(library_id=library.id, start_time="09:00", end_time="11:00",
                    price=Decimal("20"), is_active=True)
    slot.seat_links.append(TimeSlotSeat(seat_id=daily.id, position=0))
    db.add(slot)
    db.commit()
    ids = {"library": library.id, "daily": daily.id, "monthly": monthly.id, "slot": slot.id}
    db.close()
    return ids


def _race(session_factory, attempt):
    """并发执行 attempt(service, worker_index)，返回 (成功数, 冲突数, 其他异常)"""
    barrier = threading.Barrier(WORKERS)
    results = []
    lock = threading.Lock()

    def worker(index):
        db = session_factory()
        try:
            service = BookingService(db, lambda event: None)
            barrier.wait()
            attempt(service, index)
            outcome = "ok"
        except (SeatUnavailable, AllocationBusy):
            outcome = "conflict"
        except Exception as e:
            outcome = e
        finally:
            db.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(60)

    errors = [r for r in results if isinstance(r, Exception)]
    return results.count("ok"), results.count("conflict"), errors


def _active_count(session_factory, seat_id):
    db = session_factory()
    try:
        return db.query(Booking).filter(
            Booking.seat_id == seat_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).count()
    finally:
        db.close()


def test_concurrent_daily_bookings_single_winner(session_factory, seeded):
    day = date(2025, 1, 10)

    ok, conflicts, errors = _race(session_factory, lambda service, i: service.create_daily_booking(
        seeded["library"], i + 1, seeded["daily"], seeded["slot"], day
    ))

    assert errors == []
    assert ok == 1
    assert conflicts == WORKERS - 1
    assert _active_count(session_factory, seeded["daily"]) == 1


def test_concurrent_overlapping_monthly_bookings_single_winner(session_factory, seeded):
    # 每个请求的区间都包含 3 月 15 日，两两重叠
    ok, conflicts, errors = _race(session_factory, lambda service, i: service.create_monthly_booking(
        seeded["library"], i + 1, seeded["monthly"], date(2025, 3, 1 + i), date(2025, 3, 15 + i)
    ))

    assert errors == []
    assert ok == 1
    assert conflicts == WORKERS - 1
    assert _active_count(session_factory, seeded["monthly"]) == 1
