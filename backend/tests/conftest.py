"""
Pytest 配置和共享 fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.models import ontology  # noqa
from app.models.ontology import Library, Seat, SeatMode, TimeSlot, TimeSlotSeat
from app.security.auth import CallerRole, create_access_token
from app.services.event_bus import event_bus
from core.engine.locks import allocation_locks
from core.notification.channel import notification_registry
from app.main import app


@pytest.fixture(autouse=True)
def reset_globals():
    """每个测试后清理全局事件总线、通知渠道和分配锁"""
    yield
    event_bus.clear()
    notification_registry.clear()
    allocation_locks.clear()


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class EventRecorder:
    """记录服务发布的事件，替代全局事件总线"""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def types(self):
        return [e.event_type for e in self.events]

    def last(self, event_type):
        matched = [e for e in self.events if e.event_type == event_type]
        return matched[-1] if matched else None


@pytest.fixture
def events():
    return EventRecorder()


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_library(db_session):
    """创建测试图书馆"""
    library = Library(
        name="中心图书馆",
        hourly_fee=Decimal("10.00"),
        monthly_fee=Decimal("300.00"),
        is_active=True
    )
    db_session.add(library)
    db_session.commit()
    db_session.refresh(library)
    return library


@pytest.fixture
def other_library(db_session):
    """创建另一个图书馆（用于跨馆隔离测试）"""
    library = Library(name="分馆", monthly_fee=Decimal("200.00"), is_active=True)
    db_session.add(library)
    db_session.commit()
    db_session.refresh(library)
    return library


@pytest.fixture
def daily_seat(db_session, sample_library):
    """创建单次预订座位"""
    seat = Seat(
        library_id=sample_library.id,
        seat_number="A1",
        seat_name="靠窗 A1",
        seat_for=SeatMode.DAILY,
        is_active=True
    )
    db_session.add(seat)
    db_session.commit()
    db_session.refresh(seat)
    return seat


@pytest.fixture
def monthly_seat(db_session, sample_library):
    """创建月度预订座位"""
    seat = Seat(
        library_id=sample_library.id,
        seat_number="M1",
        seat_name="自习区 M1",
        seat_for=SeatMode.MONTHLY,
        is_active=True
    )
    db_session.add(seat)
    db_session.commit()
    db_session.refresh(seat)
    return seat


@pytest.fixture
def morning_slot(db_session, sample_library, daily_seat):
    """创建 09:00-11:00 时段，已分配 daily_seat"""
    slot = TimeSlot(
        library_id=sample_library.id,
        start_time="09:00",
        end_time="11:00",
        price=Decimal("20.00"),
        is_active=True
    )
    slot.seat_links.append(TimeSlotSeat(seat_id=daily_seat.id, position=0))
    db_session.add(slot)
    db_session.commit()
    db_session.refresh(slot)
    return slot


@pytest.fixture
def booking_date():
    return date.today() + timedelta(days=1)


# ============== 认证相关 Fixtures ==============

@pytest.fixture
def librarian_token(sample_library):
    """图书馆管理员 token（绑定 sample_library）"""
    return create_access_token(100, CallerRole.LIBRARIAN, library_id=sample_library.id)


@pytest.fixture
def student_token():
    """学生 token"""
    return create_access_token(1, CallerRole.STUDENT)


@pytest.fixture
def other_student_token():
    return create_access_token(2, CallerRole.STUDENT)


@pytest.fixture
def librarian_headers(librarian_token):
    """返回管理员认证的请求头"""
    return {"Authorization": f"Bearer {librarian_token}"}


@pytest.fixture
def student_headers(student_token):
    """返回学生认证的请求头"""
    return {"Authorization": f"Bearer {student_token}"}


@pytest.fixture
def other_student_headers(other_student_token):
    return {"Authorization": f"Bearer {other_student_token}"}
