"""
Pytest 配置和共享 fixtures
"""
import os

# 应用启动时的 init_db 不落盘
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from allocation.database import Base, get_db
from allocation.models import ontology  # noqa
from allocation.models.ontology import RoomType, Room, RoomStatus, Guest
from allocation.services.event_handlers import event_handlers
from allocation.main import app

FIXED_NOW = datetime(2026, 2, 20, 10, 0, 0)


class FixedClock:
    """可控时钟：服务通过 clock() 读取当前时间"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class EventRecorder:
    """记录发布的事件，替代全局事件总线"""

    def __init__(self):
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type):
        value = getattr(event_type, "value", event_type)
        return [e for e in self.events if e.event_type == value]


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
def client(db_engine, db_session):
    """创建测试客户端，事件处理器写入同一个测试库"""
    def override_get_db():
        yield db_session

    original_factory = event_handlers._db_session_factory
    event_handlers._db_session_factory = sessionmaker(
        autocommit=False, autoflush=False, bind=db_engine
    )
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    event_handlers.unregister_handlers()
    event_handlers._db_session_factory = original_factory


@pytest.fixture
def clock():
    """固定在 2026-02-20 10:00 的时钟"""
    return FixedClock()


@pytest.fixture
def recorder():
    """事件记录器"""
    return EventRecorder()


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_category(db_session):
    """创建测试房型：200/晚，15% 折扣"""
    room_type = RoomType(
        name="豪华间",
        description="Deluxe Room",
        base_price=Decimal("200.00"),
        discount_percent=Decimal("15"),
        max_occupancy=2
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def sample_room(db_session, sample_category):
    """创建测试房间 101"""
    room = Room(
        room_number="101",
        floor=1,
        room_type_id=sample_category.id,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room_102(db_session, sample_category):
    """创建测试房间 102"""
    room = Room(
        room_number="102",
        floor=1,
        room_type_id=sample_category.id,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_guest(db_session):
    """创建测试客人"""
    guest = Guest(name="张三", phone="13800138000", email="zhangsan@example.com")
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def future_dates():
    """相对真实日期的入住/离店日期（API 测试使用系统时钟）"""
    check_in = date.today() + timedelta(days=30)
    return check_in, check_in + timedelta(days=3)
