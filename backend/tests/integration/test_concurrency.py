"""
并发分配测试
每个线程使用独立会话访问同一个文件型 SQLite 数据库，
验证同一房间/时段上的并发请求不会重复分配
"""
import threading
import pytest
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from allocation.database import Base
from allocation.errors import NoAvailability, RoomNoLongerAvailable, SlotFull
from allocation.models.ontology import (
    Booking, Guest, PaymentMethod, PoolReservation, PoolReservationStatus, PoolSlot,
    Reservation, Room, RoomType,
)
from allocation.models.schemas import BookingCreate, BookedRoomInput
from allocation.services.booking_service import BookingService
from allocation.services.pool_service import PoolService
from allocation.services.reservation_service import ReservationService

NOW = datetime(2026, 2, 20, 10, 0)
MAR_1 = date(2026, 3, 1)
MAR_4 = date(2026, 3, 4)


def _noop(event):
    pass


def _run_concurrently(count, work):
    """所有线程在栅栏处同时起跑，返回每个线程的 (结果, 异常)"""
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        try:
            results[index] = (work(index), None)
        except Exception as e:
            results[index] = (None, e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'allocation.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    """一个房型、三间房、一位客人"""
    db = session_factory()
    category = RoomType(name="豪华间", base_price=Decimal("200"), discount_percent=Decimal("15"))
    db.add(category)
    db.flush()
    rooms = [Room(room_number=str(100 + i), room_type_id=category.id) for i in range(1, 4)]
    guest = Guest(name="张三")
    db.add_all(rooms + [guest])
    db.commit()
    ids = {
        "category_id": category.id,
        "room_ids": [room.id for room in rooms],
        "guest_id": guest.id,
    }
    db.close()
    return ids


def _hold_worker(session_factory, seeded):
    def work(index):
        db = session_factory()
        try:
            service = ReservationService(db, event_publisher=_noop, clock=lambda: NOW)
            hold = service.create_hold(
                category_id=seeded["category_id"], check_in=MAR_1, check_out=MAR_4,
                adults=1, guest_id=seeded["guest_id"]
            )
            return hold.reserved_room.room_id
        finally:
            db.close()
    return work


class TestConcurrentHolds:

    def test_single_room_goes_to_exactly_one_request(self, session_factory, seeded):
        # 只保留一间房在该房型下
        db = session_factory()
        for room in db.query(Room).filter(Room.id.in_(seeded["room_ids"][1:])).all():
            db.delete(room)
        db.commit()
        db.close()

        results = _run_concurrently(2, _hold_worker(session_factory, seeded))

        successes = [room_id for room_id, error in results if error is None]
        failures = [error for _, error in results if error is not None]
        assert successes == [seeded["room_ids"][0]]
        assert len(failures) == 1
        assert isinstance(failures[0], NoAvailability)

    def test_holds_never_share_a_room(self, session_factory, seeded):
        results = _run_concurrently(6, _hold_worker(session_factory, seeded))

        successes = [room_id for room_id, error in results if error is None]
        failures = [error for _, error in results if error is not None]
        assert sorted(successes) == sorted(seeded["room_ids"])
        assert len(failures) == 3
        assert all(isinstance(e, NoAvailability) for e in failures)

        db = session_factory()
        assert db.query(Reservation).count() == 3
        db.close()


class TestConcurrentFinalize:

    def test_direct_bookings_on_same_room(self, session_factory, seeded):
        room_id = seeded["room_ids"][0]

        def work(index):
            db = session_factory()
            try:
                service = BookingService(db, event_publisher=_noop, clock=lambda: NOW)
                booking = service.finalize_booking(BookingCreate(
                    guest_id=seeded["guest_id"],
                    check_in_date=MAR_1,
                    check_out_date=MAR_4,
                    booked_rooms=[BookedRoomInput(
                        room_id=room_id, price_per_night=Decimal("170"), nights=3,
                        subtotal=Decimal("510"),
                    )],
                    total_amount=Decimal("587"),
                    payment_method=PaymentMethod.CARD,
                ))
                return booking.id
            finally:
                db.close()

        results = _run_concurrently(3, work)

        successes = [booking_id for booking_id, error in results if error is None]
        failures = [error for _, error in results if error is not None]
        assert len(successes) == 1
        assert all(isinstance(e, RoomNoLongerAvailable) for e in failures)

        db = session_factory()
        assert db.query(Booking).count() == 1
        db.close()


class TestConcurrentPoolSlots:

    @pytest.mark.parametrize("capacity,callers", [(2, 3), (5, 8), (1, 6)])
    def test_exactly_capacity_reservations_succeed(self, session_factory, seeded,
                                                   capacity, callers):
        db = session_factory()
        slot = PoolSlot(date=MAR_1, start_time="10:00", end_time="11:00", max_people=capacity)
        db.add(slot)
        db.commit()
        slot_id = slot.id
        db.close()

        def work(index):
            session = session_factory()
            try:
                service = PoolService(session, event_publisher=_noop)
                return service.reserve_slot(slot_id, seeded["guest_id"]).id
            finally:
                session.close()

        results = _run_concurrently(callers, work)

        successes = [rid for rid, error in results if error is None]
        failures = [error for _, error in results if error is not None]
        assert len(successes) == min(callers, capacity)
        assert all(isinstance(e, SlotFull) for e in failures)

        db = session_factory()
        assert db.get(PoolSlot, slot_id).current_reserved == len(successes)
        assert db.query(PoolReservation).count() == len(successes)
        db.close()

    def test_concurrent_cancel_and_reserve_keep_counter_consistent(self, session_factory,
                                                                   seeded):
        db = session_factory()
        slot = PoolSlot(date=MAR_1, start_time="10:00", end_time="11:00", max_people=2)
        db.add(slot)
        db.commit()
        slot_id = slot.id
        service = PoolService(db, event_publisher=_noop)
        existing = [service.reserve_slot(slot_id, seeded["guest_id"]).id for _ in range(2)]
        db.close()

        def work(index):
            session = session_factory()
            try:
                service = PoolService(session, event_publisher=_noop)
                if index < 2:
                    return service.cancel_slot_reservation(existing[index]).id
                return service.reserve_slot(slot_id, seeded["guest_id"]).id
            finally:
                session.close()

        _run_concurrently(4, work)

        db = session_factory()
        live = db.query(PoolReservation).filter(
            PoolReservation.slot_id == slot_id,
            PoolReservation.status != PoolReservationStatus.CANCELLED,
        ).count()
        current = db.get(PoolSlot, slot_id).current_reserved
        assert current == live
        assert 0 <= current <= 2
        db.close()
