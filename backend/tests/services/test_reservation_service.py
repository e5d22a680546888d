"""
Tests for allocation/services/reservation_service.py
Covers: create_hold (validation, pricing, allocation, TTL, events),
        get_reservations / get_reservation_detail (expiry projection),
        cancel_reservation, expire_stale_holds
"""
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from allocation.errors import (
    InvalidDateRange, InvalidRequest, InvalidTransition, NoAvailability, NotFound
)
from allocation.models.events import EventType
from allocation.models.ontology import Reservation, ReservationStatus, RoomStatus
from allocation.services.reservation_service import ReservationService

MAR_1 = date(2026, 3, 1)
MAR_4 = date(2026, 3, 4)
MAR_5 = date(2026, 3, 5)


@pytest.fixture
def service(db_session, recorder, clock):
    return ReservationService(db_session, event_publisher=recorder, clock=clock)


def _create(service, category, guest, check_in=MAR_1, check_out=MAR_4, adults=2, children=0):
    return service.create_hold(
        category_id=category.id, check_in=check_in, check_out=check_out,
        adults=adults, children=children, guest_id=guest.id
    )


class TestCreateHold:

    def test_creates_pending_hold_with_price(self, service, sample_category, sample_room,
                                             sample_guest):
        hold = _create(service, sample_category, sample_guest)

        assert hold.id is not None
        assert hold.reservation_code.startswith("RES-")
        assert len(hold.reservation_code) == 11
        assert hold.status == ReservationStatus.PENDING
        assert hold.rooms_count == 1
        assert hold.reserved_room.room_id == sample_room.id
        assert hold.reserved_room.price_per_night == Decimal("170")
        assert hold.reserved_room.nights == 3
        assert hold.subtotal_amount == Decimal("510")
        assert hold.tax_amount == Decimal("77")
        assert hold.total_amount == Decimal("587")

    def test_expires_after_ttl(self, service, sample_category, sample_room, sample_guest, clock):
        hold = _create(service, sample_category, sample_guest)
        assert hold.expires_at == clock.now + timedelta(minutes=15)

    def test_publishes_created_event(self, service, recorder, sample_category, sample_room,
                                     sample_guest):
        hold = _create(service, sample_category, sample_guest)
        events = recorder.of_type(EventType.RESERVATION_CREATED)
        assert len(events) == 1
        assert events[0].data["reservation_id"] == hold.id
        assert events[0].data["room_id"] == sample_room.id

    def test_picks_lowest_free_room(self, service, sample_category, sample_room,
                                    sample_room_102, sample_guest):
        first = _create(service, sample_category, sample_guest)
        second = _create(service, sample_category, sample_guest)
        assert first.reserved_room.room_id == sample_room.id
        assert second.reserved_room.room_id == sample_room_102.id

    def test_hold_does_not_change_room_status(self, service, db_session, sample_category,
                                              sample_room, sample_guest):
        _create(service, sample_category, sample_guest)
        db_session.refresh(sample_room)
        assert sample_room.status == RoomStatus.AVAILABLE

    def test_no_availability(self, service, sample_category, sample_room, sample_guest):
        _create(service, sample_category, sample_guest)
        with pytest.raises(NoAvailability):
            _create(service, sample_category, sample_guest, check_in=date(2026, 3, 2),
                    check_out=MAR_5)

    def test_back_to_back_stays_share_room(self, service, sample_category, sample_room,
                                           sample_guest):
        _create(service, sample_category, sample_guest, check_in=MAR_1, check_out=MAR_5)
        second = _create(service, sample_category, sample_guest, check_in=MAR_5,
                         check_out=date(2026, 3, 8))
        assert second.reserved_room.room_id == sample_room.id

    def test_room_frees_once_hold_expires(self, service, clock, sample_category, sample_room,
                                          sample_guest):
        _create(service, sample_category, sample_guest)
        clock.advance(minutes=16)
        again = _create(service, sample_category, sample_guest)
        assert again.reserved_room.room_id == sample_room.id

    def test_no_event_on_failure(self, service, recorder, sample_category, sample_guest):
        with pytest.raises(NoAvailability):
            _create(service, sample_category, sample_guest)
        assert recorder.events == []

    @pytest.mark.parametrize("check_in,check_out", [
        (MAR_5, MAR_1),
        (MAR_1, MAR_1),
    ])
    def test_invalid_date_range(self, service, sample_category, sample_room, sample_guest,
                                check_in, check_out):
        with pytest.raises(InvalidDateRange):
            _create(service, sample_category, sample_guest, check_in=check_in,
                    check_out=check_out)

    def test_missing_fields(self, service, sample_guest):
        with pytest.raises(InvalidRequest):
            service.create_hold(category_id=None, check_in=MAR_1, check_out=MAR_4,
                                adults=1, guest_id=sample_guest.id)
        with pytest.raises(InvalidRequest):
            service.create_hold(category_id=1, check_in=None, check_out=MAR_4,
                                adults=1, guest_id=sample_guest.id)

    def test_invalid_occupancy(self, service, sample_category, sample_room, sample_guest):
        with pytest.raises(InvalidRequest):
            _create(service, sample_category, sample_guest, adults=0)

    def test_unknown_category(self, service, sample_guest):
        with pytest.raises(NotFound):
            service.create_hold(category_id=999, check_in=MAR_1, check_out=MAR_4,
                                adults=1, guest_id=sample_guest.id)

    def test_unknown_guest(self, service, sample_category, sample_room):
        with pytest.raises(NotFound):
            service.create_hold(category_id=sample_category.id, check_in=MAR_1,
                                check_out=MAR_4, adults=1, guest_id=999)


class TestReadProjection:

    def test_detail_shows_expired_after_ttl(self, service, db_session, clock, sample_category,
                                            sample_room, sample_guest):
        hold = _create(service, sample_category, sample_guest)
        clock.advance(minutes=15, seconds=1)

        detail = service.get_reservation_detail(hold.id)
        assert detail["status"] == ReservationStatus.EXPIRED

        # 存储字段不被读取改写
        stored = db_session.get(Reservation, hold.id)
        assert stored.status == ReservationStatus.PENDING

    def test_status_filter_uses_projection(self, service, clock, sample_category, sample_room,
                                           sample_room_102, sample_guest):
        old = _create(service, sample_category, sample_guest)
        clock.advance(minutes=20)
        fresh = _create(service, sample_category, sample_guest)

        expired = service.get_reservations(status=ReservationStatus.EXPIRED)
        pending = service.get_reservations(status=ReservationStatus.PENDING)
        assert [r.id for r in expired] == [old.id]
        assert [r.id for r in pending] == [fresh.id]

    def test_list_newest_first(self, service, clock, sample_category, sample_room,
                               sample_room_102, sample_guest):
        first = _create(service, sample_category, sample_guest)
        clock.advance(minutes=1)
        second = _create(service, sample_category, sample_guest)
        ids = [r.id for r in service.get_reservations(guest_id=sample_guest.id)]
        assert ids == [second.id, first.id]

    def test_detail_missing(self, service):
        assert service.get_reservation_detail(999) is None


class TestCancel:

    def test_cancel_pending(self, service, recorder, sample_category, sample_room, sample_guest):
        hold = _create(service, sample_category, sample_guest)
        cancelled = service.cancel_reservation(hold.id)
        assert cancelled.status == ReservationStatus.CANCELLED
        assert len(recorder.of_type(EventType.RESERVATION_CANCELLED)) == 1

    def test_cancel_frees_room(self, service, sample_category, sample_room, sample_guest):
        hold = _create(service, sample_category, sample_guest)
        service.cancel_reservation(hold.id)
        again = _create(service, sample_category, sample_guest)
        assert again.reserved_room.room_id == sample_room.id

    def test_cannot_cancel_twice(self, service, sample_category, sample_room, sample_guest):
        hold = _create(service, sample_category, sample_guest)
        service.cancel_reservation(hold.id)
        with pytest.raises(InvalidTransition):
            service.cancel_reservation(hold.id)

    def test_cannot_cancel_expired_hold(self, service, clock, sample_category, sample_room,
                                        sample_guest):
        hold = _create(service, sample_category, sample_guest)
        clock.advance(minutes=30)
        with pytest.raises(InvalidTransition):
            service.cancel_reservation(hold.id)

    def test_cancel_missing(self, service):
        with pytest.raises(NotFound):
            service.cancel_reservation(999)


class TestExpireStaleHolds:

    def test_persists_expiry(self, service, db_session, clock, sample_category, sample_room,
                             sample_room_102, sample_guest):
        stale = _create(service, sample_category, sample_guest)
        clock.advance(minutes=20)
        live = _create(service, sample_category, sample_guest)

        assert service.expire_stale_holds() == 1
        db_session.expire_all()
        assert db_session.get(Reservation, stale.id).status == ReservationStatus.EXPIRED
        assert db_session.get(Reservation, live.id).status == ReservationStatus.PENDING

    def test_nothing_to_expire(self, service):
        assert service.expire_stale_holds() == 0
