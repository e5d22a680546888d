"""
Tests for allocation/services/room_service.py
Covers: get_category, list_rooms_in_category, set_room_status, claim_room
"""
import pytest

from allocation.errors import NotFound
from allocation.models.ontology import Room, RoomStatus
from allocation.services.room_service import RoomService


class TestCatalog:

    def test_get_category(self, db_session, sample_category):
        service = RoomService(db_session)
        assert service.get_category(sample_category.id).name == "豪华间"

    def test_unknown_category_raises(self, db_session):
        with pytest.raises(NotFound) as exc:
            RoomService(db_session).get_category(9999)
        assert exc.value.status_code == 404

    def test_list_rooms_in_category_sorted(self, db_session, sample_room_102, sample_room):
        ids = RoomService(db_session).list_rooms_in_category(sample_room.room_type_id)
        assert ids == sorted([sample_room.id, sample_room_102.id])


class TestSetRoomStatus:

    def test_sets_status(self, db_session, sample_room):
        service = RoomService(db_session)
        assert service.set_room_status([sample_room.id], RoomStatus.OCCUPIED) == 1
        db_session.commit()
        db_session.refresh(sample_room)
        assert sample_room.status == RoomStatus.OCCUPIED

    def test_only_from_skips_other_states(self, db_session, sample_room):
        service = RoomService(db_session)
        service.set_room_status([sample_room.id], RoomStatus.DIRTY)
        updated = service.set_room_status(
            [sample_room.id], RoomStatus.RESERVED, only_from=[RoomStatus.AVAILABLE]
        )
        db_session.commit()
        db_session.refresh(sample_room)
        assert updated == 0
        assert sample_room.status == RoomStatus.DIRTY

    def test_empty_ids_noop(self, db_session):
        assert RoomService(db_session).set_room_status([], RoomStatus.AVAILABLE) == 0


class TestClaimRoom:

    def test_claim_bumps_lock_version(self, db_session, sample_room):
        before = sample_room.lock_version
        assert RoomService(db_session).claim_room(sample_room.id) is True
        db_session.commit()
        assert db_session.get(Room, sample_room.id).lock_version == before + 1

    def test_claim_unknown_room(self, db_session):
        assert RoomService(db_session).claim_room(9999) is False
