"""
房间可用性与健康检查 API 测试
"""
from datetime import timedelta
from fastapi.testclient import TestClient


class TestAvailability:

    def test_available_rooms(self, client: TestClient, sample_category, sample_room,
                             sample_room_102, future_dates):
        check_in, check_out = future_dates
        response = client.get("/rooms/availability", params={
            "category_id": sample_category.id,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
        })
        assert response.status_code == 200
        assert response.json()["room_ids"] == [sample_room.id, sample_room_102.id]

    def test_hold_removes_room(self, client, sample_category, sample_room, sample_room_102,
                               sample_guest, future_dates):
        check_in, check_out = future_dates
        client.post("/reservations", json={
            "category_id": sample_category.id,
            "guest_id": sample_guest.id,
            "check_in_date": check_in.isoformat(),
            "check_out_date": check_out.isoformat(),
        })
        response = client.get("/rooms/availability", params={
            "category_id": sample_category.id,
            "check_in": check_out.isoformat(),
            "check_out": (check_out + timedelta(days=2)).isoformat(),
        })
        # 离店日开始的新入住不冲突
        assert response.json()["room_ids"] == [sample_room.id, sample_room_102.id]

        overlapping = client.get("/rooms/availability", params={
            "category_id": sample_category.id,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
        })
        assert overlapping.json()["room_ids"] == [sample_room_102.id]

    def test_invalid_range(self, client, sample_category, future_dates):
        check_in, check_out = future_dates
        response = client.get("/rooms/availability", params={
            "category_id": sample_category.id,
            "check_in": check_out.isoformat(),
            "check_out": check_in.isoformat(),
        })
        assert response.status_code == 400

    def test_unknown_category(self, client, future_dates):
        check_in, check_out = future_dates
        response = client.get("/rooms/availability", params={
            "category_id": 999,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
        })
        assert response.status_code == 404


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestRoomStatus:

    def test_get_room(self, client, sample_room):
        response = client.get(f"/rooms/{sample_room.id}")
        assert response.status_code == 200
        assert response.json()["room_number"] == "101"
        assert response.json()["status"] == "available"

    def test_unknown_room(self, client):
        assert client.get("/rooms/9999").status_code == 404
