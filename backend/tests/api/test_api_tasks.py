"""
清洁任务 API 测试
"""
from fastapi.testclient import TestClient

from allocation.models.ontology import HousekeepingTask, Notification, TaskStatus


class TestAssignTask:

    def test_assign_records_staff_notification(self, client: TestClient, db_session,
                                               sample_room):
        task = HousekeepingTask(room_id=sample_room.id, booking_code="BK-TEST001",
                                status=TaskStatus.PENDING)
        db_session.add(task)
        db_session.commit()

        response = client.post(f"/tasks/{task.id}/assign", json={"staff_id": 5})

        assert response.status_code == 200
        assert response.json()["status"] == "assigned"
        assert response.json()["assignee_id"] == 5

        db_session.expire_all()
        notification = db_session.query(Notification).filter(
            Notification.recipient_type == "staff"
        ).one()
        assert notification.recipient_id == 5
        assert notification.link == f"/tasks/{task.id}"

    def test_assign_missing_task(self, client):
        response = client.post("/tasks/999/assign", json={"staff_id": 1})
        assert response.status_code == 404

    def test_list_tasks_empty(self, client):
        response = client.get("/tasks")
        assert response.status_code == 200
        assert response.json() == []
