"""
清洁任务服务 - 清洁协作方的最小实现
任务由退房清洁请求自动创建；分配任务是 TaskAssigned 通知事件的发出点
"""
from typing import List, Optional, Callable
from datetime import datetime
import logging
from sqlalchemy.orm import Session
from allocation.errors import InvalidTransition, NotFound
from allocation.models.ontology import HousekeepingTask, TaskStatus
from allocation.models.events import EventType, TaskAssignedData
from allocation.services.event_bus import event_bus, Event

logger = logging.getLogger(__name__)


class TaskService:
    """清洁任务服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    def get_tasks(self, status: Optional[TaskStatus] = None,
                  room_id: Optional[int] = None) -> List[HousekeepingTask]:
        """获取任务列表"""
        query = self.db.query(HousekeepingTask)
        if status:
            query = query.filter(HousekeepingTask.status == status)
        if room_id:
            query = query.filter(HousekeepingTask.room_id == room_id)
        return query.order_by(HousekeepingTask.created_at.desc()).all()

    def get_task(self, task_id: int) -> Optional[HousekeepingTask]:
        """获取单个任务"""
        return self.db.query(HousekeepingTask).filter(HousekeepingTask.id == task_id).first()

    def assign_task(self, task_id: int, staff_id: int) -> HousekeepingTask:
        """分配任务（可重新分配未完成的任务）"""
        task = self.get_task(task_id)
        if not task:
            raise NotFound("任务不存在", task_id=task_id)

        if task.status not in (TaskStatus.PENDING, TaskStatus.ASSIGNED):
            raise InvalidTransition(
                "HousekeepingTask", task.status.value, TaskStatus.ASSIGNED.value,
                message=f"状态为 {task.status.value} 的任务无法分配"
            )

        task.assignee_id = staff_id
        task.status = TaskStatus.ASSIGNED
        task.assigned_at = datetime.now()
        self.db.commit()
        self.db.refresh(task)
        logger.info(f"Task {task.id} (room {task.room_id}) assigned to staff {staff_id}")

        room_number = task.room.room_number if task.room else task.room_id
        self._publish_event(Event.create(
            EventType.TASK_ASSIGNED,
            TaskAssignedData(
                staff_id=staff_id,
                message=f"您有新的清洁任务：房间 {room_number}",
                link=f"/tasks/{task.id}",
                task_id=task.id,
            ).to_dict(),
            source="task_service"
        ))
        return task
