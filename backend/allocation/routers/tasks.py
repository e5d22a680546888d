"""
清洁任务路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from allocation.database import get_db
from allocation.errors import AllocationError
from allocation.models.ontology import TaskStatus
from allocation.models.schemas import TaskAssign, TaskResponse
from allocation.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["清洁任务"])


@router.get("", response_model=List[TaskResponse])
def list_tasks(
    status: Optional[TaskStatus] = None,
    room_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """获取清洁任务列表"""
    return TaskService(db).get_tasks(status, room_id)


@router.post("/{task_id}/assign", response_model=TaskResponse)
def assign_task(task_id: int, data: TaskAssign, db: Session = Depends(get_db)):
    """分配清洁任务"""
    service = TaskService(db)
    try:
        return service.assign_task(task_id, data.staff_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
