"""
泳池路由
"""
from typing import List
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from allocation.database import get_db
from allocation.errors import AllocationError
from allocation.models.schemas import (
    PoolResponse, PoolUpdate, PoolSlotResponse, PoolReservationCreate, PoolReservationResponse
)
from allocation.services.pool_service import PoolService

router = APIRouter(prefix="/pool", tags=["泳池"])


@router.get("", response_model=PoolResponse)
def get_pool_status(db: Session = Depends(get_db)):
    """获取泳池状态"""
    return PoolService(db).get_pool()


@router.put("", response_model=PoolResponse)
def update_pool_status(data: PoolUpdate, db: Session = Depends(get_db)):
    """更新泳池状态"""
    return PoolService(db).update_pool_status(data)


@router.get("/slots", response_model=List[PoolSlotResponse])
def list_slots(date: date, db: Session = Depends(get_db)):
    """获取某日时段（首次访问时生成）"""
    return PoolService(db).list_slots(date)


@router.post("/reservations", response_model=PoolReservationResponse, status_code=201)
def reserve_slot(data: PoolReservationCreate, db: Session = Depends(get_db)):
    """预约时段"""
    service = PoolService(db)
    try:
        return service.reserve_slot(data.slot_id, data.guest_id, data.room_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/reservations/{reservation_id}/cancel", response_model=PoolReservationResponse)
def cancel_slot_reservation(reservation_id: int, db: Session = Depends(get_db)):
    """取消泳池预约"""
    service = PoolService(db)
    try:
        return service.cancel_slot_reservation(reservation_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/reservations/{reservation_id}/complete", response_model=PoolReservationResponse)
def complete_slot_reservation(reservation_id: int, db: Session = Depends(get_db)):
    """标记泳池预约已使用"""
    service = PoolService(db)
    try:
        return service.complete_slot_reservation(reservation_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
