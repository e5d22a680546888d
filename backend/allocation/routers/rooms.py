"""
房间可用性路由
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from allocation.database import get_db
from allocation.errors import AllocationError
from allocation.models.schemas import AvailabilityResponse, RoomStatusResponse
from allocation.services.availability_service import AvailabilityService
from allocation.services.reservation_service import validate_stay_dates
from allocation.services.room_service import RoomService

router = APIRouter(prefix="/rooms", tags=["房间"])


@router.get("/availability", response_model=AvailabilityResponse)
def get_availability(
    category_id: int,
    check_in: date,
    check_out: date,
    db: Session = Depends(get_db)
):
    """查询房型在日期区间内的可用房间"""
    try:
        validate_stay_dates(check_in, check_out)
        RoomService(db).get_category(category_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    room_ids = AvailabilityService(db).rooms_available(category_id, check_in, check_out)
    return AvailabilityResponse(
        category_id=category_id,
        check_in_date=check_in,
        check_out_date=check_out,
        room_ids=room_ids,
    )


@router.get("/{room_id}", response_model=RoomStatusResponse)
def get_room(room_id: int, db: Session = Depends(get_db)):
    """获取房间当前状态"""
    room = RoomService(db).get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="房间不存在")
    return room
