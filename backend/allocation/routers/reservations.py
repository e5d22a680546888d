"""
预订保留路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from allocation.database import get_db
from allocation.errors import AllocationError
from allocation.models.ontology import ReservationStatus
from allocation.models.schemas import HoldCreate, ReservationResponse, ExpireHoldsResponse
from allocation.services.reservation_service import ReservationService

router = APIRouter(prefix="/reservations", tags=["预订保留"])


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_hold(data: HoldCreate, db: Session = Depends(get_db)):
    """创建预订保留"""
    service = ReservationService(db)
    try:
        reservation = service.create_hold(
            category_id=data.category_id,
            check_in=data.check_in_date,
            check_out=data.check_out_date,
            adults=data.adult_count,
            children=data.child_count,
            guest_id=data.guest_id,
        )
        return ReservationResponse(**service.to_detail(reservation))
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[ReservationStatus] = None,
    guest_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """获取预订保留列表（过期状态已投影）"""
    service = ReservationService(db)
    reservations = service.get_reservations(status, guest_id)
    return [ReservationResponse(**service.to_detail(r)) for r in reservations]


@router.post("/expire-stale", response_model=ExpireHoldsResponse)
def expire_stale_holds(db: Session = Depends(get_db)):
    """将已过期的保留写回为 expired"""
    service = ReservationService(db)
    try:
        return ExpireHoldsResponse(expired_count=service.expire_stale_holds())
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(reservation_id: int, db: Session = Depends(get_db)):
    """获取预订保留详情"""
    service = ReservationService(db)
    detail = service.get_reservation_detail(reservation_id)
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="预订不存在")
    return ReservationResponse(**detail)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(reservation_id: int, db: Session = Depends(get_db)):
    """取消预订保留"""
    service = ReservationService(db)
    try:
        reservation = service.cancel_reservation(reservation_id)
        return ReservationResponse(**service.to_detail(reservation))
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
