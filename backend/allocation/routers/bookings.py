"""
订单路由
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from allocation.database import get_db
from allocation.errors import AllocationError
from allocation.models.ontology import BookingStatus
from allocation.models.schemas import (
    BookingCreate, BookingResponse, BookingStatusUpdate, BookingListResponse, InvoiceResponse
)
from allocation.services.booking_service import BookingService

router = APIRouter(prefix="/bookings", tags=["订单"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def finalize_booking(data: BookingCreate, db: Session = Depends(get_db)):
    """确认订单（由预订保留或直接下单）"""
    service = BookingService(db)
    try:
        return service.finalize_booking(data)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=BookingListResponse)
def list_bookings(
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """分页获取订单列表"""
    service = BookingService(db)
    return service.list_bookings(status, page, limit)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: int, db: Session = Depends(get_db)):
    """获取订单详情"""
    service = BookingService(db)
    booking = service.get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="订单不存在")
    return booking


@router.patch("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(booking_id: int, data: BookingStatusUpdate,
                          db: Session = Depends(get_db)):
    """推进订单状态（入住/退房/取消）"""
    service = BookingService(db)
    try:
        return service.advance_booking_status(booking_id, data.status)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{booking_id}/confirm-payment", response_model=BookingResponse)
def confirm_payment(booking_id: int, db: Session = Depends(get_db)):
    """确认现金付款"""
    service = BookingService(db)
    try:
        return service.confirm_payment(booking_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{booking_id}/invoice", response_model=InvoiceResponse)
def get_invoice(booking_id: int, db: Session = Depends(get_db)):
    """获取账单数据"""
    service = BookingService(db)
    try:
        return service.get_invoice(booking_id)
    except AllocationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
