"""
Pydantic 模式定义
用于 API 请求/响应验证

日期先后、人数等业务校验由服务层完成（返回 400），
这里只约束字段类型与结构（FastAPI 返回 422）。
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from allocation.models.ontology import (
    RoomStatus, ReservationStatus, BookingStatus, PaymentMethod, PaymentStatus,
    PoolStatus, PoolReservationStatus, TaskStatus
)


# ============== 可用性 Schemas ==============

class AvailabilityResponse(BaseModel):
    category_id: int
    check_in_date: date
    check_out_date: date
    room_ids: List[int]


# ============== 预订保留 Schemas ==============

class HoldCreate(BaseModel):
    category_id: int
    guest_id: int
    check_in_date: date
    check_out_date: date
    adult_count: int = 1
    child_count: int = 0


class ReservedRoomResponse(BaseModel):
    room_id: int
    price_per_night: Decimal
    nights: int
    subtotal: Decimal
    model_config = ConfigDict(from_attributes=True)


class ReservationResponse(BaseModel):
    id: int
    reservation_code: str
    guest_id: int
    check_in_date: date
    check_out_date: date
    adult_count: int
    child_count: int
    rooms_count: int
    reserved_room: Optional[ReservedRoomResponse] = None
    subtotal_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: ReservationStatus
    expires_at: datetime
    created_at: Optional[datetime] = None


class ExpireHoldsResponse(BaseModel):
    expired_count: int


# ============== 订单 Schemas ==============

class BookedRoomInput(BaseModel):
    room_id: int
    price_per_night: Decimal = Field(..., ge=0)
    nights: int = Field(..., ge=1)
    subtotal: Decimal = Field(..., ge=0)


class BookingCreate(BaseModel):
    reservation_id: Optional[int] = None
    guest_id: Optional[int] = None
    check_in_date: date
    check_out_date: date
    adult_count: int = 1
    child_count: int = 0
    booked_rooms: List[BookedRoomInput]
    total_amount: Decimal
    payment_method: PaymentMethod


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookedRoomResponse(BaseModel):
    room_id: int
    price_per_night: Decimal
    nights: int
    subtotal: Decimal
    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: int
    booking_code: str
    reservation_id: Optional[int] = None
    guest_id: int
    check_in_date: date
    check_out_date: date
    adult_count: int
    child_count: int
    booked_rooms: List[BookedRoomResponse] = []
    subtotal_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: BookingStatus
    payment_id: Optional[int] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class BookingListResponse(BaseModel):
    items: List[BookingResponse]
    pagination: Pagination


class InvoiceResponse(BaseModel):
    booking: BookingResponse
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    payment: Optional[PaymentResponse] = None
    issued_at: datetime


# ============== 泳池 Schemas ==============

class PoolResponse(BaseModel):
    id: int
    name: str
    status: PoolStatus
    current_occupancy: int
    max_capacity: int
    temperature: Optional[Decimal] = None
    opening_time: str
    closing_time: str
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class PoolUpdate(BaseModel):
    status: Optional[PoolStatus] = None
    current_occupancy: Optional[int] = Field(None, ge=0)
    max_capacity: Optional[int] = Field(None, ge=1)
    temperature: Optional[Decimal] = None
    opening_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    closing_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    notes: Optional[str] = None


class PoolSlotResponse(BaseModel):
    id: int
    date: date
    start_time: str
    end_time: str
    max_people: int
    current_reserved: int
    remaining: int
    model_config = ConfigDict(from_attributes=True)


class PoolReservationCreate(BaseModel):
    slot_id: int
    guest_id: int
    room_id: Optional[int] = None


class PoolReservationResponse(BaseModel):
    id: int
    slot_id: int
    guest_id: int
    room_id: Optional[int] = None
    status: PoolReservationStatus
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 清洁任务 Schemas ==============

class TaskAssign(BaseModel):
    staff_id: int


class TaskResponse(BaseModel):
    id: int
    room_id: int
    booking_code: Optional[str] = None
    status: TaskStatus
    assignee_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class RoomStatusResponse(BaseModel):
    id: int
    room_number: str
    status: RoomStatus
    model_config = ConfigDict(from_attributes=True)
