"""
领域事件定义 (Domain Events)
事件只在所属事务提交之后发布，外部协作方（清洁、通知）通过订阅消费
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from typing import Optional, Dict, Any, List


class EventType(str, Enum):
    """事件类型枚举"""
    # 预订保留相关
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_CANCELLED = "reservation.cancelled"

    # 订单相关
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_STATUS_CHANGED = "booking.status_changed"
    PAYMENT_COMPLETED = "payment.completed"

    # 清洁协作方
    CLEANING_REQUESTED = "housekeeping.cleaning_requested"

    # 通知协作方
    TASK_ASSIGNED = "task.assigned"

    # 泳池相关
    POOL_SLOT_RESERVED = "pool.slot_reserved"
    POOL_RESERVATION_CANCELLED = "pool.reservation_cancelled"
    POOL_CLEANING_REQUESTED = "pool.cleaning_requested"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        # 处理 datetime/date 序列化
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
        return result


@dataclass
class ReservationCreatedData(BaseEventData):
    """预订保留创建事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    guest_id: int = 0
    room_id: int = 0
    check_in_date: str = ""   # date as string
    check_out_date: str = ""  # date as string
    total_amount: float = 0.0
    expires_at: str = ""


@dataclass
class ReservationCancelledData(BaseEventData):
    """预订保留取消事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    guest_id: int = 0


@dataclass
class BookingConfirmedData(BaseEventData):
    """订单确认事件数据"""
    booking_id: int = 0
    booking_code: str = ""
    guest_id: int = 0
    reservation_id: Optional[int] = None
    room_ids: List[int] = field(default_factory=list)
    status: str = ""
    total_amount: float = 0.0
    payment_status: str = ""


@dataclass
class BookingStatusChangedData(BaseEventData):
    """订单状态变更事件数据"""
    booking_id: int = 0
    booking_code: str = ""
    guest_id: int = 0
    old_status: str = ""
    new_status: str = ""


@dataclass
class PaymentCompletedData(BaseEventData):
    """支付完成事件数据"""
    booking_id: int = 0
    booking_code: str = ""
    guest_id: int = 0
    payment_id: int = 0
    amount: float = 0.0
    transaction_id: str = ""


@dataclass
class CleaningRequestedData(BaseEventData):
    """清洁请求事件数据（每次退房每个房间一条）"""
    room_id: int = 0
    booking_code: str = ""


@dataclass
class TaskAssignedData(BaseEventData):
    """任务分配事件数据"""
    staff_id: int = 0
    message: str = ""
    link: str = ""
    task_id: Optional[int] = None


@dataclass
class PoolSlotReservedData(BaseEventData):
    """泳池时段预约事件数据"""
    pool_reservation_id: int = 0
    slot_id: int = 0
    guest_id: int = 0


@dataclass
class PoolReservationCancelledData(BaseEventData):
    """泳池预约取消事件数据"""
    pool_reservation_id: int = 0
    slot_id: int = 0
    guest_id: int = 0


@dataclass
class PoolCleaningRequestedData(BaseEventData):
    """泳池进入清洁状态事件数据"""
    pool_id: int = 0
    pool_name: str = ""
    previous_status: str = ""
