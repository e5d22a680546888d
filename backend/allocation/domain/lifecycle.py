"""
domain/lifecycle.py

状态转换表 - Reservation / Booking / PoolReservation

每个实体一张显式的转换表，表必须覆盖枚举的全部状态（终态映射为空集合），
不在表中的转换一律拒绝。
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Type
import logging

from allocation.models.ontology import (
    ReservationStatus, BookingStatus, PoolReservationStatus
)
from allocation.errors import InvalidTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionTable:
    """
    状态转换表

    Attributes:
        entity: 实体名称（用于错误信息）
        states: 状态枚举类型
        transitions: 源状态 -> 允许的目标状态集合
    """

    entity: str
    states: Type[Enum]
    transitions: Dict[Enum, FrozenSet[Enum]]

    def __post_init__(self):
        missing = set(self.states) - set(self.transitions)
        if missing:
            raise ValueError(
                f"{self.entity} 转换表缺少状态: {sorted(s.value for s in missing)}"
            )

    def allowed_targets(self, current: Enum) -> FrozenSet[Enum]:
        """当前状态允许转换到的目标状态"""
        return self.transitions[self.states(current)]

    def can_transition(self, current: Enum, target: Enum) -> bool:
        """检查转换是否被允许"""
        return self.states(target) in self.allowed_targets(current)

    def is_terminal(self, state: Enum) -> bool:
        """是否终态"""
        return not self.allowed_targets(state)

    def ensure(self, current: Enum, target: Enum) -> None:
        """校验转换，不允许时抛出 InvalidTransition"""
        if not self.can_transition(current, target):
            current_value = self.states(current).value
            target_value = self.states(target).value
            logger.info(f"Rejected {self.entity} transition {current_value} -> {target_value}")
            raise InvalidTransition(self.entity, current_value, target_value)


# ============== 转换表 ==============

RESERVATION_LIFECYCLE = TransitionTable(
    entity="Reservation",
    states=ReservationStatus,
    transitions={
        ReservationStatus.PENDING: frozenset({
            ReservationStatus.CONFIRMED,   # finalize
            ReservationStatus.EXPIRED,     # TTL 到期
            ReservationStatus.CANCELLED,   # 管理员取消
        }),
        ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CANCELLED}),
        ReservationStatus.EXPIRED: frozenset(),
        ReservationStatus.CANCELLED: frozenset(),
    },
)

BOOKING_LIFECYCLE = TransitionTable(
    entity="Booking",
    states=BookingStatus,
    transitions={
        BookingStatus.PENDING_PAYMENT: frozenset({
            BookingStatus.CONFIRMED,
            BookingStatus.CONFIRMED_UNPAID,
            BookingStatus.CANCELLED,
        }),
        BookingStatus.CONFIRMED: frozenset({
            BookingStatus.CHECKED_IN,
            BookingStatus.CANCELLED,
        }),
        BookingStatus.CONFIRMED_UNPAID: frozenset({
            BookingStatus.CONFIRMED,       # 现金到账
            BookingStatus.CHECKED_IN,
            BookingStatus.CANCELLED,
        }),
        BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
        BookingStatus.CHECKED_OUT: frozenset(),
        BookingStatus.CANCELLED: frozenset(),
    },
)

POOL_RESERVATION_LIFECYCLE = TransitionTable(
    entity="PoolReservation",
    states=PoolReservationStatus,
    transitions={
        PoolReservationStatus.CONFIRMED: frozenset({
            PoolReservationStatus.CANCELLED,
            PoolReservationStatus.COMPLETED,
        }),
        PoolReservationStatus.CANCELLED: frozenset(),
        PoolReservationStatus.COMPLETED: frozenset(),
    },
)


# ============== 过期投影 ==============

def is_hold_active(expires_at: datetime, now: datetime) -> bool:
    """保留是否仍在有效期内（到期时刻本身仍有效）"""
    return now <= expires_at


def effective_status(reservation, now: datetime) -> ReservationStatus:
    """
    预订的对外状态

    已存储为 pending 但已超过 expires_at 的保留呈现为 expired。
    所有读取边界以及 finalize 都使用这个投影，而不是直接信任存储字段。
    """
    status = ReservationStatus(reservation.status)
    if status == ReservationStatus.PENDING and not is_hold_active(reservation.expires_at, now):
        return ReservationStatus.EXPIRED
    return status
