"""
可用性解析 - 判断房间在日期区间内是否空闲

重叠规则（半开区间）：existing_check_in < new_check_out AND existing_check_out > new_check_in
离店日与另一笔的入住日相同不算冲突。
"""
from datetime import date, datetime
from typing import Callable, List, Optional
import logging
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from allocation.models.ontology import (
    Room, RoomStatus, Reservation, ReservedRoom, ReservationStatus,
    Booking, BookedRoom, BookingStatus
)
from allocation.services.room_service import RoomService

logger = logging.getLogger(__name__)

# 同日到店时房间必须处于可直接交付的状态
SAME_DAY_READY_STATUSES = (RoomStatus.AVAILABLE, RoomStatus.RESERVED)


class AvailabilityService:
    """可用性服务"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self._now = clock
        self.room_directory = RoomService(db)

    def _blocking_reservation_exists(self, room_id: int, check_in: date, check_out: date,
                                     now: datetime,
                                     exclude_reservation_id: Optional[int]) -> bool:
        """是否存在重叠的有效保留（未过期的 pending 或 confirmed）"""
        query = self.db.query(Reservation.id).join(
            ReservedRoom, ReservedRoom.reservation_id == Reservation.id
        ).filter(
            ReservedRoom.room_id == room_id,
            Reservation.check_in_date < check_out,
            Reservation.check_out_date > check_in,
            or_(
                Reservation.status == ReservationStatus.CONFIRMED,
                and_(
                    Reservation.status == ReservationStatus.PENDING,
                    Reservation.expires_at >= now,
                ),
            ),
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query.first() is not None

    def _blocking_booking_exists(self, room_id: int, check_in: date, check_out: date,
                                 exclude_booking_id: Optional[int]) -> bool:
        """是否存在重叠的未取消订单"""
        query = self.db.query(Booking.id).join(
            BookedRoom, BookedRoom.booking_id == Booking.id
        ).filter(
            BookedRoom.room_id == room_id,
            Booking.status != BookingStatus.CANCELLED,
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.first() is not None

    def _room_is_usable(self, room: Optional[Room], check_in: date, now: datetime) -> bool:
        if room is None or room.status == RoomStatus.MAINTENANCE:
            return False
        if check_in == now.date() and room.status not in SAME_DAY_READY_STATUSES:
            return False
        return True

    def is_room_available(self, room_id: int, check_in: date, check_out: date,
                          exclude_reservation_id: Optional[int] = None,
                          exclude_booking_id: Optional[int] = None) -> bool:
        """
        检查单个房间在日期区间内是否可用

        Args:
            room_id: 房间 ID
            check_in: 入住日期
            check_out: 离店日期
            exclude_reservation_id: 排除的保留（确认该保留本身时使用）
            exclude_booking_id: 排除的订单

        Returns:
            True 表示可用
        """
        now = self._now()
        room = self.room_directory.get_room(room_id)
        if not self._room_is_usable(room, check_in, now):
            return False
        if self._blocking_reservation_exists(room_id, check_in, check_out, now,
                                             exclude_reservation_id):
            return False
        if self._blocking_booking_exists(room_id, check_in, check_out, exclude_booking_id):
            return False
        return True

    def rooms_available(self, category_id: int, check_in: date, check_out: date) -> List[int]:
        """
        房型下在日期区间内可用的房间 ID

        按房间 ID 升序返回，调用方取第一个即为确定性分配。
        """
        room_ids = self.room_directory.list_rooms_in_category(category_id)
        available = [
            room_id for room_id in room_ids
            if self.is_room_available(room_id, check_in, check_out)
        ]
        logger.debug(
            f"Category {category_id} {check_in}..{check_out}: "
            f"{len(available)}/{len(room_ids)} rooms available"
        )
        return available
