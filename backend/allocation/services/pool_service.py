"""
泳池服务 - 固定容量时段分配
current_reserved 只通过本模块的条件更新修改：
  预约：current_reserved < max_people 时 +1
  取消：current_reserved > 0 时 -1，与预约状态写入在同一事务
"""
from typing import Callable, List, Optional
from datetime import date, datetime, timedelta
import logging
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from allocation.config import settings
from allocation.database import run_in_transaction
from allocation.domain.lifecycle import POOL_RESERVATION_LIFECYCLE
from allocation.errors import AlreadyCancelled, ConflictError, NotFound, SlotFull
from allocation.models.ontology import (
    Guest, Pool, PoolSlot, PoolReservation, PoolReservationStatus, PoolStatus
)
from allocation.models.events import (
    EventType, PoolCleaningRequestedData, PoolSlotReservedData, PoolReservationCancelledData
)
from allocation.models.schemas import PoolUpdate
from allocation.services.event_bus import event_bus, Event

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%H:%M"


def hourly_slots(opening_time: str, closing_time: str) -> List[tuple]:
    """营业时间内按整小时切分的 (start, end) 列表，不足一小时的尾段丢弃"""
    current = datetime.strptime(opening_time, _TIME_FORMAT)
    end = datetime.strptime(closing_time, _TIME_FORMAT)
    slots = []
    while current < end:
        following = current + timedelta(hours=1)
        if following > end:
            break
        slots.append((current.strftime(_TIME_FORMAT), following.strftime(_TIME_FORMAT)))
        current = following
    return slots


class PoolService:
    """泳池服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    # ============== 泳池配置 ==============

    def get_pool(self) -> Pool:
        """获取泳池配置，不存在时按默认配置创建"""
        pool = self.db.query(Pool).order_by(Pool.id).first()
        if pool:
            return pool

        pool = Pool(
            max_capacity=settings.POOL_DEFAULT_MAX_CAPACITY,
            opening_time=settings.POOL_DEFAULT_OPENING_TIME,
            closing_time=settings.POOL_DEFAULT_CLOSING_TIME,
        )
        self.db.add(pool)
        self.db.commit()
        self.db.refresh(pool)
        logger.info("Created default pool configuration")
        return pool

    def update_pool_status(self, data: PoolUpdate) -> Pool:
        """更新泳池状态/配置（只更新提交的字段）"""
        pool = self.get_pool()
        previous_status = PoolStatus(pool.status)
        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(pool, key, value)
        self.db.commit()
        self.db.refresh(pool)
        logger.info(f"Pool updated: {sorted(update_data)}")

        # 进入清洁状态时通知清洁协作方
        if pool.status == PoolStatus.CLEANING and previous_status != PoolStatus.CLEANING:
            self._publish_event(Event.create(
                EventType.POOL_CLEANING_REQUESTED,
                PoolCleaningRequestedData(
                    pool_id=pool.id,
                    pool_name=pool.name,
                    previous_status=previous_status.value,
                ).to_dict(),
                source="pool_service"
            ))
        return pool

    # ============== 时段 ==============

    def _query_slots(self, slot_date: date) -> List[PoolSlot]:
        return self.db.query(PoolSlot).filter(
            PoolSlot.date == slot_date
        ).order_by(PoolSlot.start_time).all()

    def list_slots(self, slot_date: date) -> List[PoolSlot]:
        """
        获取某日全部时段，首次请求时按营业时间生成

        并发生成依赖 (date, start_time) 唯一约束：插入失败的一方回滚后重新读取。
        """
        slots = self._query_slots(slot_date)
        if slots:
            return slots

        pool = self.get_pool()
        max_people = pool.max_capacity // settings.POOL_SLOT_CAPACITY_DIVISOR
        self.db.add_all([
            PoolSlot(
                date=slot_date,
                start_time=start,
                end_time=end,
                max_people=max_people,
                current_reserved=0,
            )
            for start, end in hourly_slots(pool.opening_time, pool.closing_time)
        ])
        try:
            self.db.commit()
            logger.info(f"Generated pool slots for {slot_date} ({max_people} people each)")
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Pool slots for {slot_date} generated concurrently, reloading")
        return self._query_slots(slot_date)

    def get_slot(self, slot_id: int) -> Optional[PoolSlot]:
        """获取单个时段"""
        return self.db.query(PoolSlot).filter(PoolSlot.id == slot_id).first()

    def get_pool_reservation(self, reservation_id: int) -> Optional[PoolReservation]:
        """获取单个泳池预约"""
        return self.db.query(PoolReservation).filter(
            PoolReservation.id == reservation_id
        ).first()

    # ============== 预约 / 取消 ==============

    def reserve_slot(self, slot_id: int, guest_id: int,
                     room_id: Optional[int] = None) -> PoolReservation:
        """
        预约时段

        单条条件更新完成"检查容量 + 计数 +1"，更新行数为 0 即时段已满；
        失败时不创建任何预约。
        """
        if not self.db.query(Guest.id).filter(Guest.id == guest_id).first():
            raise NotFound("客人不存在", guest_id=guest_id)

        def work() -> PoolReservation:
            result = self.db.execute(
                update(PoolSlot)
                .where(
                    PoolSlot.id == slot_id,
                    PoolSlot.current_reserved < PoolSlot.max_people,
                )
                .values(current_reserved=PoolSlot.current_reserved + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if not self.get_slot(slot_id):
                    raise NotFound("时段不存在", slot_id=slot_id)
                logger.info(f"Pool slot {slot_id} is full")
                raise SlotFull("该时段已约满", slot_id=slot_id)

            reservation = PoolReservation(
                slot_id=slot_id,
                guest_id=guest_id,
                room_id=room_id,
                status=PoolReservationStatus.CONFIRMED,
            )
            self.db.add(reservation)
            self.db.flush()
            return reservation

        reservation = run_in_transaction(self.db, work, operation="reserve_slot")
        self.db.refresh(reservation)
        logger.info(f"Pool slot {slot_id} reserved by guest {guest_id}")

        self._publish_event(Event.create(
            EventType.POOL_SLOT_RESERVED,
            PoolSlotReservedData(
                pool_reservation_id=reservation.id,
                slot_id=slot_id,
                guest_id=guest_id,
            ).to_dict(),
            source="pool_service"
        ))
        return reservation

    def _transition(self, reservation_id: int, target: PoolReservationStatus) -> PoolReservation:
        """预约状态条件更新（仅当仍为 confirmed）"""
        reservation = self.get_pool_reservation(reservation_id)
        if not reservation:
            raise NotFound("泳池预约不存在", pool_reservation_id=reservation_id)

        current = PoolReservationStatus(reservation.status)
        if current == PoolReservationStatus.CANCELLED and target == PoolReservationStatus.CANCELLED:
            raise AlreadyCancelled("泳池预约已取消", pool_reservation_id=reservation_id)
        POOL_RESERVATION_LIFECYCLE.ensure(current, target)

        result = self.db.execute(
            update(PoolReservation)
            .where(
                PoolReservation.id == reservation_id,
                PoolReservation.status == PoolReservationStatus.CONFIRMED,
            )
            .values(status=target, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # 并发请求已修改状态，按最新状态重新校验
            self.db.refresh(reservation)
            current = PoolReservationStatus(reservation.status)
            if current == PoolReservationStatus.CANCELLED and target == PoolReservationStatus.CANCELLED:
                raise AlreadyCancelled("泳池预约已取消", pool_reservation_id=reservation_id)
            POOL_RESERVATION_LIFECYCLE.ensure(current, target)
        return reservation

    def cancel_slot_reservation(self, reservation_id: int) -> PoolReservation:
        """取消预约：状态 -> cancelled 与计数 -1 在同一事务，要么都生效要么都不生效"""

        def work() -> PoolReservation:
            reservation = self._transition(reservation_id, PoolReservationStatus.CANCELLED)
            result = self.db.execute(
                update(PoolSlot)
                .where(
                    PoolSlot.id == reservation.slot_id,
                    PoolSlot.current_reserved > 0,
                )
                .values(current_reserved=PoolSlot.current_reserved - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                logger.error(
                    f"Pool slot {reservation.slot_id} counter already 0 while cancelling "
                    f"reservation {reservation_id}"
                )
                raise ConflictError(
                    "时段计数与预约不一致，取消已回滚",
                    slot_id=reservation.slot_id
                )
            return reservation

        reservation = run_in_transaction(self.db, work, operation="cancel_slot_reservation")
        self.db.refresh(reservation)
        logger.info(f"Pool reservation {reservation_id} cancelled, slot {reservation.slot_id} released")

        self._publish_event(Event.create(
            EventType.POOL_RESERVATION_CANCELLED,
            PoolReservationCancelledData(
                pool_reservation_id=reservation.id,
                slot_id=reservation.slot_id,
                guest_id=reservation.guest_id,
            ).to_dict(),
            source="pool_service"
        ))
        return reservation

    def complete_slot_reservation(self, reservation_id: int) -> PoolReservation:
        """标记预约已使用：confirmed -> completed（计数不变）"""
        reservation = run_in_transaction(
            self.db,
            lambda: self._transition(reservation_id, PoolReservationStatus.COMPLETED),
            operation="complete_slot_reservation"
        )
        self.db.refresh(reservation)
        logger.info(f"Pool reservation {reservation_id} completed")
        return reservation
