"""
预订保留服务 - 预订保留生命周期
创建对单个房间的限时保留，维护 pending -> confirmed / expired / cancelled 状态机

过期是派生事实：读取时通过 effective_status 投影呈现，不依赖后台写回。
"""
from typing import Callable, List, Optional
from datetime import date, datetime, timedelta
import logging
import uuid
from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session
from allocation.config import settings
from allocation.database import run_in_transaction
from allocation.domain.lifecycle import RESERVATION_LIFECYCLE, effective_status
from allocation.errors import (
    ConflictError, InvalidDateRange, InvalidRequest, NoAvailability, NotFound
)
from allocation.models.ontology import (
    Guest, Reservation, ReservedRoom, ReservationStatus
)
from allocation.models.events import (
    EventType, ReservationCreatedData, ReservationCancelledData
)
from allocation.services.availability_service import AvailabilityService
from allocation.services.event_bus import event_bus, Event
from allocation.services.price_service import count_nights, quote_stay
from allocation.services.room_service import RoomService

logger = logging.getLogger(__name__)


def validate_stay_dates(check_in: Optional[date], check_out: Optional[date]) -> None:
    """校验入住/离店日期"""
    if check_in is None or check_out is None:
        raise InvalidRequest("入住日期和离店日期为必填项")
    if check_out <= check_in:
        raise InvalidDateRange(
            "离店日期必须晚于入住日期",
            check_in=check_in.isoformat(), check_out=check_out.isoformat()
        )


class ReservationService:
    """预订保留服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db
        # 支持依赖注入事件发布器和时钟，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock
        self.room_service = RoomService(db)
        self.availability = AvailabilityService(db, clock)

    @staticmethod
    def _generate_reservation_code() -> str:
        """生成预订号：RES-XXXXXXX"""
        return f"RES-{uuid.uuid4().hex[:7].upper()}"

    # ============== 创建保留 ==============

    def create_hold(self, category_id: Optional[int], check_in: Optional[date],
                    check_out: Optional[date], adults: Optional[int], children: int = 0,
                    guest_id: Optional[int] = None) -> Reservation:
        """
        创建预订保留

        步骤：
        1. 校验日期与必填字段
        2. 读取房型价格与折扣
        3. 解析可用房间，无可用房间时抛出 NoAvailability
        4. 计算价格
        5. 写入 pending 保留，expires_at = now + TTL

        2-5 在同一事务中执行；写入前先占用候选房间行，
        同一房间上并发的保留请求因此串行，重叠日期只会有一个成功。
        """
        if category_id is None or adults is None or guest_id is None:
            raise InvalidRequest("房型、成人数和客人为必填项")
        validate_stay_dates(check_in, check_out)
        if adults < 1 or (children or 0) < 0:
            raise InvalidRequest("入住人数不合法", adults=adults, children=children)

        if not self.db.query(Guest.id).filter(Guest.id == guest_id).first():
            raise NotFound("客人不存在", guest_id=guest_id)

        def work() -> Reservation:
            category = self.room_service.get_category(category_id)
            candidates = self.availability.rooms_available(category_id, check_in, check_out)
            if not candidates:
                raise NoAvailability(
                    f"{category.name} 在所选日期没有可用房间",
                    category_id=category_id
                )

            nights = count_nights(check_in, check_out)
            quote = quote_stay(category.base_price, category.discount_percent, nights)
            now = self._now()

            for room_id in candidates:
                self.room_service.claim_room(room_id)
                # 持有房间行锁后重新确认，期间可能已被并发请求占用
                if not self.availability.is_room_available(room_id, check_in, check_out):
                    logger.warning(f"Room {room_id} taken concurrently, trying next candidate")
                    continue

                reservation = Reservation(
                    reservation_code=self._generate_reservation_code(),
                    guest_id=guest_id,
                    check_in_date=check_in,
                    check_out_date=check_out,
                    adult_count=adults,
                    child_count=children or 0,
                    rooms_count=1,
                    subtotal_amount=quote.subtotal,
                    tax_amount=quote.tax,
                    total_amount=quote.total,
                    status=ReservationStatus.PENDING,
                    expires_at=now + timedelta(minutes=settings.HOLD_TTL_MINUTES),
                )
                reservation.reserved_room = ReservedRoom(
                    room_id=room_id,
                    price_per_night=quote.price_per_night,
                    nights=nights,
                    subtotal=quote.subtotal,
                )
                self.db.add(reservation)
                self.db.flush()
                return reservation

            raise NoAvailability(
                f"{category.name} 在所选日期没有可用房间",
                category_id=category_id
            )

        reservation = run_in_transaction(self.db, work, operation="create_hold")
        self.db.refresh(reservation)
        room_id = reservation.reserved_room.room_id
        logger.info(
            f"Hold {reservation.reservation_code} created on room {room_id} "
            f"{check_in}..{check_out}, expires {reservation.expires_at}"
        )

        self._publish_event(Event.create(
            EventType.RESERVATION_CREATED,
            ReservationCreatedData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                guest_id=reservation.guest_id,
                room_id=room_id,
                check_in_date=check_in.isoformat(),
                check_out_date=check_out.isoformat(),
                total_amount=float(reservation.total_amount),
                expires_at=reservation.expires_at.isoformat(),
            ).to_dict(),
            source="reservation_service"
        ))
        return reservation

    # ============== 查询（带过期投影） ==============

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        """获取单个保留（ORM 对象，status 为存储值）"""
        return self.db.query(Reservation).filter(Reservation.id == reservation_id).first()

    def effective_status(self, reservation: Reservation) -> ReservationStatus:
        """保留的对外状态"""
        return effective_status(reservation, self._now())

    def get_reservations(self, status: Optional[ReservationStatus] = None,
                         guest_id: Optional[int] = None) -> List[Reservation]:
        """获取保留列表，状态筛选按投影后的状态"""
        query = self.db.query(Reservation)
        now = self._now()

        if status == ReservationStatus.PENDING:
            query = query.filter(
                Reservation.status == ReservationStatus.PENDING,
                Reservation.expires_at >= now
            )
        elif status == ReservationStatus.EXPIRED:
            query = query.filter(or_(
                Reservation.status == ReservationStatus.EXPIRED,
                and_(
                    Reservation.status == ReservationStatus.PENDING,
                    Reservation.expires_at < now
                ),
            ))
        elif status:
            query = query.filter(Reservation.status == status)
        if guest_id:
            query = query.filter(Reservation.guest_id == guest_id)

        return query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()

    def get_reservation_detail(self, reservation_id: int) -> Optional[dict]:
        """获取保留详情（状态已投影）"""
        reservation = self.get_reservation(reservation_id)
        if not reservation:
            return None
        return self.to_detail(reservation)

    def to_detail(self, reservation: Reservation) -> dict:
        """ORM 对象转详情字典"""
        reserved = reservation.reserved_room
        return {
            'id': reservation.id,
            'reservation_code': reservation.reservation_code,
            'guest_id': reservation.guest_id,
            'check_in_date': reservation.check_in_date,
            'check_out_date': reservation.check_out_date,
            'adult_count': reservation.adult_count,
            'child_count': reservation.child_count,
            'rooms_count': reservation.rooms_count,
            'reserved_room': {
                'room_id': reserved.room_id,
                'price_per_night': reserved.price_per_night,
                'nights': reserved.nights,
                'subtotal': reserved.subtotal,
            } if reserved else None,
            'subtotal_amount': reservation.subtotal_amount,
            'tax_amount': reservation.tax_amount,
            'total_amount': reservation.total_amount,
            'status': self.effective_status(reservation),
            'expires_at': reservation.expires_at,
            'created_at': reservation.created_at,
        }

    # ============== 状态变更 ==============

    def cancel_reservation(self, reservation_id: int) -> Reservation:
        """取消保留（管理员操作）：pending|confirmed -> cancelled"""

        def work() -> Reservation:
            reservation = self.get_reservation(reservation_id)
            if not reservation:
                raise NotFound("预订不存在", reservation_id=reservation_id)

            now = self._now()
            current = effective_status(reservation, now)
            RESERVATION_LIFECYCLE.ensure(current, ReservationStatus.CANCELLED)

            stmt = update(Reservation).where(
                Reservation.id == reservation_id,
                Reservation.status == current,
            )
            if current == ReservationStatus.PENDING:
                stmt = stmt.where(Reservation.expires_at >= now)
            result = self.db.execute(
                stmt.values(status=ReservationStatus.CANCELLED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # 状态已被并发修改，按最新状态重新校验
                self.db.refresh(reservation)
                RESERVATION_LIFECYCLE.ensure(
                    effective_status(reservation, self._now()), ReservationStatus.CANCELLED
                )
                raise ConflictError("预订状态已被并发修改，请重试",
                                    reservation_id=reservation_id)
            return reservation

        reservation = run_in_transaction(self.db, work, operation="cancel_reservation")
        self.db.refresh(reservation)
        logger.info(f"Reservation {reservation.reservation_code} cancelled")

        self._publish_event(Event.create(
            EventType.RESERVATION_CANCELLED,
            ReservationCancelledData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                guest_id=reservation.guest_id,
            ).to_dict(),
            source="reservation_service"
        ))
        return reservation

    def expire_stale_holds(self) -> int:
        """将超过 TTL 的 pending 保留写回为 expired，返回写回数量"""
        now = self._now()

        def work() -> int:
            result = self.db.execute(
                update(Reservation)
                .where(
                    Reservation.status == ReservationStatus.PENDING,
                    Reservation.expires_at < now,
                )
                .values(status=ReservationStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        count = run_in_transaction(self.db, work, operation="expire_stale_holds")
        if count:
            logger.info(f"Persisted expiry for {count} stale holds")
        return count
