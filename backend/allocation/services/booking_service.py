"""
订单服务 - 将预订保留（或直接请求）转为订单
价格复核、可用性复核、订单+支付+保留确认+房态在同一事务中完成
"""
from typing import Callable, List, Optional, Tuple
from datetime import date, datetime
import logging
import math
import uuid
from sqlalchemy import update
from sqlalchemy.orm import Session
from allocation.database import run_in_transaction
from allocation.domain.lifecycle import (
    BOOKING_LIFECYCLE, RESERVATION_LIFECYCLE, effective_status
)
from allocation.errors import (
    HoldExpired, InvalidRequest, InvalidTransition, NotFound, PriceMismatch,
    RoomNoLongerAvailable
)
from allocation.models.ontology import (
    Booking, BookedRoom, BookingStatus, Payment, PaymentMethod, PaymentStatus,
    Reservation, ReservationStatus, RoomStatus
)
from allocation.models.events import (
    EventType, BookingConfirmedData, BookingStatusChangedData, CleaningRequestedData,
    PaymentCompletedData
)
from allocation.models.schemas import BookingCreate
from allocation.services.availability_service import AvailabilityService
from allocation.services.event_bus import event_bus, Event
from allocation.services.price_service import prices_match, totals_from_subtotals
from allocation.services.reservation_service import validate_stay_dates
from allocation.services.room_service import RoomService

logger = logging.getLogger(__name__)

# 仍占用房间的订单状态（取消订单时判断房间能否释放）
_ROOM_HOLDING_STATUSES = (
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.CONFIRMED,
    BookingStatus.CONFIRMED_UNPAID,
)


def initial_statuses(method: PaymentMethod) -> Tuple[BookingStatus, PaymentStatus]:
    """
    初始状态：现金到店支付 -> confirmed_unpaid / pending，
    其他支付方式视为已结算 -> confirmed / completed
    """
    if PaymentMethod(method) == PaymentMethod.CASH:
        return BookingStatus.CONFIRMED_UNPAID, PaymentStatus.PENDING
    return BookingStatus.CONFIRMED, PaymentStatus.COMPLETED


class BookingService:
    """订单服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock
        self.room_service = RoomService(db)
        self.availability = AvailabilityService(db, clock)

    @staticmethod
    def _generate_booking_code() -> str:
        """生成订单号：BK-XXXXXXX"""
        return f"BK-{uuid.uuid4().hex[:7].upper()}"

    @staticmethod
    def _generate_transaction_id() -> str:
        """生成刷卡流水号：TXN-XXXXXXXXXX"""
        return f"TXN-{uuid.uuid4().hex[:10].upper()}"

    # ============== 查询 ==============

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        """获取单个订单"""
        return self.db.query(Booking).filter(Booking.id == booking_id).first()

    def list_bookings(self, status: Optional[BookingStatus] = None,
                      page: int = 1, limit: int = 20) -> dict:
        """分页获取订单列表（最新在前）"""
        page = max(page, 1)
        limit = max(limit, 1)
        query = self.db.query(Booking)
        if status:
            query = query.filter(Booking.status == status)

        total = query.count()
        items = query.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(
            (page - 1) * limit
        ).limit(limit).all()

        return {
            'items': items,
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': math.ceil(total / limit) if total else 0,
            }
        }

    def get_invoice(self, booking_id: int) -> dict:
        """获取账单数据（订单 + 房间明细 + 支付）"""
        booking = self.get_booking(booking_id)
        if not booking:
            raise NotFound("订单不存在", booking_id=booking_id)
        guest = booking.guest
        return {
            'booking': booking,
            'guest_name': guest.name if guest else None,
            'guest_email': guest.email if guest else None,
            'payment': booking.payment,
            'issued_at': self._now(),
        }

    # ============== 确认订单 ==============

    def _load_hold(self, reservation_id: int, now: datetime) -> Reservation:
        """读取待确认的保留并按投影状态校验"""
        hold = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not hold:
            raise NotFound("预订不存在", reservation_id=reservation_id)

        current = effective_status(hold, now)
        if current == ReservationStatus.EXPIRED:
            raise HoldExpired(
                f"预订 {hold.reservation_code} 已过期，请重新预订",
                reservation_id=reservation_id
            )
        RESERVATION_LIFECYCLE.ensure(current, ReservationStatus.CONFIRMED)
        return hold

    @staticmethod
    def _ensure_matches_hold(hold: Reservation, room_ids: List[int], data: BookingCreate) -> None:
        """订单必须包含保留的房间且日期与保留一致"""
        held_room_id = hold.reserved_room.room_id if hold.reserved_room else None
        if held_room_id not in room_ids:
            raise InvalidRequest(
                f"订单房间不包含预订 {hold.reservation_code} 保留的房间",
                reservation_id=hold.id, held_room_id=held_room_id, room_ids=room_ids
            )
        if (data.check_in_date, data.check_out_date) != (hold.check_in_date, hold.check_out_date):
            raise InvalidRequest(
                f"订单日期与预订 {hold.reservation_code} 不一致",
                reservation_id=hold.id,
                check_in=data.check_in_date.isoformat(),
                check_out=data.check_out_date.isoformat()
            )

    def _confirm_hold(self, hold: Reservation, now: datetime) -> None:
        """保留 pending -> confirmed，仅当仍为 pending 且未过期"""
        result = self.db.execute(
            update(Reservation)
            .where(
                Reservation.id == hold.id,
                Reservation.status == ReservationStatus.PENDING,
                Reservation.expires_at >= now,
            )
            .values(status=ReservationStatus.CONFIRMED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        self.db.refresh(hold)
        current = effective_status(hold, now)
        if current == ReservationStatus.EXPIRED:
            raise HoldExpired(
                f"预订 {hold.reservation_code} 已过期，请重新预订",
                reservation_id=hold.id
            )
        raise InvalidTransition(
            "Reservation", current.value, ReservationStatus.CONFIRMED.value
        )

    def finalize_booking(self, data: BookingCreate) -> Booking:
        """
        确认订单

        1. 按房间小计重新计算总价，与客户端提交的总价比对（PriceMismatch）
        2. 逐个房间复核可用性，排除来源保留本身（RoomNoLongerAvailable）
        3. 按支付方式确定订单/支付初始状态
        4. 单一事务：创建订单、创建支付、确认来源保留、设置房态

        2-4 发生瞬时存储错误时整体重新执行；以本次重新计算的总价为准。
        """
        validate_stay_dates(data.check_in_date, data.check_out_date)
        if not data.booked_rooms:
            raise InvalidRequest("订单至少包含一个房间")
        room_ids = [room.room_id for room in data.booked_rooms]
        if len(set(room_ids)) != len(room_ids):
            raise InvalidRequest("订单中存在重复房间", room_ids=room_ids)
        if data.reservation_id is None and data.guest_id is None:
            raise InvalidRequest("缺少客人信息")

        expected = totals_from_subtotals(room.subtotal for room in data.booked_rooms)
        if not prices_match(expected.total, data.total_amount):
            logger.warning(
                f"Price mismatch on finalize: expected {expected.total}, "
                f"declared {data.total_amount}"
            )
            raise PriceMismatch(
                f"订单金额已变化，应为 {expected.total}",
                expected_total=str(expected.total),
                declared_total=str(data.total_amount)
            )

        booking_status, payment_status = initial_statuses(data.payment_method)

        def work() -> Booking:
            now = self._now()
            hold = None
            guest_id = data.guest_id
            if data.reservation_id is not None:
                hold = self._load_hold(data.reservation_id, now)
                guest_id = hold.guest_id
                self._ensure_matches_hold(hold, room_ids, data)

            # 按房间 ID 升序占用，避免多房间订单之间互相等待
            for room_id in sorted(room_ids):
                if not self.room_service.claim_room(room_id):
                    raise NotFound("房间不存在", room_id=room_id)
                if not self.availability.is_room_available(
                    room_id, data.check_in_date, data.check_out_date,
                    exclude_reservation_id=hold.id if hold else None
                ):
                    logger.warning(f"Room {room_id} no longer available for finalize")
                    raise RoomNoLongerAvailable(
                        f"房间 {room_id} 在所选日期已不可用",
                        room_id=room_id
                    )

            booking = Booking(
                booking_code=self._generate_booking_code(),
                reservation_id=hold.id if hold else None,
                guest_id=guest_id,
                check_in_date=data.check_in_date,
                check_out_date=data.check_out_date,
                adult_count=data.adult_count,
                child_count=data.child_count,
                subtotal_amount=expected.subtotal,
                tax_amount=expected.tax,
                total_amount=expected.total,
                status=booking_status,
            )
            booking.booked_rooms = [
                BookedRoom(
                    room_id=room.room_id,
                    price_per_night=room.price_per_night,
                    nights=room.nights,
                    subtotal=room.subtotal,
                )
                for room in data.booked_rooms
            ]
            self.db.add(booking)
            self.db.flush()

            payment = Payment(
                booking_id=booking.id,
                guest_id=guest_id,
                amount=expected.total,
                method=data.payment_method,
                status=payment_status,
                transaction_id=(
                    self._generate_transaction_id()
                    if payment_status == PaymentStatus.COMPLETED else None
                ),
            )
            self.db.add(payment)

            if hold:
                self._confirm_hold(hold, now)

            # 只标记空闲房间，不覆盖入住中/待清洁等物理状态
            self.room_service.set_room_status(
                room_ids, RoomStatus.RESERVED, only_from=[RoomStatus.AVAILABLE]
            )
            self.db.flush()
            return booking

        booking = run_in_transaction(self.db, work, operation="finalize_booking")
        self.db.refresh(booking)
        logger.info(
            f"Booking {booking.booking_code} finalized: rooms {booking.room_ids}, "
            f"total {booking.total_amount}, status {booking.status.value}"
        )

        self._publish_event(Event.create(
            EventType.BOOKING_CONFIRMED,
            BookingConfirmedData(
                booking_id=booking.id,
                booking_code=booking.booking_code,
                guest_id=booking.guest_id,
                reservation_id=booking.reservation_id,
                room_ids=booking.room_ids,
                status=booking.status.value,
                total_amount=float(booking.total_amount),
                payment_status=booking.payment.status.value,
            ).to_dict(),
            source="booking_service"
        ))
        if booking.payment.status == PaymentStatus.COMPLETED:
            self._publish_payment_completed(booking)
        return booking

    # ============== 状态推进 ==============

    def _releasable_rooms(self, booking: Booking, today: date) -> List[int]:
        """取消后可以释放的房间：没有其他未结束订单占用"""
        releasable = []
        for room_id in booking.room_ids:
            other = self.db.query(Booking.id).join(
                BookedRoom, BookedRoom.booking_id == Booking.id
            ).filter(
                BookedRoom.room_id == room_id,
                Booking.id != booking.id,
                Booking.status.in_(_ROOM_HOLDING_STATUSES),
                Booking.check_out_date > today,
            ).first()
            if other is None:
                releasable.append(room_id)
        return releasable

    def _release_source_hold(self, reservation_id: int, now: datetime) -> None:
        """订单取消时来源保留 confirmed -> cancelled，不再占用房间日期"""
        result = self.db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.CONFIRMED,
            )
            .values(status=ReservationStatus.CANCELLED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Source hold {reservation_id} released with its booking")

    def advance_booking_status(self, booking_id: int, new_status: BookingStatus) -> Booking:
        """
        推进订单状态

        状态写入是基于旧状态的条件更新，重复提交相同状态为空操作；
        只有真正发生转换的调用才会修改房态并发出事件。

        - checked_in: 房间 -> occupied
        - checked_out: 房间 -> dirty，每个房间发出一次清洁请求
        - cancelled: 仍为 reserved 的房间释放为 available，来源保留一并取消
        """
        new_status = BookingStatus(new_status)

        def work() -> Tuple[Booking, Optional[BookingStatus]]:
            booking = self.get_booking(booking_id)
            if not booking:
                raise NotFound("订单不存在", booking_id=booking_id)

            old_status = BookingStatus(booking.status)
            if old_status == new_status:
                return booking, None
            BOOKING_LIFECYCLE.ensure(old_status, new_status)

            now = self._now()
            result = self.db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == old_status)
                .values(status=new_status, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # 并发请求已修改状态
                self.db.refresh(booking)
                current = BookingStatus(booking.status)
                if current == new_status:
                    return booking, None
                BOOKING_LIFECYCLE.ensure(current, new_status)
                raise InvalidTransition("Booking", current.value, new_status.value)

            room_ids = booking.room_ids
            if new_status == BookingStatus.CHECKED_IN:
                self.room_service.set_room_status(room_ids, RoomStatus.OCCUPIED)
            elif new_status == BookingStatus.CHECKED_OUT:
                self.room_service.set_room_status(room_ids, RoomStatus.DIRTY)
            elif new_status == BookingStatus.CANCELLED:
                if booking.reservation_id is not None:
                    self._release_source_hold(booking.reservation_id, now)
                self.room_service.set_room_status(
                    self._releasable_rooms(booking, now.date()), RoomStatus.AVAILABLE,
                    only_from=[RoomStatus.RESERVED]
                )
            return booking, old_status

        booking, old_status = run_in_transaction(
            self.db, work, operation="advance_booking_status"
        )
        self.db.refresh(booking)
        if old_status is None:
            logger.debug(f"Booking {booking.booking_code} already {new_status.value}, no-op")
            return booking

        logger.info(
            f"Booking {booking.booking_code}: {old_status.value} -> {new_status.value}"
        )
        self._publish_event(Event.create(
            EventType.BOOKING_STATUS_CHANGED,
            BookingStatusChangedData(
                booking_id=booking.id,
                booking_code=booking.booking_code,
                guest_id=booking.guest_id,
                old_status=old_status.value,
                new_status=new_status.value,
            ).to_dict(),
            source="booking_service"
        ))

        if new_status == BookingStatus.CHECKED_OUT:
            for room_id in booking.room_ids:
                self._publish_event(Event.create(
                    EventType.CLEANING_REQUESTED,
                    CleaningRequestedData(
                        room_id=room_id,
                        booking_code=booking.booking_code,
                    ).to_dict(),
                    source="booking_service"
                ))
        return booking

    # ============== 现金支付确认 ==============

    def confirm_payment(self, booking_id: int) -> Booking:
        """现金到账：订单 confirmed_unpaid -> confirmed，支付 pending -> completed"""

        def work() -> Booking:
            booking = self.get_booking(booking_id)
            if not booking:
                raise NotFound("订单不存在", booking_id=booking_id)
            if booking.status != BookingStatus.CONFIRMED_UNPAID:
                raise InvalidTransition(
                    "Booking", BookingStatus(booking.status).value,
                    BookingStatus.CONFIRMED.value,
                    message="订单不是待付款状态"
                )

            now = self._now()
            result = self.db.execute(
                update(Booking)
                .where(Booking.id == booking_id,
                       Booking.status == BookingStatus.CONFIRMED_UNPAID)
                .values(status=BookingStatus.CONFIRMED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InvalidTransition(
                    "Booking", BookingStatus.CONFIRMED_UNPAID.value,
                    BookingStatus.CONFIRMED.value,
                    message="订单状态已被修改"
                )

            if booking.payment:
                booking.payment.status = PaymentStatus.COMPLETED
                booking.payment.transaction_id = f"CASH-{int(now.timestamp() * 1000)}"
            self.db.flush()
            return booking

        booking = run_in_transaction(self.db, work, operation="confirm_payment")
        self.db.refresh(booking)
        logger.info(f"Cash payment confirmed for booking {booking.booking_code}")
        self._publish_payment_completed(booking)
        return booking

    def _publish_payment_completed(self, booking: Booking) -> None:
        payment = booking.payment
        self._publish_event(Event.create(
            EventType.PAYMENT_COMPLETED,
            PaymentCompletedData(
                booking_id=booking.id,
                booking_code=booking.booking_code,
                guest_id=booking.guest_id,
                payment_id=payment.id,
                amount=float(payment.amount),
                transaction_id=payment.transaction_id or "",
            ).to_dict(),
            source="booking_service"
        ))
