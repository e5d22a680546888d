"""
本体对象定义 (Ontology Objects)
分配引擎涉及的业务实体：房型、房间、预订保留、订单、支付、泳池时段
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from allocation.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    AVAILABLE = "available"      # 空闲
    RESERVED = "reserved"        # 已预留
    OCCUPIED = "occupied"        # 入住中
    DIRTY = "dirty"              # 待清洁
    CLEANING = "cleaning"        # 清洁中
    MAINTENANCE = "maintenance"  # 维修中


class ReservationStatus(str, Enum):
    """预订保留状态枚举"""
    PENDING = "pending"          # 待确认（保留中）
    CONFIRMED = "confirmed"      # 已转为订单
    EXPIRED = "expired"          # 已过期
    CANCELLED = "cancelled"      # 已取消


class BookingStatus(str, Enum):
    """订单状态枚举"""
    PENDING_PAYMENT = "pending_payment"    # 待支付
    CONFIRMED = "confirmed"                # 已确认（已支付）
    CONFIRMED_UNPAID = "confirmed_unpaid"  # 已确认（到店现金支付）
    CHECKED_IN = "checked_in"              # 已入住
    CHECKED_OUT = "checked_out"            # 已退房
    CANCELLED = "cancelled"                # 已取消


class PaymentStatus(str, Enum):
    """支付状态"""
    PENDING = "pending"          # 待支付
    COMPLETED = "completed"      # 已完成


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "cash"                # 现金
    CARD = "card"                # 刷卡


class PoolStatus(str, Enum):
    """泳池状态"""
    OPEN = "open"
    CLOSED = "closed"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"


class PoolReservationStatus(str, Enum):
    """泳池预约状态"""
    CONFIRMED = "confirmed"      # 已确认
    CANCELLED = "cancelled"      # 已取消
    COMPLETED = "completed"      # 已使用


class TaskStatus(str, Enum):
    """清洁任务状态"""
    PENDING = "pending"          # 待分配
    ASSIGNED = "assigned"        # 已分配
    COMPLETED = "completed"      # 已完成


class NotificationType(str, Enum):
    """通知类型"""
    ASSIGNMENT = "assignment"
    STATUS_UPDATE = "status_update"
    SYSTEM = "system"


# ============== 本体对象定义 ==============

class RoomType(Base):
    """
    房型对象（目录服务，只读）
    价格 = base_price 按 discount_percent 折扣
    """
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)        # 房型名称
    description = Column(Text)
    base_price = Column(Numeric(10, 2), nullable=False)           # 基础价格
    discount_percent = Column(Numeric(5, 2), default=0)           # 折扣百分比 [0, 100)
    max_occupancy = Column(Integer, default=2)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    rooms = relationship("Room", back_populates="room_type")


class Room(Base):
    """
    房间对象 - 物理房间，只做状态转换，不删除
    lock_version 由分配事务递增，用于按房间串行化"检查-写入"
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(10), unique=True, nullable=False)  # 房间号
    floor = Column(Integer, nullable=False, default=1)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False, index=True)
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.AVAILABLE, nullable=False)
    lock_version = Column(Integer, default=0, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    room_type = relationship("RoomType", back_populates="rooms")


class Guest(Base):
    """客人对象"""
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20))
    email = Column(String(100))
    created_at = Column(DateTime, default=datetime.now)


class Reservation(Base):
    """
    预订保留对象 - 对单个房间的限时占用
    status 字段只记录写入过的状态，读取时必须经过 effective_status 投影
    """
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_reservation_date_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reservation_code = Column(String(20), unique=True, nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    adult_count = Column(Integer, nullable=False, default=1)
    child_count = Column(Integer, nullable=False, default=0)
    rooms_count = Column(Integer, nullable=False, default=1)
    subtotal_amount = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(ReservationStatus), default=ReservationStatus.PENDING, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    guest = relationship("Guest")
    reserved_room = relationship(
        "ReservedRoom", back_populates="reservation", uselist=False, cascade="all, delete-orphan"
    )


class ReservedRoom(Base):
    """预订保留的房间明细（每个保留恰好一间）"""
    __tablename__ = "reserved_rooms"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, unique=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    price_per_night = Column(Numeric(10, 2), nullable=False)
    nights = Column(Integer, nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    reservation = relationship("Reservation", back_populates="reserved_room")
    room = relationship("Room")


class Booking(Base):
    """
    订单对象 - 可计费的持久化结果，与 Payment 在同一事务中创建
    """
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_booking_date_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_code = Column(String(20), unique=True, nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    adult_count = Column(Integer, nullable=False, default=1)
    child_count = Column(Integer, nullable=False, default=0)
    subtotal_amount = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.PENDING_PAYMENT, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    guest = relationship("Guest")
    reservation = relationship("Reservation")
    booked_rooms = relationship(
        "BookedRoom", back_populates="booking", cascade="all, delete-orphan",
        order_by="BookedRoom.room_id"
    )
    payment = relationship("Payment", back_populates="booking", uselist=False)

    @property
    def payment_id(self):
        """关联的支付记录 ID"""
        return self.payment.id if self.payment else None

    @property
    def room_ids(self):
        return [br.room_id for br in self.booked_rooms]


class BookedRoom(Base):
    """订单房间明细"""
    __tablename__ = "booked_rooms"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    price_per_night = Column(Numeric(10, 2), nullable=False)
    nights = Column(Integer, nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    booking = relationship("Booking", back_populates="booked_rooms")
    room = relationship("Room")


class Payment(Base):
    """
    支付记录对象
    与 Booking 一对一
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="USD")
    method = Column(SQLEnum(PaymentMethod), nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    transaction_id = Column(String(40), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    booking = relationship("Booking", back_populates="payment")


class Pool(Base):
    """泳池配置对象（单行）"""
    __tablename__ = "pools"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, default="Main Pool")
    status = Column(SQLEnum(PoolStatus), default=PoolStatus.OPEN, nullable=False)
    current_occupancy = Column(Integer, default=0)
    max_capacity = Column(Integer, default=50)
    temperature = Column(Numeric(4, 1), default=Decimal("28"))
    opening_time = Column(String(5), default="08:00")
    closing_time = Column(String(5), default="22:00")
    notes = Column(Text)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class PoolSlot(Base):
    """
    泳池时段 - 固定容量资源，(date, start_time) 唯一
    current_reserved 只能由 PoolService 的条件更新修改
    """
    __tablename__ = "pool_slots"
    __table_args__ = (
        UniqueConstraint("date", "start_time", name="uq_pool_slot_date_start"),
        CheckConstraint(
            "current_reserved >= 0 AND current_reserved <= max_people",
            name="ck_pool_slot_capacity"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)   # 如 "10:00"
    end_time = Column(String(5), nullable=False)
    max_people = Column(Integer, nullable=False)
    current_reserved = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)

    reservations = relationship("PoolReservation", back_populates="slot")

    @property
    def remaining(self) -> int:
        """剩余名额"""
        return self.max_people - self.current_reserved


class PoolReservation(Base):
    """泳池时段预约"""
    __tablename__ = "pool_reservations"

    id = Column(Integer, primary_key=True, index=True)
    slot_id = Column(Integer, ForeignKey("pool_slots.id"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)   # 可选：关联客房
    status = Column(
        SQLEnum(PoolReservationStatus), default=PoolReservationStatus.CONFIRMED, nullable=False
    )
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    slot = relationship("PoolSlot", back_populates="reservations")


class HousekeepingTask(Base):
    """
    清洁任务对象
    由退房事件自动创建
    """
    __tablename__ = "housekeeping_tasks"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    booking_code = Column(String(20))
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.PENDING, nullable=False)
    assignee_id = Column(Integer, nullable=True)          # 员工 ID（员工目录不在本系统）
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    assigned_at = Column(DateTime)

    room = relationship("Room")


class Notification(Base):
    """通知记录（投递不在本系统范围内）"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, nullable=False, index=True)
    recipient_type = Column(String(10), nullable=False, default="guest")  # guest / staff
    message = Column(Text, nullable=False)
    type = Column(SQLEnum(NotificationType), default=NotificationType.SYSTEM, nullable=False)
    link = Column(String(200))
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
