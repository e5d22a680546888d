"""
事件处理器 - 清洁与通知协作方
订阅分配引擎发出的领域事件，写入清洁任务与通知记录（投递不在本系统范围内）

处理器失败只记录日志，不影响已经提交的分配结果。
"""
from typing import Callable, List, Optional
import logging

from allocation.config import settings
from allocation.database import SessionLocal
from allocation.models.events import EventType
from allocation.models.ontology import (
    HousekeepingTask, Notification, NotificationType, TaskStatus
)
from allocation.services.event_bus import event_bus, Event

logger = logging.getLogger(__name__)

# 客人通知文案
_GUEST_MESSAGES = {
    EventType.RESERVATION_CREATED: "您的预订 {reservation_code} 已保留，请在 {expires_at} 前完成确认。",
    EventType.RESERVATION_CANCELLED: "您的预订 {reservation_code} 已取消。",
    EventType.BOOKING_CONFIRMED: "您的订单 {booking_code} 已确认。",
    EventType.BOOKING_STATUS_CHANGED: "您的订单 {booking_code} 状态已更新为 {new_status}。",
    EventType.PAYMENT_COMPLETED: "订单 {booking_code} 的付款已确认。",
}


class EventHandlers:
    """
    事件处理器集合

    支持依赖注入以便于测试：
    - db_session_factory: 数据库会话工厂
    - housekeeping_staff_ids: 接收泳池清洁通知的员工，默认取配置
    """

    def __init__(self, db_session_factory: Callable = None,
                 housekeeping_staff_ids: Optional[List[int]] = None):
        self._db_session_factory = db_session_factory or SessionLocal
        self._housekeeping_staff_ids = housekeeping_staff_ids
        self._registered_on = None

    def _get_db(self):
        """获取数据库会话"""
        return self._db_session_factory()

    def handle_cleaning_requested(self, event: Event) -> None:
        """
        处理清洁请求：为退房房间创建待分配的清洁任务

        每次退房每个房间恰好收到一条清洁请求。
        """
        db = self._get_db()
        try:
            room_id = event.data.get('room_id')
            booking_code = event.data.get('booking_code', '')
            if not room_id:
                logger.warning("Invalid cleaning request: missing room_id")
                return

            task = HousekeepingTask(
                room_id=room_id,
                booking_code=booking_code,
                status=TaskStatus.PENDING,
                notes=f"退房清洁 - 订单 {booking_code}",
            )
            db.add(task)
            db.commit()
            logger.info(f"Auto-created cleaning task {task.id} for room {room_id}")
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create cleaning task: {e}", exc_info=True)
        finally:
            db.close()

    def handle_task_assigned(self, event: Event) -> None:
        """处理任务分配：给员工写一条分配通知"""
        db = self._get_db()
        try:
            data = event.data
            staff_id = data.get('staff_id')
            if not staff_id:
                logger.warning("Invalid task assigned event: missing staff_id")
                return

            db.add(Notification(
                recipient_id=staff_id,
                recipient_type="staff",
                message=data.get('message', ''),
                type=NotificationType.ASSIGNMENT,
                link=data.get('link'),
            ))
            db.commit()
            logger.info(f"Assignment notification recorded for staff {staff_id}")
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record assignment notification: {e}", exc_info=True)
        finally:
            db.close()

    def handle_pool_cleaning_requested(self, event: Event) -> None:
        """处理泳池进入清洁状态：给每位清洁员工写一条通知"""
        staff_ids = self._housekeeping_staff_ids
        if staff_ids is None:
            staff_ids = settings.HOUSEKEEPING_STAFF_IDS
        if not staff_ids:
            logger.info("Pool cleaning requested but no housekeeping staff configured")
            return

        db = self._get_db()
        try:
            for staff_id in staff_ids:
                db.add(Notification(
                    recipient_id=staff_id,
                    recipient_type="staff",
                    message="泳池需要清洁，请查看泳池管理页面。",
                    type=NotificationType.STATUS_UPDATE,
                    link="/pool",
                ))
            db.commit()
            logger.info(f"Pool cleaning notifications recorded for staff {list(staff_ids)}")
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record pool cleaning notifications: {e}", exc_info=True)
        finally:
            db.close()

    def handle_guest_event(self, event: Event) -> None:
        """处理客人相关事件：写一条状态通知"""
        db = self._get_db()
        try:
            data = event.data
            guest_id = data.get('guest_id')
            template = _GUEST_MESSAGES.get(EventType(event.event_type))
            if not guest_id or not template:
                return

            db.add(Notification(
                recipient_id=guest_id,
                recipient_type="guest",
                message=template.format(**data),
                type=NotificationType.STATUS_UPDATE,
                link="/my-reservations",
            ))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record guest notification: {e}", exc_info=True)
        finally:
            db.close()

    def _subscriptions(self):
        subscriptions = [
            (EventType.CLEANING_REQUESTED, self.handle_cleaning_requested),
            (EventType.TASK_ASSIGNED, self.handle_task_assigned),
            (EventType.POOL_CLEANING_REQUESTED, self.handle_pool_cleaning_requested),
        ]
        subscriptions.extend((event_type, self.handle_guest_event) for event_type in _GUEST_MESSAGES)
        return subscriptions

    def register_handlers(self, event_bus_instance=None) -> None:
        """注册所有事件处理器"""
        if self._registered_on is not None:
            return

        bus = event_bus_instance or event_bus
        for event_type, handler in self._subscriptions():
            bus.subscribe(event_type, handler)

        self._registered_on = bus
        logger.info("Event handlers registered successfully")

    def unregister_handlers(self) -> None:
        """取消注册所有事件处理器（用于测试）"""
        if self._registered_on is None:
            return

        for event_type, handler in self._subscriptions():
            self._registered_on.unsubscribe(event_type, handler)

        self._registered_on = None
        logger.info("Event handlers unregistered")


# 全局事件处理器实例
event_handlers = EventHandlers()


def register_event_handlers() -> None:
    """应用启动时注册默认处理器"""
    event_handlers.register_handlers()
