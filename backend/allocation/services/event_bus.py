"""
事件总线 - 进程内同步发布/订阅
分配服务在事务提交后发布事件，清洁与通知协作方作为订阅者消费
"""
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], None]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__name__", repr(handler))


@dataclass
class Event:
    """事件"""
    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str  # 触发来源（服务名）
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(cls, event_type: str, data: Dict[str, Any], source: str) -> "Event":
        """以当前时间创建事件"""
        return cls(
            event_type=str(getattr(event_type, "value", event_type)),
            timestamp=datetime.now(),
            data=data,
            source=source,
        )


class EventBus:
    """
    内存级事件总线（线程安全）

    使用方式：
    1. 订阅事件：event_bus.subscribe("housekeeping.cleaning_requested", handler)
    2. 发布事件：event_bus.publish(Event.create(...))

    处理器同步执行，单个处理器异常只记录日志，不影响发布方和其他处理器。
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[Handler]] = {}
        self._history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """订阅事件（同一处理器重复订阅只保留一次）"""
        event_type = str(getattr(event_type, "value", event_type))
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {_handler_name(handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        """取消订阅"""
        event_type = str(getattr(event_type, "value", event_type))
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """发布事件"""
        with self._lock:
            self._history.append(event)
            handlers = list(self._subscribers.get(event.event_type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {_handler_name(handler)} failed for {event.event_type}: {e}",
                    exc_info=True
                )

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """获取最近的事件（最新的在前，用于调试）"""
        with self._lock:
            history = list(self._history)
        if event_type:
            event_type = str(getattr(event_type, "value", event_type))
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def get_subscribers(self) -> Dict[str, List[str]]:
        """事件类型到处理器名称的映射"""
        with self._lock:
            return {
                et: [_handler_name(h) for h in handlers]
                for et, handlers in self._subscribers.items()
            }

    def clear(self) -> None:
        """清空订阅和历史（用于测试）"""
        with self._lock:
            self._subscribers.clear()
            self._history.clear()


# 全局事件总线实例
event_bus = EventBus()
