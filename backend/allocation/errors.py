"""
分配引擎错误分类

- 校验错误：请求本身不合法，立即拒绝，不重试
- 冲突错误：资源已被占用或价格已变化，由调用方刷新后重新提交
- 瞬时错误：存储层写冲突/连接故障，内部有限次重试后仍失败时抛出，可重试

所有错误都继承 ValueError，与路由层 `except ValueError` 的既有约定兼容。
"""
from typing import Any, Dict, Optional


class AllocationError(ValueError):
    """分配引擎错误基类"""

    status_code = 400
    code = "allocation_error"
    retryable = False

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为响应体"""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            **({"context": self.context} if self.context else {}),
        }


# ============== 校验错误 ==============

class InvalidRequest(AllocationError):
    """缺少必填字段或字段非法"""
    code = "invalid_request"


class InvalidDateRange(InvalidRequest):
    """离店日期不晚于入住日期"""
    code = "invalid_date_range"


class NotFound(AllocationError):
    """目标对象不存在"""
    status_code = 404
    code = "not_found"


# ============== 状态错误 ==============

class InvalidTransition(AllocationError):
    """状态转换不在允许表中"""
    status_code = 409
    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} 不能从 {current} 转换为 {target}",
            entity=entity, current=current, target=target
        )


class AlreadyCancelled(AllocationError):
    status_code = 409
    code = "already_cancelled"


# ============== 冲突错误 ==============

class ConflictError(AllocationError):
    """资源冲突，调用方应刷新可用性/价格后重试"""
    status_code = 409
    code = "conflict"


class NoAvailability(ConflictError):
    code = "no_availability"


class RoomNoLongerAvailable(ConflictError):
    code = "room_no_longer_available"


class HoldExpired(RoomNoLongerAvailable):
    """预订保留已过期，不能再确认"""
    code = "hold_expired"


class PriceMismatch(ConflictError):
    code = "price_mismatch"


class SlotFull(ConflictError):
    code = "slot_full"


# ============== 瞬时错误 ==============

class TransientStorageError(AllocationError):
    """存储层瞬时故障，重试预算耗尽"""
    status_code = 503
    code = "transient_storage_error"
    retryable = True
