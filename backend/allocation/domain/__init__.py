# Domain lifecycle rules
from allocation.domain.lifecycle import (
    TransitionTable, RESERVATION_LIFECYCLE, BOOKING_LIFECYCLE,
    POOL_RESERVATION_LIFECYCLE, effective_status, is_hold_active,
)

__all__ = [
    'TransitionTable', 'RESERVATION_LIFECYCLE', 'BOOKING_LIFECYCLE',
    'POOL_RESERVATION_LIFECYCLE', 'effective_status', 'is_hold_active',
]
