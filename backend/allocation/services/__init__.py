# Allocation Services
from allocation.services.room_service import RoomService
from allocation.services.availability_service import AvailabilityService
from allocation.services.reservation_service import ReservationService
from allocation.services.booking_service import BookingService
from allocation.services.pool_service import PoolService
from allocation.services.task_service import TaskService

__all__ = [
    'RoomService', 'AvailabilityService', 'ReservationService',
    'BookingService', 'PoolService', 'TaskService'
]
