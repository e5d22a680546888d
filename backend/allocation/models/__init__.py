# Ontology Models
from allocation.models.ontology import (
    RoomType, Room, Guest, Reservation, ReservedRoom, Booking, BookedRoom,
    Payment, Pool, PoolSlot, PoolReservation, HousekeepingTask, Notification
)

__all__ = [
    'RoomType', 'Room', 'Guest', 'Reservation', 'ReservedRoom', 'Booking', 'BookedRoom',
    'Payment', 'Pool', 'PoolSlot', 'PoolReservation', 'HousekeepingTask', 'Notification'
]
