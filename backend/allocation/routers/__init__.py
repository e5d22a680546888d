# API Routers
from allocation.routers import rooms, reservations, bookings, pool, tasks

__all__ = ['rooms', 'reservations', 'bookings', 'pool', 'tasks']
