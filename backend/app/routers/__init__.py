# API Routers
from app.routers import libraries, seats, time_slots, bookings, attendances, dashboard

__all__ = ['libraries', 'seats', 'time_slots', 'bookings', 'attendances', 'dashboard']
