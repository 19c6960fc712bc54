# Ontology Models
from app.models.ontology import (
    Library, Seat, TimeSlot, TimeSlotSeat, Booking, Attendance
)

__all__ = [
    'Library', 'Seat', 'TimeSlot', 'TimeSlotSeat', 'Booking', 'Attendance'
]
