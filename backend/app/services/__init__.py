# Business Services
from app.services.library_service import LibraryService
from app.services.seat_service import SeatService
from app.services.time_slot_service import TimeSlotService
from app.services.booking_service import BookingService
from app.services.attendance_service import AttendanceService
from app.services.statistics_service import StatisticsService

__all__ = [
    'LibraryService', 'SeatService', 'TimeSlotService',
    'BookingService', 'AttendanceService', 'StatisticsService'
]
