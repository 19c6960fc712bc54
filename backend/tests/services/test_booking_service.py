"""
Tests for app/services/booking_service.py
Covers: create_daily_booking, create_monthly_booking, transition, cancel/reject,
        update_payment_status, get_bookings
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal

from app.models.ontology import (
    Booking, BookingStatus, BookingType, PaymentStatus, Seat, SeatMode, TimeSlot, TimeSlotSeat
)
from app.models.events import EventType
from app.services.booking_service import BookingService
from app.services.errors import (
    BookingNotFound, IllegalTransition, InvalidDateRange, InvalidPrice, LibraryInactive, SeatInactive,
    SeatNotAssigned, SeatNotFound, SeatUnavailable, TimeSlotInactive, WrongSeatMode
)


# ── helpers ──────────────────────────────────────────────────────────

def _make_slot(db, library, start, end, price, seats=()):
    slot = TimeSlot(library_id=library.id, start_time=start, end_time=end,
                    price=Decimal(str(price)), is_active=True)
    for position, seat in enumerate(seats):
        slot.seat_links.append(TimeSlotSeat(seat_id=seat.id, position=position))
    db.add(slot)
    db.commit()
    return slot


@pytest.fixture
def service(db_session, events):
    return BookingService(db_session, events.publish)


class TestDailyBookingScenario:
    """09:00-11:00 价格 50，座位 A1 已分配"""

    @pytest.fixture
    def slot(self, db_session, sample_library, daily_seat):
        return _make_slot(db_session, sample_library, "09:00", "11:00", 50, [daily_seat])

    def test_create_cancel_rebook(self, service, sample_library, daily_seat, slot):
        day = date(2025, 1, 10)
        first = service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, day)

        assert first.status == BookingStatus.PENDING
        assert first.payment_status == PaymentStatus.PENDING
        assert first.amount == Decimal("50")
        assert first.booking_type == BookingType.DAILY

        with pytest.raises(SeatUnavailable) as exc_info:
            service.create_daily_booking(sample_library.id, 2, daily_seat.id, slot.id, day)
        assert exc_info.value.context["conflicting_booking_id"] == first.id

        service.cancel(first.id)
        second = service.create_daily_booking(sample_library.id, 2, daily_seat.id, slot.id, day)
        assert second.user_id == 2
        assert second.status == BookingStatus.PENDING

    def test_different_date_no_conflict(self, service, sample_library, daily_seat, slot):
        service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, date(2025, 1, 10))
        other = service.create_daily_booking(sample_library.id, 2, daily_seat.id, slot.id, date(2025, 1, 11))
        assert other.id is not None

    def test_non_overlapping_slot_no_conflict(self, service, db_session, sample_library, daily_seat, slot):
        afternoon = _make_slot(db_session, sample_library, "11:00", "13:00", 30, [daily_seat])
        day = date(2025, 1, 10)
        service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, day)

        booking = service.create_daily_booking(sample_library.id, 2, daily_seat.id, afternoon.id, day)
        assert booking.amount == Decimal("30")

    def test_overlapping_slot_conflicts(self, service, db_session, sample_library, daily_seat, slot):
        """同一座位在钟面时间重叠的两个时段不能同时被占用"""
        overlap = _make_slot(db_session, sample_library, "10:00", "12:00", 30, [daily_seat])
        day = date(2025, 1, 10)
        service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, day)

        with pytest.raises(SeatUnavailable):
            service.create_daily_booking(sample_library.id, 2, daily_seat.id, overlap.id, day)

    def test_terminal_bookings_do_not_block(self, service, sample_library, daily_seat, slot):
        day = date(2025, 1, 10)
        for target in ("reject", "complete"):
            booking = service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, day)
            if target == "reject":
                service.reject(booking.id, reason="维修")
            else:
                service.confirm(booking.id)
                service.complete(booking.id)
        assert service.create_daily_booking(sample_library.id, 3, daily_seat.id, slot.id, day).id

    def test_amount_captured_at_creation(self, service, db_session, sample_library, daily_seat, slot):
        booking = service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, date(2025, 1, 10))
        slot.price = Decimal("80")
        db_session.commit()

        db_session.refresh(booking)
        assert booking.amount == Decimal("50")

    def test_emits_created_event(self, service, sample_library, daily_seat, slot, events):
        booking = service.create_daily_booking(sample_library.id, 1, daily_seat.id, slot.id, date(2025, 1, 10))

        event = events.last(EventType.BOOKING_CREATED.value)
        assert event.data["booking_id"] == booking.id
        assert event.data["booking_date"] == "2025-01-10"
        assert event.data["amount"] == 50.0


class TestDailyBookingValidation:

    def test_monthly_seat_rejected(self, service, sample_library, monthly_seat, morning_slot, booking_date):
        with pytest.raises(WrongSeatMode):
            service.create_daily_booking(sample_library.id, 1, monthly_seat.id, morning_slot.id, booking_date)

    def test_inactive_seat(self, service, db_session, sample_library, daily_seat, morning_slot, booking_date):
        daily_seat.is_active = False
        db_session.commit()
        with pytest.raises(SeatInactive):
            service.create_daily_booking(sample_library.id, 1, daily_seat.id, morning_slot.id, booking_date)

    def test_inactive_slot(self, service, db_session, sample_library, daily_seat, morning_slot, booking_date):
        morning_slot.is_active = False
        db_session.commit()
        with pytest.raises(TimeSlotInactive):
            service.create_daily_booking(sample_library.id, 1, daily_seat.id, morning_slot.id, booking_date)

    def test_seat_not_assigned(self, service, db_session, sample_library, morning_slot, booking_date):
        loose = Seat(library_id=sample_library.id, seat_number="A9", seat_for=SeatMode.DAILY, is_active=True)
        db_session.add(loose)
        db_session.commit()
        with pytest.raises(SeatNotAssigned):
            service.create_daily_booking(sample_library.id, 1, loose.id, morning_slot.id, booking_date)

    def test_inactive_library(self, service, db_session, sample_library, daily_seat, morning_slot, booking_date):
        sample_library.is_active = False
        db_session.commit()
        with pytest.raises(LibraryInactive):
            service.create_daily_booking(sample_library.id, 1, daily_seat.id, morning_slot.id, booking_date)

    def test_seat_from_other_library(self, service, other_library, daily_seat, morning_slot, booking_date):
        with pytest.raises(SeatNotFound):
            service.create_daily_booking(other_library.id, 1, daily_seat.id, morning_slot.id, booking_date)


class TestMonthlyBookingScenario:
    """月度座位 B2：2 月已被预订"""

    @pytest.fixture
    def february(self, service, sample_library, monthly_seat):
        return service.create_monthly_booking(
            sample_library.id, 1, monthly_seat.id, date(2025, 2, 1), date(2025, 2, 28)
        )

    def test_overlapping_range_rejected(self, service, sample_library, monthly_seat, february):
        with pytest.raises(SeatUnavailable):
            service.create_monthly_booking(
                sample_library.id, 2, monthly_seat.id, date(2025, 2, 15), date(2025, 3, 15)
            )

    def test_adjacent_range_accepted(self, service, sample_library, monthly_seat, february):
        march = service.create_monthly_booking(
            sample_library.id, 2, monthly_seat.id, date(2025, 3, 1), date(2025, 3, 31)
        )
        assert march.status == BookingStatus.PENDING

    @pytest.mark.parametrize("start,end", [
        (date(2025, 1, 15), date(2025, 2, 1)),    # 结束日与起始日重合
        (date(2025, 2, 28), date(2025, 3, 5)),    # 起始日与结束日重合
        (date(2025, 2, 10), date(2025, 2, 12)),   # 被包含
        (date(2025, 1, 1), date(2025, 3, 31)),    # 包含
    ])
    def test_closed_interval_overlap(self, service, sample_library, monthly_seat, february, start, end):
        with pytest.raises(SeatUnavailable):
            service.create_monthly_booking(sample_library.id, 2, monthly_seat.id, start, end)

    def test_cancelled_range_is_freed(self, service, sample_library, monthly_seat, february):
        service.cancel(february.id, reason="计划变更")
        again = service.create_monthly_booking(
            sample_library.id, 2, monthly_seat.id, date(2025, 2, 15), date(2025, 3, 15)
        )
        assert again.id != february.id

    def test_amount_defaults_to_library_monthly_fee(self, february):
        assert february.amount == Decimal("300.00")
        assert february.booking_type == BookingType.MONTHLY

    def test_explicit_amount(self, service, sample_library, monthly_seat):
        booking = service.create_monthly_booking(
            sample_library.id, 1, monthly_seat.id, date(2025, 5, 1), date(2025, 5, 31), amount="280"
        )
        assert booking.amount == Decimal("280")

    def test_single_day_range(self, service, sample_library, monthly_seat):
        day = date(2025, 6, 1)
        assert service.create_monthly_booking(sample_library.id, 1, monthly_seat.id, day, day).id


class TestMonthlyBookingValidation:

    def test_inverted_range(self, service, sample_library, monthly_seat):
        with pytest.raises(InvalidDateRange):
            service.create_monthly_booking(
                sample_library.id, 1, monthly_seat.id, date(2025, 3, 1), date(2025, 2, 1)
            )

    def test_daily_seat_rejected(self, service, sample_library, daily_seat):
        with pytest.raises(WrongSeatMode):
            service.create_monthly_booking(
                sample_library.id, 1, daily_seat.id, date(2025, 3, 1), date(2025, 3, 31)
            )

    def test_zero_amount_rejected(self, service, db_session, sample_library, monthly_seat):
        sample_library.monthly_fee = Decimal("0")
        db_session.commit()
        with pytest.raises(InvalidPrice):
            service.create_monthly_booking(
                sample_library.id, 1, monthly_seat.id, date(2025, 3, 1), date(2025, 3, 31)
            )


class TestTransitions:

    @pytest.fixture
    def booking(self, service, sample_library, monthly_seat):
        return service.create_monthly_booking(
            sample_library.id, 1, monthly_seat.id, date(2025, 4, 1), date(2025, 4, 30)
        )

    def test_confirm_then_complete(self, service, booking, events):
        service.confirm(booking.id)
        completed = service.complete(booking.id)

        assert completed.status == BookingStatus.COMPLETED
        changes = [e.data for e in events.events if e.event_type == EventType.BOOKING_STATUS_CHANGED.value]
        assert [(c["old_status"], c["new_status"]) for c in changes] == [
            ("pending", "confirmed"), ("confirmed", "completed")
        ]
        assert changes[0]["trigger"] == "confirm"

    def test_reject_records_reason(self, service, booking):
        rejected = service.reject(booking.id, reason="座位维修")
        assert rejected.status == BookingStatus.REJECTED
        assert rejected.cancel_reason == "座位维修"

    def test_reject_not_allowed_after_check_in(self, service, booking):
        service.confirm(booking.id)
        service.transition(booking.id, BookingStatus.CHECKED_IN)
        with pytest.raises(IllegalTransition):
            service.reject(booking.id)

    def test_cancel_from_checked_in(self, service, booking):
        service.confirm(booking.id)
        service.transition(booking.id, "checked-in")
        assert service.cancel(booking.id).status == BookingStatus.CANCELLED

    def test_illegal_transition_context(self, service, booking):
        with pytest.raises(IllegalTransition) as exc_info:
            service.transition(booking.id, BookingStatus.COMPLETED)
        assert exc_info.value.context["current_status"] == "pending"
        assert "confirmed" in exc_info.value.context["valid_targets"]

    def test_unknown_status(self, service, booking):
        with pytest.raises(IllegalTransition):
            service.transition(booking.id, "archived")

    def test_terminal_booking_cannot_move(self, service, booking):
        service.cancel(booking.id)
        for target in BookingStatus:
            with pytest.raises(IllegalTransition):
                service.transition(booking.id, target)

    def test_missed_and_check_in_are_mutually_exclusive(self, service, booking):
        """外部超时扫描标记 missed 后，签到不能再生效"""
        service.confirm(booking.id)
        service.transition(booking.id, BookingStatus.MISSED)
        with pytest.raises(IllegalTransition):
            service.transition(booking.id, BookingStatus.CHECKED_IN)

    def test_status_changed_by_other_writer(self, service, db_session, booking):
        """另一个写入方先改了状态：按最新状态校验"""
        db_session.query(Booking).filter(Booking.id == booking.id).update(
            {"status": BookingStatus.CANCELLED}, synchronize_session=False
        )
        db_session.commit()

        with pytest.raises(IllegalTransition):
            service.confirm(booking.id)

    def test_library_scope(self, service, booking, other_library):
        with pytest.raises(BookingNotFound):
            service.confirm(booking.id, library_id=other_library.id)

    def test_payment_independent_of_status(self, service, booking, events):
        service.cancel(booking.id)
        service.update_payment_status(booking.id, PaymentStatus.PAID)
        refunded = service.update_payment_status(booking.id, "refunded")

        assert refunded.status == BookingStatus.CANCELLED
        assert refunded.payment_status == PaymentStatus.REFUNDED
        assert events.last(EventType.BOOKING_PAYMENT_CHANGED.value).data["new_payment_status"] == "refunded"

    def test_unknown_payment_status(self, service, booking):
        with pytest.raises(IllegalTransition):
            service.update_payment_status(booking.id, "chargeback")


class TestQueries:

    def test_get_bookings_filters(self, service, db_session, sample_library, daily_seat,
                                  monthly_seat, morning_slot):
        day = date(2025, 2, 10)
        daily = service.create_daily_booking(sample_library.id, 1, daily_seat.id, morning_slot.id, day)
        monthly = service.create_monthly_booking(
            sample_library.id, 2, monthly_seat.id, date(2025, 2, 1), date(2025, 2, 28)
        )
        service.confirm(monthly.id)

        assert {b.id for b in service.get_bookings(sample_library.id, booking_date=day)} == {daily.id, monthly.id}
        assert [b.id for b in service.get_bookings(sample_library.id, status=BookingStatus.CONFIRMED)] == [monthly.id]
        assert [b.id for b in service.get_bookings(sample_library.id, user_id=1)] == [daily.id]
        assert [b.id for b in service.get_bookings(sample_library.id, booking_type=BookingType.MONTHLY)] == [monthly.id]
        assert service.get_bookings(sample_library.id, booking_date=day + timedelta(days=30)) == []

    def test_get_user_bookings(self, service, sample_library, monthly_seat):
        service.create_monthly_booking(sample_library.id, 7, monthly_seat.id, date(2025, 2, 1), date(2025, 2, 5))
        assert len(service.get_user_bookings(7)) == 1
        assert service.get_user_bookings(8) == []
