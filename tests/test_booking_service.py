import asyncio
from datetime import timedelta
from itertools import combinations

from booking_service import BookingService
from booking_store import BookingStore
from conftest import NOW, at
from errors import BookingError, ErrorKind, ReasonCode
from models import Booking
from overlap import intervals_overlap


class TestCreateBooking:

    async def test_overlapping_request_is_rejected_with_the_conflict(self, service, room, make_draft):
        standup = await service.create_booking(make_draft(room.id, at(9), at(9, 30), title="Standup"))
        assert isinstance(standup, Booking)

        planning = await service.create_booking(make_draft(room.id, at(9, 15), at(9, 45), title="Planning"))

        assert isinstance(planning, BookingError)
        assert planning.code is ReasonCode.TIME_SLOT_ALREADY_BOOKED
        assert planning.conflict.title == "Standup"
        assert planning.conflict.id == standup.id

    async def test_booking_in_the_past_is_rejected(self, service, room, make_draft):
        start = NOW - timedelta(minutes=1)

        outcome = await service.create_booking(make_draft(room.id, start, start + timedelta(hours=1)))

        assert outcome.code is ReasonCode.START_IN_PAST
        assert outcome.message == "Cannot create bookings in the past"

    async def test_capacity_is_enforced(self, service, room, make_draft):
        outcome = await service.create_booking(make_draft(room.id, at(9), at(10), participants=5))

        assert outcome.code is ReasonCode.CAPACITY_EXCEEDED

    async def test_ten_minute_booking_is_too_short(self, service, room, make_draft):
        outcome = await service.create_booking(make_draft(room.id, at(10), at(10, 10)))

        assert outcome.code is ReasonCode.DURATION_TOO_SHORT
        assert outcome.message == "Minimum booking duration is 15 minutes"

    async def test_back_to_back_bookings_are_both_accepted(self, service, room, make_draft):
        first = await service.create_booking(make_draft(room.id, at(9), at(10)))
        second = await service.create_booking(make_draft(room.id, at(10), at(11)))

        assert isinstance(first, Booking)
        assert isinstance(second, Booking)

    async def test_created_at_comes_from_the_clock(self, service, clock, room, make_draft):
        clock.advance(timedelta(minutes=7))

        booking = await service.create_booking(make_draft(room.id, at(9), at(10)))

        assert booking.created_at == NOW + timedelta(minutes=7)

    async def test_unknown_room_is_not_found(self, service, make_draft):
        outcome = await service.create_booking(make_draft(42, at(9), at(10)))

        assert outcome.kind is ErrorKind.NOT_FOUND
        assert outcome.code is ReasonCode.ROOM_NOT_FOUND

    async def test_accepted_bookings_never_overlap(self, service, room, make_draft):
        windows = [(at(9), at(10)), (at(9, 30), at(11)), (at(10), at(10, 45)), (at(10, 30), at(12)),
                   (at(10, 45), at(11, 15)), (at(11), at(13)), (at(12, 59), at(13, 30))]
        for start, end in windows:
            await service.create_booking(make_draft(room.id, start, end))

        accepted = await service.list_bookings_for_room(room.id)

        assert len(accepted) >= 2
        for a, b in combinations(accepted, 2):
            assert not intervals_overlap(a.start_time, a.end_time, b.start_time, b.end_time)


class TestConcurrentCreates:

    async def test_only_one_of_many_overlapping_requests_wins(self, session_factory, clock, locks, room, make_draft):
        async def attempt(i):
            async with session_factory() as session:
                service = BookingService(session, clock=clock, locks=locks)
                return await service.create_booking(
                    make_draft(room.id, at(9, i), at(10, i), title=f"Meeting {i}")
                )

        outcomes = await asyncio.gather(*(attempt(i) for i in range(10)))

        accepted = [o for o in outcomes if isinstance(o, Booking)]
        rejected = [o for o in outcomes if isinstance(o, BookingError)]
        assert len(accepted) == 1
        assert len(rejected) == 9
        assert all(o.code is ReasonCode.TIME_SLOT_ALREADY_BOOKED for o in rejected)

        async with session_factory() as session:
            assert len(await BookingStore(session).list_for_room(room.id)) == 1
        assert len(locks) == 0

    async def test_room_locks_are_released_once_requests_finish(self, service, locks, room, make_draft):
        await service.create_booking(make_draft(room.id, at(9), at(10)))
        await service.create_booking(make_draft(room.id, at(9), at(10)))
        for unknown_room in range(1000, 1050):
            await service.create_booking(make_draft(unknown_room, at(9), at(10)))
        await service.delete_room(2000)

        assert len(locks) == 0

    async def test_commit_conflict_is_revalidated(self, service, session_factory, room, make_draft):
        calls = []

        async def lose_the_race(draft, created_at):
            calls.append(draft)
            # A writer in another process commits an overlapping booking first
            async with session_factory() as other:
                await BookingStore(other).create(make_draft(room.id, at(9), at(10), title="Winner"), created_at)
            return BookingError.commit_conflict(draft.room_id)

        service.store.create = lose_the_race

        outcome = await service.create_booking(make_draft(room.id, at(9, 30), at(10, 30)))

        assert outcome.code is ReasonCode.TIME_SLOT_ALREADY_BOOKED
        assert outcome.kind is ErrorKind.VALIDATION
        assert outcome.conflict.title == "Winner"
        assert len(calls) == 1

    async def test_commit_conflict_without_survivor_is_retried_once(self, service, room, make_draft):
        real_create = service.store.create
        calls = []

        async def flaky(draft, created_at):
            calls.append(draft)
            if len(calls) == 1:
                return BookingError.commit_conflict(draft.room_id)
            return await real_create(draft, created_at)

        service.store.create = flaky

        outcome = await service.create_booking(make_draft(room.id, at(9), at(10)))

        assert isinstance(outcome, Booking)
        assert len(calls) == 2

    async def test_repeated_commit_conflict_is_reported_as_slot_taken(self, service, room, make_draft):
        async def always_conflict(draft, created_at):
            return BookingError.commit_conflict(draft.room_id)

        service.store.create = always_conflict

        outcome = await service.create_booking(make_draft(room.id, at(9), at(10)))

        assert outcome.kind is ErrorKind.VALIDATION
        assert outcome.code is ReasonCode.TIME_SLOT_ALREADY_BOOKED
        assert outcome.conflict is None


class TestCancelBooking:

    async def test_cancel_frees_the_slot(self, service, room, make_draft):
        booking = await service.create_booking(make_draft(room.id, at(9), at(10)))

        assert await service.cancel_booking(booking.id) is None
        assert isinstance(await service.create_booking(make_draft(room.id, at(9), at(10))), Booking)

    async def test_cancelling_a_missing_booking_is_always_not_found(self, service):
        first = await service.cancel_booking(404)
        second = await service.cancel_booking(404)

        assert first == second
        assert first.kind is ErrorKind.NOT_FOUND
        assert first.code is ReasonCode.BOOKING_NOT_FOUND

    async def test_cancelling_twice_reports_not_found_the_second_time(self, service, room, make_draft):
        booking = await service.create_booking(make_draft(room.id, at(9), at(10)))

        assert await service.cancel_booking(booking.id) is None
        assert (await service.cancel_booking(booking.id)).code is ReasonCode.BOOKING_NOT_FOUND


class TestQueries:

    async def test_get_booking(self, service, room, make_draft):
        booking = await service.create_booking(make_draft(room.id, at(9), at(10)))

        assert await service.get_booking(booking.id) == booking
        assert (await service.get_booking(booking.id + 1)).code is ReasonCode.BOOKING_NOT_FOUND

    async def test_list_bookings_for_unknown_room(self, service):
        outcome = await service.list_bookings_for_room(7)

        assert outcome.code is ReasonCode.ROOM_NOT_FOUND

    async def test_list_bookings_is_ordered(self, service, room, make_draft):
        await service.create_booking(make_draft(room.id, at(13), at(14), title="After lunch"))
        await service.create_booking(make_draft(room.id, at(9), at(10), title="Morning"))

        assert [b.title for b in await service.list_bookings()] == ["Morning", "After lunch"]


class TestDeleteRoom:

    async def _book_in_the_past(self, service, clock, room, make_draft, days_ago):
        clock.set(NOW - timedelta(days=days_ago, hours=1))
        booking = await service.create_booking(make_draft(room.id, at(9, days=-days_ago), at(10, days=-days_ago)))
        clock.set(NOW)
        return booking

    async def test_room_with_only_past_bookings_is_deletable(self, service, clock, room, make_draft):
        await self._book_in_the_past(service, clock, room, make_draft, days_ago=1)

        assert await service.delete_room(room.id) is None
        assert await service.rooms.get_room(room.id) is None
        assert await service.list_bookings() == []

    async def test_room_with_a_future_booking_is_kept(self, service, clock, room, make_draft):
        for days_ago in (1, 2, 3):
            await self._book_in_the_past(service, clock, room, make_draft, days_ago)
        await service.create_booking(make_draft(room.id, at(9), at(10)))

        error = await service.delete_room(room.id)

        assert error.kind is ErrorKind.LIFECYCLE_CONFLICT
        assert error.code is ReasonCode.ROOM_HAS_FUTURE_BOOKINGS
        assert await service.rooms.get_room(room.id) is not None
        assert len(await service.list_bookings()) == 4

    async def test_room_without_bookings_is_deletable(self, service, room):
        assert await service.delete_room(room.id) is None

    async def test_unknown_room(self, service):
        assert (await service.delete_room(31)).code is ReasonCode.ROOM_NOT_FOUND
