"""
Booking engine entry points.

Validation and insertion of a booking run under the room's lock, so two
requests for the same room are decided one after the other and the second
one sees the first one's committed row. On PostgreSQL the exclusion
constraint also covers writers in other processes; when it fires, the
request is validated again against the current state.
"""

import logging
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from booking_store import BookingStore, RoomLocks
from clock import SystemClock
from errors import BookingError
from models import Booking
from rooms import RoomDirectory, RoomLifecycleGuard
from schemas import BookingCreate
from validation import BookingValidator

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(self, session: AsyncSession, clock=None, locks: Optional[RoomLocks] = None):
        self.session = session
        self.clock = clock or SystemClock()
        self.locks = locks or RoomLocks()
        self.store = BookingStore(session)
        self.rooms = RoomDirectory(session)
        self.validator = BookingValidator(session, self.clock)
        self.guard = RoomLifecycleGuard(self.store)

    async def create_booking(self, draft: BookingCreate) -> Union[Booking, BookingError]:
        async with self.locks.hold(draft.room_id):
            error = await self.validator.validate(draft)
            if error is not None:
                return error

            outcome = await self.store.create(draft, created_at=self.clock.now())
            if isinstance(outcome, BookingError):
                outcome = await self._retry_after_commit_conflict(draft)

        if isinstance(outcome, Booking):
            logger.info(
                "Booking %s accepted for room %s [%s, %s)",
                outcome.id, outcome.room_id, outcome.start_time, outcome.end_time,
            )
        return outcome

    async def _retry_after_commit_conflict(self, draft: BookingCreate) -> Union[Booking, BookingError]:
        # Another writer won the race; decide again on what is committed now
        error = await self.validator.validate(draft)
        if error is not None:
            return error

        outcome = await self.store.create(draft, created_at=self.clock.now())
        if isinstance(outcome, BookingError):
            return BookingError.slot_taken()
        return outcome

    async def cancel_booking(self, booking_id: int) -> Optional[BookingError]:
        if not await self.store.delete(booking_id):
            return BookingError.booking_not_found(booking_id)
        logger.info("Booking %s cancelled", booking_id)
        return None

    async def get_booking(self, booking_id: int) -> Union[Booking, BookingError]:
        booking = await self.store.get(booking_id)
        if booking is None:
            return BookingError.booking_not_found(booking_id)
        return booking

    async def list_bookings(self) -> List[Booking]:
        return await self.store.list_all()

    async def list_bookings_for_room(self, room_id: int) -> Union[List[Booking], BookingError]:
        if not await self.rooms.room_exists(room_id):
            return BookingError.room_not_found(room_id)
        return await self.store.list_for_room(room_id)

    async def delete_room(self, room_id: int) -> Optional[BookingError]:
        async with self.locks.hold(room_id):
            room = await self.rooms.get_room(room_id)
            if room is None:
                return BookingError.room_not_found(room_id)

            if not await self.guard.can_delete(room_id, self.clock.now()):
                logger.info("Refusing to delete room %s: it has future bookings", room_id)
                return BookingError.room_has_future_bookings(room_id)

            # Past bookings go with the room
            removed = await self.store.delete_for_room(room_id)
            await self.session.delete(room)
            await self.session.commit()

        logger.info("Room %s deleted along with %d past bookings", room_id, removed)
        return None
