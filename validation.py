"""
Booking validation pipeline.

A request is checked against an ordered rule chain and the first failing
rule decides the outcome, so exactly one reason is ever reported. Checks
that only look at the request run before checks that need the room
directory, and the overlap scan runs last.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from errors import BookingError, ConflictInfo, ReasonCode
from models import Room
from overlap import OverlapDetector
from rooms import RoomDirectory
from schemas import BookingCreate

logger = logging.getLogger(__name__)

MIN_BOOKING_DURATION = timedelta(minutes=15)
MAX_BOOKING_DURATION = timedelta(hours=8)

RULE_ORDER = ("time_range", "not_in_past", "duration", "room_exists", "capacity", "overlap")


# --- Pure checks ---

def check_time_range(start: datetime, end: datetime) -> Optional[BookingError]:
    if start >= end:
        return BookingError.rejection(ReasonCode.INVALID_TIME_RANGE, "Start time must be before end time")
    return None


def check_not_in_past(start: datetime, now: datetime) -> Optional[BookingError]:
    if start < now:
        return BookingError.rejection(ReasonCode.START_IN_PAST, "Cannot create bookings in the past")
    return None


def check_duration(start: datetime, end: datetime) -> Optional[BookingError]:
    duration = end - start
    if duration < MIN_BOOKING_DURATION:
        return BookingError.rejection(ReasonCode.DURATION_TOO_SHORT, "Minimum booking duration is 15 minutes")
    if duration > MAX_BOOKING_DURATION:
        return BookingError.rejection(ReasonCode.DURATION_TOO_LONG, "Maximum booking duration is 8 hours")
    return None


def check_capacity(participants: Optional[int], capacity: int) -> Optional[BookingError]:
    if participants is None:
        return None
    if participants < 1:
        return BookingError.rejection(ReasonCode.INVALID_PARTICIPANTS, "Number of participants must be at least 1")
    if participants > capacity:
        return BookingError.rejection(
            ReasonCode.CAPACITY_EXCEEDED,
            f"Room capacity is {capacity}. Cannot accommodate {participants} participants",
        )
    return None


# --- Pipeline ---

@dataclass
class ValidationContext:
    request: BookingCreate
    now: datetime
    room: Optional[Room] = None


Rule = Callable[[ValidationContext], Awaitable[Optional[BookingError]]]


class BookingValidator:
    def __init__(self, session: AsyncSession, clock):
        self.clock = clock
        self.rooms = RoomDirectory(session)
        self.detector = OverlapDetector(session)

    @property
    def rules(self) -> List[Tuple[str, Rule]]:
        return [
            ("time_range", self._time_range),
            ("not_in_past", self._not_in_past),
            ("duration", self._duration),
            ("room_exists", self._room_exists),
            ("capacity", self._capacity),
            ("overlap", self._overlap),
        ]

    async def validate(self, request: BookingCreate) -> Optional[BookingError]:
        """Return None to accept, or the error of the first failing rule."""
        context = ValidationContext(request=request, now=self.clock.now())
        for name, rule in self.rules:
            error = await rule(context)
            if error is not None:
                logger.info("Booking for room %s rejected by %s: %s", request.room_id, name, error.code.value)
                return error
        return None

    async def _time_range(self, context: ValidationContext) -> Optional[BookingError]:
        return check_time_range(context.request.start_time, context.request.end_time)

    async def _not_in_past(self, context: ValidationContext) -> Optional[BookingError]:
        return check_not_in_past(context.request.start_time, context.now)

    async def _duration(self, context: ValidationContext) -> Optional[BookingError]:
        return check_duration(context.request.start_time, context.request.end_time)

    async def _room_exists(self, context: ValidationContext) -> Optional[BookingError]:
        context.room = await self.rooms.get_room(context.request.room_id)
        if context.room is None:
            return BookingError.room_not_found(context.request.room_id)
        return None

    async def _capacity(self, context: ValidationContext) -> Optional[BookingError]:
        return check_capacity(context.request.number_of_participants, context.room.capacity)

    async def _overlap(self, context: ValidationContext) -> Optional[BookingError]:
        request = context.request
        conflict = await self.detector.find_conflict(request.room_id, request.start_time, request.end_time)
        if conflict is not None:
            return BookingError.slot_taken(ConflictInfo.from_booking(conflict))
        return None
