"""
Typed outcomes of the booking engine.

Every expected failure (bad input, broken rule, missing entity, lost commit
race, blocked room deletion) is returned as a ``BookingError`` value rather
than raised. Only infrastructure failures travel as exceptions.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INPUT = "input"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT_ON_COMMIT = "conflict_on_commit"
    LIFECYCLE_CONFLICT = "lifecycle_conflict"


class ReasonCode(str, Enum):
    INVALID_TIME_RANGE = "invalid_time_range"
    START_IN_PAST = "start_in_past"
    DURATION_TOO_SHORT = "duration_too_short"
    DURATION_TOO_LONG = "duration_too_long"
    ROOM_NOT_FOUND = "room_not_found"
    INVALID_PARTICIPANTS = "invalid_participants"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    TIME_SLOT_ALREADY_BOOKED = "time_slot_already_booked"
    BOOKING_NOT_FOUND = "booking_not_found"
    ROOM_HAS_FUTURE_BOOKINGS = "room_has_future_bookings"


@dataclass(frozen=True)
class ConflictInfo:
    """The accepted booking that a rejected request collided with."""

    id: int
    title: str
    start_time: datetime
    end_time: datetime

    @classmethod
    def from_booking(cls, booking) -> "ConflictInfo":
        return cls(
            id=booking.id,
            title=booking.title,
            start_time=booking.start_time,
            end_time=booking.end_time,
        )


@dataclass(frozen=True)
class BookingError:
    kind: ErrorKind
    code: ReasonCode
    message: str
    conflict: Optional[ConflictInfo] = None

    @property
    def is_slot_conflict(self) -> bool:
        return self.code is ReasonCode.TIME_SLOT_ALREADY_BOOKED

    # --- constructors for the recurring cases ---

    @classmethod
    def rejection(cls, code: ReasonCode, message: str, conflict: Optional[ConflictInfo] = None) -> "BookingError":
        return cls(ErrorKind.VALIDATION, code, message, conflict)

    @classmethod
    def room_not_found(cls, room_id: int) -> "BookingError":
        return cls(ErrorKind.NOT_FOUND, ReasonCode.ROOM_NOT_FOUND, f"Room with ID {room_id} not found")

    @classmethod
    def booking_not_found(cls, booking_id: int) -> "BookingError":
        return cls(ErrorKind.NOT_FOUND, ReasonCode.BOOKING_NOT_FOUND, f"Booking with ID {booking_id} not found")

    @classmethod
    def slot_taken(cls, conflict: Optional[ConflictInfo] = None) -> "BookingError":
        if conflict is None:
            message = "Time slot already booked"
        else:
            message = (
                f"Time slot already booked by '{conflict.title}' from "
                f"{conflict.start_time:%Y-%m-%d %H:%M} to {conflict.end_time:%Y-%m-%d %H:%M}"
            )
        return cls.rejection(ReasonCode.TIME_SLOT_ALREADY_BOOKED, message, conflict)

    @classmethod
    def commit_conflict(cls, room_id: int) -> "BookingError":
        return cls(
            ErrorKind.CONFLICT_ON_COMMIT,
            ReasonCode.TIME_SLOT_ALREADY_BOOKED,
            f"A concurrent booking for room {room_id} was committed first",
        )

    @classmethod
    def room_has_future_bookings(cls, room_id: int) -> "BookingError":
        return cls(
            ErrorKind.LIFECYCLE_CONFLICT,
            ReasonCode.ROOM_HAS_FUTURE_BOOKINGS,
            f"Cannot delete room {room_id} with future bookings",
        )
