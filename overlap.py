from datetime import datetime
from typing import Optional

from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Booking


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open [start, end) intersection. Touching endpoints do not overlap."""
    return start_a < end_b and end_a > start_b


class OverlapDetector:
    """Finds accepted bookings of a room that intersect a candidate window."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _conflicts(self, room_id: int, start: datetime, end: datetime, exclude_id: Optional[int]):
        # Same predicate as intervals_overlap, evaluated by the database
        statement = (
            select(Booking)
            .where(Booking.room_id == room_id)
            .where(Booking.start_time < end, Booking.end_time > start)
        )
        if exclude_id is not None:
            statement = statement.where(Booking.id != exclude_id)
        return statement

    async def overlaps(self, room_id: int, start: datetime, end: datetime, exclude_id: Optional[int] = None) -> bool:
        return await self.find_conflict(room_id, start, end, exclude_id) is not None

    async def find_conflict(
        self, room_id: int, start: datetime, end: datetime, exclude_id: Optional[int] = None
    ) -> Optional[Booking]:
        statement = self._conflicts(room_id, start, end, exclude_id).order_by(Booking.start_time, Booking.id).limit(1)
        result = await self.session.execute(statement)
        return result.scalars().first()
