from datetime import datetime
from typing import List, Optional

from sqlmodel import select
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from booking_store import BookingStore
from models import Room
from schemas import RoomCreate


class RoomDirectory:
    """Lookup and administration of rooms."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_room(self, room_id: int) -> Optional[Room]:
        return await self.session.get(Room, room_id)

    async def room_exists(self, room_id: int) -> bool:
        return await self.get_room(room_id) is not None

    async def list_rooms(self) -> List[Room]:
        result = await self.session.execute(select(Room).order_by(Room.id))
        return list(result.scalars().all())

    async def count_rooms(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(Room))
        return result.scalar_one()

    async def create_room(self, data: RoomCreate) -> Room:
        room = Room(name=data.name, location=data.location, capacity=data.capacity)
        self.session.add(room)
        await self.session.commit()
        await self.session.refresh(room)
        return room


class RoomLifecycleGuard:
    """A room may go away only once none of its bookings starts after `now`."""

    def __init__(self, store: BookingStore):
        self.store = store

    async def can_delete(self, room_id: int, now: datetime) -> bool:
        return not await self.store.exists_future_for_room(room_id, now)
