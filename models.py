from typing import Optional
from pydantic import NaiveDatetime
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, Column, DateTime, Index


def _utc_column() -> Column:
    # Naive UTC on every backend; as_utc normalizes before values get here
    return Column(DateTime(timezone=False), nullable=False)


class Room(SQLModel, table=True):
    __tablename__ = "rooms"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    location: str = Field(max_length=200)
    capacity: int


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="booking_time_order"),
        Index("ix_bookings_room_start", "room_id", "start_time"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    # RESTRICT: a room is only removed after its remaining bookings are cleared
    room_id: int = Field(foreign_key="rooms.id", ondelete="RESTRICT", index=True)
    title: str = Field(max_length=200)
    start_time: NaiveDatetime = Field(sa_column=_utc_column())
    end_time: NaiveDatetime = Field(sa_column=_utc_column())  # exclusive
    created_by: str = Field(max_length=100)
    created_at: NaiveDatetime = Field(sa_column=_utc_column())
    number_of_participants: Optional[int] = None

    # Loaded together with the booking; async sessions cannot lazy load
    room: Optional[Room] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
