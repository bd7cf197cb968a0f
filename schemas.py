from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from clock import as_utc


class CamelModel(BaseModel):
    # Accept both roomId and room_id on input; emit camelCase on output
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _utc_isoformat(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat()


# --- Rooms ---

class RoomCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    location: str = Field(min_length=1, max_length=200)
    capacity: int = Field(ge=1)

    @field_validator("name", "location")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class RoomRead(CamelModel):
    id: int
    name: str
    location: str
    capacity: int


# --- Bookings ---

class BookingCreate(CamelModel):
    room_id: int
    title: str = Field(min_length=1, max_length=200)
    start_time: datetime
    end_time: datetime
    created_by: str = Field(min_length=1, max_length=100)
    # Range is enforced by the validation pipeline against the room's capacity
    number_of_participants: Optional[int] = None

    @field_validator("title", "created_by")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, value: datetime) -> datetime:
        try:
            return as_utc(value)
        except OverflowError:
            # e.g. 0001-01-01T00:00:00+01:00 has no UTC equivalent
            raise ValueError("timestamp is out of range once converted to UTC")


class BookingRead(CamelModel):
    id: int
    room_id: int
    title: str
    start_time: datetime
    end_time: datetime
    created_by: str
    created_at: datetime
    number_of_participants: Optional[int] = None
    room: Optional[RoomRead] = None

    @field_serializer("start_time", "end_time", "created_at")
    def serialize_utc(self, value: datetime) -> str:
        return _utc_isoformat(value)


class ConflictRead(CamelModel):
    id: int
    title: str
    start_time: datetime
    end_time: datetime

    @field_serializer("start_time", "end_time")
    def serialize_utc(self, value: datetime) -> str:
        return _utc_isoformat(value)


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
