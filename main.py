import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List

from fastapi import FastAPI, Depends, HTTPException, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from booking_service import BookingService
from booking_store import RoomLocks
from clock import SystemClock
from database import init_db, get_session
from errors import BookingError, ErrorKind
from rooms import RoomDirectory
from schemas import BookingCreate, BookingRead, ConflictRead, HealthStatus, RoomCreate, RoomRead

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Meeting Room Booking System")

# Shared by every request so that writers for one room queue on the same lock
room_locks = RoomLocks()
system_clock = SystemClock()


# --- Dependencies ---

def get_clock():
    return system_clock


def get_room_locks() -> RoomLocks:
    return room_locks


def get_booking_service(
    session: AsyncSession = Depends(get_session),
    clock=Depends(get_clock),
    locks: RoomLocks = Depends(get_room_locks),
) -> BookingService:
    return BookingService(session, clock=clock, locks=locks)


def get_room_directory(session: AsyncSession = Depends(get_session)) -> RoomDirectory:
    return RoomDirectory(session)


# --- Error mapping ---

_STATUS_BY_KIND = {
    ErrorKind.INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT_ON_COMMIT: status.HTTP_409_CONFLICT,
    ErrorKind.LIFECYCLE_CONFLICT: status.HTTP_403_FORBIDDEN,
}


def raise_for_error(error: BookingError):
    status_code = _STATUS_BY_KIND[error.kind]
    detail = {"message": error.message, "code": error.code.value}
    if error.is_slot_conflict:
        status_code = status.HTTP_409_CONFLICT
        detail["conflictingBooking"] = (
            ConflictRead.model_validate(asdict(error.conflict)).model_dump(by_alias=True)
            if error.conflict else None
        )
    raise HTTPException(status_code=status_code, detail=detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "message": "Invalid request",
                "code": ErrorKind.INPUT.value,
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"message": "An error occurred while processing your request"}
    if config.DEBUG:
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


@app.on_event("startup")
async def on_startup():
    await init_db()


# --- Health ---

@app.get("/health", response_model=HealthStatus)
@app.get("/api/health", response_model=HealthStatus)
async def health():
    return HealthStatus(status="healthy", timestamp=datetime.now(timezone.utc))


@app.get("/api/databasetest")
async def database_test(directory: RoomDirectory = Depends(get_room_directory)):
    session = directory.session
    # Never echo the password back
    url = session.bind.url.render_as_string(hide_password=True)
    try:
        await session.execute(text("SELECT 1"))
        room_count = await directory.count_rooms()
    except SQLAlchemyError as exc:
        logger.exception("Database connection test failed")
        content = {"success": False, "message": "Database connection test failed", "databaseUrl": url}
        if config.DEBUG:
            content["error"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    return {
        "success": True,
        "message": "Database connection successful",
        "roomCount": room_count,
        "databaseUrl": url,
    }


# --- Rooms ---

@app.get("/api/rooms", response_model=List[RoomRead])
async def list_rooms(directory: RoomDirectory = Depends(get_room_directory)):
    return await directory.list_rooms()


@app.get("/api/rooms/{room_id}", response_model=RoomRead)
async def get_room(room_id: int, directory: RoomDirectory = Depends(get_room_directory)):
    room = await directory.get_room(room_id)
    if room is None:
        raise_for_error(BookingError.room_not_found(room_id))
    return room


@app.get("/api/rooms/{room_id}/bookings", response_model=List[BookingRead])
async def list_room_bookings(room_id: int, service: BookingService = Depends(get_booking_service)):
    outcome = await service.list_bookings_for_room(room_id)
    if isinstance(outcome, BookingError):
        raise_for_error(outcome)
    # Built explicitly; dumping the table model would drop the room
    return [BookingRead.model_validate(b) for b in outcome]


@app.post("/api/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
async def create_room(room_data: RoomCreate, directory: RoomDirectory = Depends(get_room_directory)):
    room = await directory.create_room(room_data)
    logger.info("Room %s created (%s, capacity %s)", room.id, room.name, room.capacity)
    return room


@app.delete("/api/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(room_id: int, service: BookingService = Depends(get_booking_service)):
    error = await service.delete_room(room_id)
    if error is not None:
        raise_for_error(error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Bookings ---

@app.get("/api/bookings", response_model=List[BookingRead])
async def list_bookings(service: BookingService = Depends(get_booking_service)):
    return [BookingRead.model_validate(b) for b in await service.list_bookings()]


@app.get("/api/bookings/{booking_id}", response_model=BookingRead)
async def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    outcome = await service.get_booking(booking_id)
    if isinstance(outcome, BookingError):
        raise_for_error(outcome)
    return BookingRead.model_validate(outcome)


@app.post("/api/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(booking_data: BookingCreate, service: BookingService = Depends(get_booking_service)):
    outcome = await service.create_booking(booking_data)
    if isinstance(outcome, BookingError):
        raise_for_error(outcome)
    return BookingRead.model_validate(outcome)


@app.delete("/api/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    error = await service.cancel_booking(booking_id)
    if error is not None:
        raise_for_error(error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
