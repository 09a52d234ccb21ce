from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from common.logging_config import configure_logging, get_logger

from . import repository, schemas
from .auth import require_roles
from .database import Base, engine, get_db
from .engine import (
    as_datetime,
    check_conflict,
    compute_occupancy,
    default_blocking_predicate,
    exclude_no_show,
    generate_date_range,
)
from .errors import FetchError, InvalidRangeError, ReservationNotFoundError, SpaceNotFoundError
from .occupancy_cache import get_occupancy as cached_occupancy, invalidate_occupancy, store_occupancy
from .rate_limiter import reservation_rate_limiter

configure_logging()
logger = get_logger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Tape Chart Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "tapechart"


def error_body(request: Request, status_code: int, detail) -> Dict:
    return {
        "service": SERVICE_NAME,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "detail": detail,
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.detail),
    )


@app.exception_handler(InvalidRangeError)
async def invalid_range_handler(request: Request, exc: InvalidRangeError):
    return JSONResponse(status_code=400, content=error_body(request, 400, str(exc)))


@app.exception_handler(ReservationNotFoundError)
async def not_found_handler(request: Request, exc: ReservationNotFoundError):
    return JSONResponse(status_code=404, content=error_body(request, 404, "Reservation not found"))


@app.exception_handler(SpaceNotFoundError)
async def space_not_found_handler(request: Request, exc: SpaceNotFoundError):
    return JSONResponse(status_code=404, content=error_body(request, 404, "Space not found"))


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    logger.error("window fetch failed", collection=exc.collection, path=request.url.path)
    return JSONResponse(
        status_code=503,
        content=error_body(request, 503, "Reservation data is temporarily unavailable"),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled error", path=request.url.path, method=request.method, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(request, 500, "Internal server error"),
    )


@app.get("/")
def root():
    """
    Health-check endpoint for the Tape Chart service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": SERVICE_NAME, "status": "running"}


viewer_roles = require_roles(
    "admin",
    "manager",
    "front_desk",
    "auditor",
    "service_account",  # other services reading availability
)

staff_roles = require_roles("admin", "manager", "front_desk")

admin_or_manager = require_roles("admin", "manager")


def load_conflict_window(db: Session, organization_id: int, start: datetime, end: datetime):
    """
    Read the bookings and blocks around [start, end) for conflict checks.

    Nothing locks them between the check and the write that follows, so two
    concurrent writers can still both pass.
    """
    start, end = as_datetime(start), as_datetime(end)
    bookings = repository.fetch_bookings(db, organization_id, start.date(), end.date())
    blocks = repository.fetch_blocks(db, organization_id, start.date(), end.date())
    return bookings, blocks


def find_conflict(
    db: Session,
    organization_id: int,
    space_id: str,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[str] = None,
    release_no_show: bool = False,
):
    bookings, blocks = load_conflict_window(db, organization_id, start, end)
    return check_conflict(
        bookings,
        blocks,
        space_id,
        start,
        end,
        exclude_booking_id=exclude_booking_id,
        is_blocking=exclude_no_show if release_no_show else default_blocking_predicate,
    )


def reject_if_conflict(result, organization_id: int, space_id: str) -> None:
    if result.conflict:
        logger.info(
            "reservation write rejected",
            organization_id=organization_id,
            space_id=space_id,
            kind=result.kind,
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.detail)


# ---------- Tape chart reads ----------


@router_v1.get("/tape-chart", response_model=schemas.TapeChartRead)
def get_tape_chart(
    start: date,
    end: date,
    db: Session = Depends(get_db),
    claims: Dict = Depends(viewer_roles),
):
    """
    Return the spaces, bookings and blocks displayed between two days.

    Parameters
    ----------
    start : date
        First displayed day.
    end : date
        Last displayed day (inclusive).

    Returns
    -------
    TapeChartRead
        Spaces ordered by label, plus every non-cancelled booking and block
        touching the window, each with its display color.

    Raises
    ------
    HTTPException
        400 if end is before start, 503 if the store cannot be read.
    """
    window = repository.fetch_window(db, claims["organization_id"], start, end)
    return schemas.TapeChartRead.model_validate(window)


@router_v1.get("/tape-chart/occupancy", response_model=List[schemas.OccupancyDayRead])
def get_occupancy(
    start: date,
    end: date,
    db: Session = Depends(get_db),
    claims: Dict = Depends(viewer_roles),
):
    """
    Per-day occupancy between two days (inclusive).

    An organization without spaces gets an empty list.
    """
    organization_id = claims["organization_id"]
    days = cached_occupancy(organization_id, start, end)
    if days is None:
        total = repository.count_spaces(db, organization_id)
        bookings = repository.fetch_active_bookings(db, organization_id, start, end)
        days = store_occupancy(organization_id, start, end, compute_occupancy(start, end, total, bookings))

    return [schemas.OccupancyDayRead.model_validate(day) for day in days]


@router_v1.get("/tape-chart/dates", response_model=List[str])
def get_date_axis(
    start: date,
    days: int = Query(..., le=366),
    _: Dict = Depends(viewer_roles),
):
    """Day-by-day column axis for the tape chart."""
    return generate_date_range(start, days)


@router_v1.post("/tape-chart/conflicts", response_model=schemas.ConflictResultRead)
def check_conflicts(
    body: schemas.ConflictCheckRequest,
    db: Session = Depends(get_db),
    claims: Dict = Depends(viewer_roles),
):
    """
    Dry-run conflict check for placing an interval on a space.

    Returns
    -------
    ConflictResultRead
        ``conflict`` with the ``kind`` ('reservation' or 'block') and a
        human-readable ``detail`` of the first conflict found.
    """
    result = find_conflict(
        db,
        claims["organization_id"],
        body.space_id,
        body.start,
        body.end,
        exclude_booking_id=body.exclude_booking_id,
        release_no_show=body.release_no_show,
    )
    return schemas.ConflictResultRead.model_validate(result)


# ---------- Reservations ----------


@router_v1.post(
    "/reservations",
    response_model=schemas.ReservationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(reservation_rate_limiter)],
)
def create_reservation(
    body: schemas.ReservationCreate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(staff_roles),
):
    """
    Create a reservation after checking the space is free.

    Raises
    ------
    HTTPException
        409 if the interval overlaps a reservation or block on the space.
    """
    organization_id = claims["organization_id"]
    repository.get_space(db, body.space_id, organization_id)

    result = find_conflict(db, organization_id, body.space_id, body.start, body.end)
    reject_if_conflict(result, organization_id, body.space_id)

    reservation = repository.create_reservation(
        db,
        organization_id=organization_id,
        space_id=body.space_id,
        checkin=body.start,
        checkout=body.end,
        customer_id=body.customer_id,
        code=body.code,
        status=body.status,
        occupant_count=body.occupant_count,
        notes=body.notes,
    )
    invalidate_occupancy(organization_id)
    logger.info("reservation created", organization_id=organization_id, reservation_id=reservation.id)
    return reservation


@router_v1.get("/reservations/{reservation_id}", response_model=schemas.ReservationDetails)
def get_reservation(
    reservation_id: str,
    db: Session = Depends(get_db),
    claims: Dict = Depends(viewer_roles),
):
    return repository.get_reservation_details(db, reservation_id, claims["organization_id"])


@router_v1.put(
    "/reservations/{reservation_id}/move",
    response_model=schemas.ReservationRead,
    dependencies=[Depends(reservation_rate_limiter)],
)
def move_reservation(
    reservation_id: str,
    body: schemas.ReservationMove,
    db: Session = Depends(get_db),
    claims: Dict = Depends(staff_roles),
):
    """
    Move a reservation to another space and/or dates.

    The reservation itself is ignored by the conflict check.
    """
    organization_id = claims["organization_id"]
    # 404 before the conflict check
    repository.reservation_space_ids(db, reservation_id, organization_id)
    repository.get_space(db, body.space_id, organization_id)

    result = find_conflict(
        db, organization_id, body.space_id, body.start, body.end,
        exclude_booking_id=reservation_id,
    )
    reject_if_conflict(result, organization_id, body.space_id)

    reservation = repository.move_reservation(
        db, reservation_id, body.space_id, body.start, body.end, organization_id=organization_id,
    )
    invalidate_occupancy(organization_id)
    return reservation


@router_v1.put(
    "/reservations/{reservation_id}/resize",
    response_model=schemas.ReservationRead,
    dependencies=[Depends(reservation_rate_limiter)],
)
def resize_reservation(
    reservation_id: str,
    body: schemas.ReservationResize,
    db: Session = Depends(get_db),
    claims: Dict = Depends(staff_roles),
):
    """
    Change the dates of a reservation on every space it occupies.
    """
    organization_id = claims["organization_id"]
    space_ids = repository.reservation_space_ids(db, reservation_id, organization_id)

    bookings, blocks = load_conflict_window(db, organization_id, body.start, body.end)
    for space_id in space_ids:
        result = check_conflict(
            bookings, blocks, space_id, body.start, body.end,
            exclude_booking_id=reservation_id,
        )
        reject_if_conflict(result, organization_id, space_id)

    reservation = repository.resize_reservation(
        db, reservation_id, body.start, body.end, organization_id=organization_id,
    )
    invalidate_occupancy(organization_id)
    return reservation


@router_v1.delete(
    "/reservations/{reservation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(reservation_rate_limiter)],
)
def delete_reservation(
    reservation_id: str,
    db: Session = Depends(get_db),
    claims: Dict = Depends(staff_roles),
):
    organization_id = claims["organization_id"]
    repository.delete_reservation(db, reservation_id, organization_id)
    invalidate_occupancy(organization_id)
    logger.info("reservation deleted", organization_id=organization_id, reservation_id=reservation_id)
    return


@router_v1.post(
    "/reservations/{reservation_id}/checkin",
    response_model=schemas.ReservationRead,
    dependencies=[Depends(reservation_rate_limiter)],
)
def checkin_reservation(
    reservation_id: str,
    db: Session = Depends(get_db),
    claims: Dict = Depends(staff_roles),
):
    reservation = repository.perform_checkin(db, reservation_id, claims["organization_id"])
    invalidate_occupancy(claims["organization_id"])
    return reservation


@router_v1.post(
    "/reservations/{reservation_id}/checkout",
    response_model=schemas.ReservationRead,
    dependencies=[Depends(reservation_rate_limiter)],
)
def checkout_reservation(
    reservation_id: str,
    db: Session = Depends(get_db),
    claims: Dict = Depends(staff_roles),
):
    reservation = repository.perform_checkout(db, reservation_id, claims["organization_id"])
    invalidate_occupancy(claims["organization_id"])
    return reservation


# ---------- Blocks ----------


@router_v1.post(
    "/blocks",
    response_model=schemas.BlockCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(reservation_rate_limiter)],
)
def create_block(
    body: schemas.BlockCreate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(admin_or_manager),
):
    """
    Block a space for maintenance, cleaning or a deliberate hold-out.

    Blocks are not checked against existing reservations.
    """
    organization_id = claims["organization_id"]
    block = repository.create_block(
        db,
        organization_id=organization_id,
        space_id=body.space_id,
        date_from=body.date_from,
        date_to=body.date_to,
        block_type=body.block_type,
        reason=body.reason,
    )
    invalidate_occupancy(organization_id)
    return block


app.include_router(router_v1)
