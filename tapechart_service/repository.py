from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from common.logging_config import get_logger

from . import models
from .engine import (
    TapeChartWindow,
    BookingOccurrence,
    SpaceRecord,
    as_datetime,
    flatten_booking,
    make_block,
    resolve_space_ref,
    space_ids_of,
    validate_window,
)
from .errors import FetchError, ReservationNotFoundError, SpaceNotFoundError

logger = get_logger(__name__)

NO_CUSTOMER = "No customer"
NO_SPACE_TYPE = "Untyped"


def reservation_code(reservation: models.Reservation) -> str:
    return reservation.code or reservation.id[:8].upper()


def customer_name(customer: Optional[models.Customer]) -> str:
    if customer is None:
        return NO_CUSTOMER
    return f"{customer.first_name or ''} {customer.last_name or ''}".strip()


def _space_ref(reservation: models.Reservation):
    return resolve_space_ref(
        reservation.space_id,
        [link.space_id for link in reservation.space_links],
    )


def _occurrences(reservation: models.Reservation) -> List[BookingOccurrence]:
    return flatten_booking(
        booking_id=reservation.id,
        code=reservation_code(reservation),
        occupant_name=customer_name(reservation.customer),
        space_ref=_space_ref(reservation),
        start=reservation.checkin,
        end=reservation.checkout,
        status=reservation.status,
    )


def _window_bounds(range_start, range_end):
    first, last = validate_window(range_start, range_end)
    # range_end is an inclusive calendar day
    return first, last, as_datetime(first), as_datetime(last + timedelta(days=1))


# ---------- Reads ----------


def fetch_spaces(db: Session, organization_id: int) -> List[SpaceRecord]:
    try:
        rows = (
            db.query(models.Space)
            .options(joinedload(models.Space.space_type))
            .filter(models.Space.organization_id == organization_id)
            .order_by(models.Space.label.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("space fetch failed", organization_id=organization_id, error=str(exc))
        raise FetchError("spaces") from exc

    return [
        SpaceRecord(
            id=s.id,
            label=s.label,
            resource_type_name=s.space_type.name if s.space_type else NO_SPACE_TYPE,
            zone_tag=s.floor_zone,
            status=s.status.value,
        )
        for s in rows
    ]


def _query_reservations(db: Session, organization_id: int, window_start: datetime, window_end: datetime, statuses=None):
    q = (
        db.query(models.Reservation)
        .options(
            joinedload(models.Reservation.customer),
            selectinload(models.Reservation.space_links),
        )
        .filter(models.Reservation.organization_id == organization_id)
        .filter(models.Reservation.checkin < window_end)
        .filter(models.Reservation.checkout >= window_start)
    )
    if statuses is None:
        q = q.filter(models.Reservation.status != models.ReservationStatus.CANCELLED)
    else:
        q = q.filter(models.Reservation.status.in_(list(statuses)))
    return q.all()


def fetch_bookings(db: Session, organization_id: int, range_start, range_end, statuses=None) -> List[BookingOccurrence]:
    """
    Read reservations overlapping the inclusive window and flatten them to
    one occurrence per (reservation, space).

    Cancelled reservations are left out unless ``statuses`` names them.
    """
    _, _, window_start, window_end = _window_bounds(range_start, range_end)
    try:
        rows = _query_reservations(db, organization_id, window_start, window_end, statuses)
    except SQLAlchemyError as exc:
        logger.error("reservation fetch failed", organization_id=organization_id, error=str(exc))
        raise FetchError("reservations") from exc

    occurrences = []
    for reservation in rows:
        occurrences.extend(_occurrences(reservation))
    return occurrences


def fetch_blocks(db: Session, organization_id: int, range_start, range_end):
    first, last, _, _ = _window_bounds(range_start, range_end)
    try:
        rows = (
            db.query(models.ReservationBlock)
            .filter(models.ReservationBlock.organization_id == organization_id)
            .filter(models.ReservationBlock.date_from <= last)
            .filter(models.ReservationBlock.date_to >= first)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("block fetch failed", organization_id=organization_id, error=str(exc))
        raise FetchError("blocks") from exc

    return [
        make_block(b.id, b.space_id, b.date_from, b.date_to, b.block_type, b.reason)
        for b in rows
    ]


def fetch_window(db: Session, organization_id: int, range_start, range_end) -> TapeChartWindow:
    """
    Load spaces, bookings and blocks relevant to an inclusive day window.

    The three reads share one session so they see the same snapshot. A
    failure in any of them fails the whole window.

    Parameters
    ----------
    db : Session
        Database session.
    organization_id : int
        Organization whose tape chart is requested.
    range_start, range_end : date
        First and last displayed day.

    Returns
    -------
    TapeChartWindow
        Spaces ordered by label; bookings and blocks unordered.

    Raises
    ------
    InvalidRangeError
        If range_end is before range_start.
    FetchError
        If any underlying read fails.
    """
    validate_window(range_start, range_end)
    window = TapeChartWindow(
        spaces=fetch_spaces(db, organization_id),
        bookings=fetch_bookings(db, organization_id, range_start, range_end),
        blocks=fetch_blocks(db, organization_id, range_start, range_end),
    )
    logger.debug(
        "tape chart window fetched",
        organization_id=organization_id,
        spaces=len(window.spaces),
        bookings=len(window.bookings),
        blocks=len(window.blocks),
    )
    return window


def get_space(db: Session, space_id: str, organization_id: int) -> models.Space:
    """
    Load a space of the given organization.

    Raises
    ------
    SpaceNotFoundError
        If the id is unknown or belongs to another organization.
    """
    space = (
        db.query(models.Space)
        .filter(models.Space.id == space_id)
        .filter(models.Space.organization_id == organization_id)
        .first()
    )
    if space is None:
        raise SpaceNotFoundError(space_id)
    return space


def count_spaces(db: Session, organization_id: int) -> int:
    try:
        return db.query(models.Space).filter(models.Space.organization_id == organization_id).count()
    except SQLAlchemyError as exc:
        raise FetchError("spaces") from exc


def fetch_active_bookings(db: Session, organization_id: int, range_start, range_end) -> List[BookingOccurrence]:
    """Confirmed and checked-in occurrences on spaces of the organization's own inventory."""
    occurrences = fetch_bookings(
        db,
        organization_id,
        range_start,
        range_end,
        statuses=(models.ReservationStatus.CONFIRMED, models.ReservationStatus.CHECKED_IN),
    )
    try:
        inventory = {
            space_id
            for (space_id,) in db.query(models.Space.id).filter(models.Space.organization_id == organization_id)
        }
    except SQLAlchemyError as exc:
        raise FetchError("spaces") from exc
    return [o for o in occurrences if o.space_id in inventory]


def _get_reservation(db: Session, reservation_id: str, organization_id: Optional[int] = None) -> models.Reservation:
    q = db.query(models.Reservation).filter(models.Reservation.id == reservation_id)
    if organization_id is not None:
        q = q.filter(models.Reservation.organization_id == organization_id)
    reservation = q.first()
    if reservation is None:
        raise ReservationNotFoundError(reservation_id)
    return reservation


def reservation_space_ids(db: Session, reservation_id: str, organization_id: Optional[int] = None) -> Tuple[str, ...]:
    reservation = _get_reservation(db, reservation_id, organization_id)
    return space_ids_of(_space_ref(reservation))


def get_reservation_details(db: Session, reservation_id: str, organization_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Return the detail view of a single reservation.

    The space comes from the direct reference or, failing that, from the
    first join row.
    """
    reservation = _get_reservation(db, reservation_id, organization_id)
    customer = reservation.customer

    space_id = reservation.space_id
    space_label = None
    if not space_id and reservation.space_links:
        first_link = reservation.space_links[0]
        space_id = first_link.space_id
        space_label = first_link.space.label if first_link.space else None
    if space_id and space_label is None:
        space = db.query(models.Space).filter(models.Space.id == space_id).first()
        space_label = space.label if space else None

    return {
        "id": reservation.id,
        "code": reservation_code(reservation),
        "customer_name": customer_name(customer),
        "customer_email": customer.email if customer else None,
        "customer_phone": customer.phone if customer else None,
        "customer_id": customer.id if customer else None,
        "space_id": space_id,
        "space_label": space_label,
        "checkin": reservation.checkin,
        "checkout": reservation.checkout,
        "status": reservation.status,
        "occupant_count": reservation.occupant_count,
        "total_estimated": reservation.total_estimated,
        "notes": reservation.notes,
        "actual_checkin_at": reservation.actual_checkin_at,
        "actual_checkout_at": reservation.actual_checkout_at,
    }


# ---------- Writes ----------


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


def create_reservation(
    db: Session,
    organization_id: int,
    space_id: str,
    checkin: datetime,
    checkout: datetime,
    customer_id: Optional[str] = None,
    code: Optional[str] = None,
    status: models.ReservationStatus = models.ReservationStatus.CONFIRMED,
    occupant_count: int = 1,
    notes: Optional[str] = None,
) -> models.Reservation:
    get_space(db, space_id, organization_id)
    reservation = models.Reservation(
        organization_id=organization_id,
        space_id=space_id,
        checkin=as_datetime(checkin),
        checkout=as_datetime(checkout),
        customer_id=customer_id,
        code=code,
        status=status,
        occupant_count=occupant_count,
        notes=notes,
    )
    reservation.space_links.append(models.ReservationSpace(space_id=space_id, position=0))
    db.add(reservation)
    _commit(db)
    db.refresh(reservation)
    return reservation


def update_reservation(
    db: Session,
    reservation_id: str,
    checkin: Optional[datetime] = None,
    checkout: Optional[datetime] = None,
    space_id: Optional[str] = None,
    occupant_count: Optional[int] = None,
    notes: Optional[str] = None,
    status: Optional[models.ReservationStatus] = None,
    organization_id: Optional[int] = None,
) -> models.Reservation:
    """
    Apply a partial update. Changing the space replaces every join row with
    a single row for the new space.
    """
    reservation = _get_reservation(db, reservation_id, organization_id)

    if checkin is not None:
        reservation.checkin = as_datetime(checkin)
    if checkout is not None:
        reservation.checkout = as_datetime(checkout)
    if occupant_count is not None:
        reservation.occupant_count = occupant_count
    if notes is not None:
        reservation.notes = notes
    if status is not None:
        reservation.status = status
    if space_id is not None:
        get_space(db, space_id, reservation.organization_id)
        reservation.space_id = space_id
        reservation.space_links.clear()
        reservation.space_links.append(models.ReservationSpace(space_id=space_id, position=0))

    reservation.updated_at = datetime.utcnow()
    db.add(reservation)
    _commit(db)
    db.refresh(reservation)
    return reservation


def move_reservation(db: Session, reservation_id: str, new_space_id: str, new_checkin, new_checkout, organization_id=None):
    return update_reservation(
        db,
        reservation_id,
        checkin=new_checkin,
        checkout=new_checkout,
        space_id=new_space_id,
        organization_id=organization_id,
    )


def resize_reservation(db: Session, reservation_id: str, new_checkin, new_checkout, organization_id=None):
    return update_reservation(
        db,
        reservation_id,
        checkin=new_checkin,
        checkout=new_checkout,
        organization_id=organization_id,
    )


def delete_reservation(db: Session, reservation_id: str, organization_id: Optional[int] = None) -> None:
    reservation = _get_reservation(db, reservation_id, organization_id)
    # space_links cascade deletes the join rows ahead of the reservation
    db.delete(reservation)
    _commit(db)


def perform_checkin(db: Session, reservation_id: str, organization_id: Optional[int] = None) -> models.Reservation:
    reservation = _get_reservation(db, reservation_id, organization_id)
    now = datetime.utcnow()
    reservation.status = models.ReservationStatus.CHECKED_IN
    reservation.actual_checkin_at = now
    reservation.updated_at = now
    _commit(db)
    db.refresh(reservation)
    return reservation


def perform_checkout(db: Session, reservation_id: str, organization_id: Optional[int] = None) -> models.Reservation:
    reservation = _get_reservation(db, reservation_id, organization_id)
    now = datetime.utcnow()
    reservation.status = models.ReservationStatus.CHECKED_OUT
    reservation.actual_checkout_at = now
    reservation.updated_at = now
    _commit(db)
    db.refresh(reservation)
    return reservation


def create_block(
    db: Session,
    organization_id: int,
    space_id: str,
    date_from: date,
    date_to: date,
    block_type: models.BlockType,
    reason: Optional[str] = None,
) -> models.ReservationBlock:
    get_space(db, space_id, organization_id)
    block = models.ReservationBlock(
        organization_id=organization_id,
        space_id=space_id,
        date_from=date_from,
        date_to=date_to,
        block_type=block_type,
        reason=reason or None,
    )
    db.add(block)
    _commit(db)
    db.refresh(block)
    return block
