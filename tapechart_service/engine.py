"""
Availability engine for the tape chart.

Everything in this module is a pure function of its arguments: it reads
snapshots of spaces, bookings and blocks that the caller already fetched
and never touches the database.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import InvalidRangeError
from .models import BlockType, ReservationStatus

DEFAULT_COLOR = "#6b7280"

STATUS_COLORS = {
    ReservationStatus.PENDING: "#a855f7",
    ReservationStatus.TENTATIVE: "#f59e0b",
    ReservationStatus.CONFIRMED: "#3b82f6",
    ReservationStatus.CHECKED_IN: "#22c55e",
    ReservationStatus.CHECKED_OUT: "#6b7280",
    ReservationStatus.CANCELLED: "#ef4444",
    ReservationStatus.NO_SHOW: "#dc2626",
}

BLOCK_COLORS = {
    BlockType.MAINTENANCE: "#ef4444",
    BlockType.CLEANING: "#f59e0b",
    BlockType.OUT_OF_ORDER: "#dc2626",
    BlockType.RESERVED: "#8b5cf6",
    BlockType.OTHER: "#6b7280",
}

ACTIVE_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN})


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def status_color(status) -> str:
    """Map a reservation status to its tape chart color; unknown values get the neutral color."""
    member = _coerce(ReservationStatus, status)
    if member is None:
        return DEFAULT_COLOR
    return STATUS_COLORS[member]


def block_color(category) -> str:
    """Map a block category to its tape chart color; unknown values get the neutral color."""
    member = _coerce(BlockType, category)
    if member is None:
        return DEFAULT_COLOR
    return BLOCK_COLORS[member]


def _value(enum_or_str) -> str:
    return enum_or_str.value if isinstance(enum_or_str, (ReservationStatus, BlockType)) else str(enum_or_str)


def as_datetime(value: Union[date, datetime, str]) -> datetime:
    """
    Normalize a date, datetime or ISO string to a naive UTC datetime.

    Plain dates become midnight of that day so that date-only blocks can be
    compared with timestamped reservations.
    """
    if isinstance(value, str):
        if value.endswith(("Z", "z")):
            # fromisoformat only accepts the Zulu suffix from 3.11
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


def as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    if isinstance(value, datetime):
        return value.date()
    return value


# ---------- Records ----------


@dataclass(frozen=True)
class SpaceRecord:
    id: str
    label: str
    resource_type_name: str
    zone_tag: Optional[str]
    status: str


@dataclass(frozen=True)
class BookingOccurrence:
    """One (booking, space) pair over the half-open interval [start, end)."""
    id: str
    code: str
    occupant_name: str
    space_id: str
    start: datetime
    end: datetime
    status: str
    color: str


@dataclass(frozen=True)
class BlockRecord:
    id: str
    space_id: str
    start: date
    end: date
    category: str
    reason: Optional[str]
    color: str


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    kind: Optional[str] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class OccupancyDay:
    date: str
    occupied_count: int
    total_count: int
    percentage: int


@dataclass
class TapeChartWindow:
    spaces: List[SpaceRecord] = field(default_factory=list)
    bookings: List[BookingOccurrence] = field(default_factory=list)
    blocks: List[BlockRecord] = field(default_factory=list)


# ---------- Booking to space association ----------


@dataclass(frozen=True)
class DirectSpace:
    space_id: str


@dataclass(frozen=True)
class JoinedSpaces:
    space_ids: Tuple[str, ...]

    def __post_init__(self):
        if not self.space_ids:
            raise ValueError("JoinedSpaces needs at least one space id")


SpaceRef = Union[DirectSpace, JoinedSpaces]


def resolve_space_ref(direct_space_id: Optional[str], joined_space_ids: Iterable[str] = ()) -> Optional[SpaceRef]:
    """
    Collapse the two ways a booking can point at its spaces into one reference.

    The direct foreign key comes first, then join rows in their stored order;
    duplicates are dropped. Returns None when the booking has no space at all.
    """
    ordered = []
    if direct_space_id:
        ordered.append(direct_space_id)
    for space_id in joined_space_ids:
        if space_id and space_id not in ordered:
            ordered.append(space_id)

    if not ordered:
        return None
    if len(ordered) == 1 and ordered[0] == direct_space_id:
        return DirectSpace(direct_space_id)
    return JoinedSpaces(tuple(ordered))


def space_ids_of(ref: Optional[SpaceRef]) -> Tuple[str, ...]:
    if ref is None:
        return ()
    if isinstance(ref, DirectSpace):
        return (ref.space_id,)
    return ref.space_ids


def flatten_booking(
    booking_id: str,
    code: str,
    occupant_name: str,
    space_ref: Optional[SpaceRef],
    start,
    end,
    status,
) -> List[BookingOccurrence]:
    """Emit one occurrence per space the booking touches, colored by status."""
    status_value = _value(status)
    color = status_color(status)
    return [
        BookingOccurrence(
            id=booking_id,
            code=code,
            occupant_name=occupant_name,
            space_id=space_id,
            start=as_datetime(start),
            end=as_datetime(end),
            status=status_value,
            color=color,
        )
        for space_id in space_ids_of(space_ref)
    ]


def make_block(block_id: str, space_id: str, start, end, category, reason: Optional[str]) -> BlockRecord:
    return BlockRecord(
        id=block_id,
        space_id=space_id,
        start=as_date(start),
        end=as_date(end),
        category=_value(category),
        reason=reason,
        color=block_color(category),
    )


# ---------- Conflict detection ----------


BlockingPredicate = Callable[[BookingOccurrence], bool]


def default_blocking_predicate(booking: BookingOccurrence) -> bool:
    """Every booking except a cancelled one holds its space."""
    return booking.status != ReservationStatus.CANCELLED.value


def exclude_no_show(booking: BookingOccurrence) -> bool:
    """Release the slot of no-show bookings as well as cancelled ones."""
    return booking.status not in (ReservationStatus.CANCELLED.value, ReservationStatus.NO_SHOW.value)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Strict half-open overlap: [a, b) and [c, d) overlap iff a < d and c < b."""
    return start_a < end_b and start_b < end_a


def check_conflict(
    bookings: Sequence[BookingOccurrence],
    blocks: Sequence[BlockRecord],
    space_id: str,
    interval_start,
    interval_end,
    exclude_booking_id: Optional[str] = None,
    is_blocking: BlockingPredicate = default_blocking_predicate,
) -> ConflictResult:
    """
    Check whether [interval_start, interval_end) is free on a space.

    Bookings are scanned first, then blocks; the first overlap found wins.
    Back-to-back intervals do not conflict.

    Parameters
    ----------
    bookings : Sequence[BookingOccurrence]
        Flattened bookings of the current window.
    blocks : Sequence[BlockRecord]
        Blocks of the current window.
    space_id : str
        Space the candidate interval targets.
    interval_start, interval_end
        Candidate interval (date, datetime or ISO string).
    exclude_booking_id : Optional[str]
        Booking to ignore, used when moving or resizing that booking.
    is_blocking : Callable
        Decides which bookings hold their space. Defaults to everything
        but cancelled bookings.

    Returns
    -------
    ConflictResult
        ``conflict`` is False and ``kind`` is None when the slot is free.

    Raises
    ------
    InvalidRangeError
        If interval_end is not strictly after interval_start.
    """
    start = as_datetime(interval_start)
    end = as_datetime(interval_end)
    if end <= start:
        raise InvalidRangeError("interval end must be after interval start")

    for booking in bookings:
        if booking.space_id != space_id:
            continue
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if not is_blocking(booking):
            continue
        if overlaps(start, end, booking.start, booking.end):
            return ConflictResult(
                conflict=True,
                kind="reservation",
                detail=f"Conflicts with reservation {booking.code} ({booking.occupant_name})",
            )

    for block in blocks:
        if block.space_id != space_id:
            continue
        if overlaps(start, end, as_datetime(block.start), as_datetime(block.end)):
            return ConflictResult(
                conflict=True,
                kind="block",
                detail=f"Conflicts with block: {block.reason or block.category}",
            )

    return ConflictResult(conflict=False, kind=None)


# ---------- Occupancy ----------


class OccupancySeries:
    """
    Lazy per-day occupancy over an inclusive day range.

    Iterating computes each day on demand; the series can be iterated any
    number of times and yields the same values each time.
    """

    def __init__(self, range_start: date, range_end: date, total_count: int, bookings: Sequence[BookingOccurrence]):
        self.range_start = range_start
        self.range_end = range_end
        self.total_count = total_count
        self._spans = [
            (b.space_id, b.start.date(), b.end.date())
            for b in bookings
            if _coerce(ReservationStatus, b.status) in ACTIVE_STATUSES
        ]

    def __len__(self) -> int:
        if self.total_count == 0:
            return 0
        return (self.range_end - self.range_start).days + 1

    def __iter__(self) -> Iterator[OccupancyDay]:
        if self.total_count == 0:
            return
        day = self.range_start
        while day <= self.range_end:
            occupied = {space_id for space_id, first, last in self._spans if first <= day < last}
            # never more occupied spaces than the inventory holds
            count = min(len(occupied), self.total_count)
            yield OccupancyDay(
                date=day.isoformat(),
                occupied_count=count,
                total_count=self.total_count,
                percentage=round(count / self.total_count * 100),
            )
            day += timedelta(days=1)


def compute_occupancy(range_start, range_end, total_space_count: int, bookings: Sequence[BookingOccurrence]) -> OccupancySeries:
    """
    Count, per calendar day in [range_start, range_end], the distinct spaces
    with a confirmed or checked-in booking covering that day.

    Raises
    ------
    InvalidRangeError
        If range_end is before range_start or the space count is negative.
    """
    first = as_date(range_start)
    last = as_date(range_end)
    if last < first:
        raise InvalidRangeError("range end must not be before range start")
    if total_space_count < 0:
        raise InvalidRangeError("total space count must not be negative")
    return OccupancySeries(first, last, total_space_count, list(bookings))


def generate_date_range(start_date, day_count: int) -> List[str]:
    """Return ``day_count`` consecutive ISO dates starting at ``start_date``."""
    if day_count <= 0:
        raise InvalidRangeError("day_count must be positive")
    first = as_date(start_date)
    return [(first + timedelta(days=offset)).isoformat() for offset in range(day_count)]


def validate_window(range_start, range_end) -> Tuple[date, date]:
    first = as_date(range_start)
    last = as_date(range_end)
    if last < first:
        raise InvalidRangeError("range end must not be before range start")
    return first, last
