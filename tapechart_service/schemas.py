from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .engine import as_datetime
from .models import BlockType, ReservationStatus


class SpaceRead(BaseModel):
    """Space row as shown on the tape chart."""
    id: str
    label: str
    resource_type_name: str
    zone_tag: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


class BookingOccurrenceRead(BaseModel):
    """
    One reservation placed on one space.

    A reservation spread over several spaces appears once per space.
    """
    id: str
    code: str
    occupant_name: str
    space_id: str
    start: datetime
    end: datetime
    status: str
    color: str

    model_config = ConfigDict(from_attributes=True)


class BlockRead(BaseModel):
    id: str
    space_id: str
    start: date
    end: date
    category: str
    reason: Optional[str] = None
    color: str

    model_config = ConfigDict(from_attributes=True)


class TapeChartRead(BaseModel):
    spaces: List[SpaceRead]
    bookings: List[BookingOccurrenceRead]
    blocks: List[BlockRead]

    model_config = ConfigDict(from_attributes=True)


class OccupancyDayRead(BaseModel):
    date: str
    occupied_count: int
    total_count: int
    percentage: int

    model_config = ConfigDict(from_attributes=True)


class IntervalBase(BaseModel):
    """
    Base schema for a half-open interval [start, end).

    Shared by the conflict check and the reservation mutations.
    """
    start: datetime = Field(...)
    end: datetime = Field(...)

    @model_validator(mode="after")
    def check_order(self):
        # aware bounds become naive UTC so mixed inputs compare
        self.start = as_datetime(self.start)
        self.end = as_datetime(self.end)
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class ConflictCheckRequest(IntervalBase):
    space_id: str = Field(..., min_length=1)
    exclude_booking_id: Optional[str] = None
    release_no_show: bool = False


class ConflictResultRead(BaseModel):
    conflict: bool
    kind: Optional[str] = None
    detail: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ReservationCreate(IntervalBase):
    space_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    code: Optional[str] = Field(default=None, max_length=32)
    status: ReservationStatus = ReservationStatus.CONFIRMED
    occupant_count: int = Field(default=1, ge=1)
    notes: Optional[str] = None


class ReservationMove(IntervalBase):
    space_id: str = Field(..., min_length=1)


class ReservationResize(IntervalBase):
    """Schema for changing the check-in / check-out of a reservation in place."""
    pass


class ReservationRead(BaseModel):
    id: str
    code: Optional[str] = None
    space_id: Optional[str] = None
    customer_id: Optional[str] = None
    checkin: datetime
    checkout: datetime
    status: ReservationStatus
    occupant_count: int
    notes: Optional[str] = None
    actual_checkin_at: Optional[datetime] = None
    actual_checkout_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReservationDetails(BaseModel):
    id: str
    code: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_id: Optional[str] = None
    space_id: Optional[str] = None
    space_label: Optional[str] = None
    checkin: datetime
    checkout: datetime
    status: ReservationStatus
    occupant_count: int
    total_estimated: Optional[Decimal] = None
    notes: Optional[str] = None
    actual_checkin_at: Optional[datetime] = None
    actual_checkout_at: Optional[datetime] = None


class BlockCreate(BaseModel):
    """
    Schema for creating an administrative block over [date_from, date_to).
    """
    space_id: str = Field(..., min_length=1)
    date_from: date
    date_to: date
    block_type: BlockType = BlockType.OTHER
    reason: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def check_order(self):
        if self.date_to <= self.date_from:
            raise ValueError("date_to must be after date_from")
        return self


class BlockCreated(BaseModel):
    id: str
    space_id: str
    date_from: date
    date_to: date
    block_type: BlockType
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
