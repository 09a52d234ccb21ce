import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class SpaceStatus(str, PyEnum):
    """
    Operational status of a bookable space.

    Values
    ------
    available
        Ready to be assigned.
    occupied
        A guest is currently checked in.
    reserved
        Held for an upcoming arrival.
    maintenance
        Under maintenance work.
    cleaning
        Being cleaned between stays.
    out_of_order
        Not usable until further notice.
    """
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    OUT_OF_ORDER = "out_of_order"


class ReservationStatus(str, PyEnum):
    """
    Lifecycle status of a reservation.

    Values
    ------
    pending
        Captured but not yet reviewed.
    tentative
        Held without guarantee.
    confirmed
        Guaranteed and holding the space.
    checked_in
        The guest has arrived.
    checked_out
        The guest has left.
    cancelled
        Cancelled; never blocks a space.
    no_show
        The guest did not arrive.
    """
    PENDING = "pending"
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class BlockType(str, PyEnum):
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    OUT_OF_ORDER = "out_of_order"
    RESERVED = "reserved"
    OTHER = "other"


class SpaceType(Base):
    __tablename__ = "space_types"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(Integer, index=True, nullable=False)
    name = Column(String(100), nullable=False)


class Space(Base):
    """
    SQLAlchemy model representing a bookable space (room, desk, parking spot).

    Attributes
    ----------
    id : str
        Primary key (UUID string).
    organization_id : int
        Owning organization / branch.
    label : str
        Display label shown on the tape chart (e.g. '101').
    floor_zone : str
        Optional floor or zone grouping tag.
    status : SpaceStatus
        Current operational status.
    space_type_id : str
        Optional link to the space type.
    """
    __tablename__ = "spaces"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(Integer, index=True, nullable=False)
    label = Column(String(100), nullable=False, index=True)
    floor_zone = Column(String(100), nullable=True)
    status = Column(Enum(SpaceStatus), nullable=False, default=SpaceStatus.AVAILABLE)
    space_type_id = Column(String(36), ForeignKey("space_types.id"), nullable=True)

    space_type = relationship("SpaceType")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(Integer, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)


class Reservation(Base):
    """
    SQLAlchemy model representing a reservation over the interval [checkin, checkout).

    A reservation points at its space either through ``space_id`` or through
    one or more ``ReservationSpace`` rows.

    Attributes
    ----------
    id : str
        Primary key (UUID string).
    code : str
        Optional human-readable code; derived from the id when missing.
    checkin : datetime
        Start of the stay (inclusive).
    checkout : datetime
        End of the stay (exclusive).
    status : ReservationStatus
        Lifecycle status.
    actual_checkin_at, actual_checkout_at : datetime
        Instants recorded by the check-in / check-out flows.
    """
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(Integer, index=True, nullable=False)
    code = Column(String(32), nullable=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    space_id = Column(String(36), ForeignKey("spaces.id"), nullable=True, index=True)
    checkin = Column(DateTime, nullable=False, index=True)
    checkout = Column(DateTime, nullable=False, index=True)
    status = Column(Enum(ReservationStatus), nullable=False, default=ReservationStatus.CONFIRMED)
    occupant_count = Column(Integer, nullable=False, default=1)
    total_estimated = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)
    actual_checkin_at = Column(DateTime, nullable=True)
    actual_checkout_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer")
    space = relationship("Space")
    space_links = relationship(
        "ReservationSpace",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationSpace.position",
    )


class ReservationSpace(Base):
    __tablename__ = "reservation_spaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=False, index=True)
    space_id = Column(String(36), ForeignKey("spaces.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    reservation = relationship("Reservation", back_populates="space_links")
    space = relationship("Space")


class ReservationBlock(Base):
    """
    SQLAlchemy model for an administrative block over [date_from, date_to).

    Attributes
    ----------
    space_id : str
        Blocked space.
    date_from : date
        First blocked day.
    date_to : date
        Day the block ends (exclusive).
    block_type : BlockType
        Category of the block.
    reason : str
        Optional free-text reason.
    """
    __tablename__ = "reservation_blocks"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(Integer, index=True, nullable=False)
    space_id = Column(String(36), ForeignKey("spaces.id"), nullable=False, index=True)
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    block_type = Column(Enum(BlockType), nullable=False, default=BlockType.OTHER)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
