from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from tapechart_service import models, repository
from tapechart_service.database import Base, SessionLocal, engine
from tapechart_service.errors import FetchError, InvalidRangeError, ReservationNotFoundError, SpaceNotFoundError

ORG = 3


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    session.add_all([
        models.Space(id="A", organization_id=ORG, label="B-2"),
        models.Space(id="B", organization_id=ORG, label="A-1"),
    ])
    session.commit()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


def test_fetch_window_orders_spaces_and_skips_cancelled(db):
    repository.create_reservation(db, ORG, "A", datetime(2024, 6, 1), datetime(2024, 6, 3))
    repository.create_reservation(
        db, ORG, "B", datetime(2024, 6, 1), datetime(2024, 6, 3),
        status=models.ReservationStatus.CANCELLED,
    )

    window = repository.fetch_window(db, ORG, date(2024, 6, 1), date(2024, 6, 2))

    assert [s.label for s in window.spaces] == ["A-1", "B-2"]
    assert [b.space_id for b in window.bookings] == ["A"]
    assert window.blocks == []


def test_fetch_window_rejects_reversed_range(db):
    with pytest.raises(InvalidRangeError):
        repository.fetch_window(db, ORG, date(2024, 6, 2), date(2024, 6, 1))


def test_fetch_error_wraps_driver_error():
    class BrokenSession:
        def query(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("down"))

    with pytest.raises(FetchError) as info:
        repository.fetch_window(BrokenSession(), ORG, date(2024, 6, 1), date(2024, 6, 2))

    assert info.value.collection == "spaces"
    assert isinstance(info.value.__cause__, OperationalError)


def test_fetch_error_on_a_later_read_fails_the_whole_window(db, monkeypatch):
    def broken_blocks(*args, **kwargs):
        raise FetchError("blocks")

    monkeypatch.setattr(repository, "fetch_blocks", broken_blocks)

    with pytest.raises(FetchError):
        repository.fetch_window(db, ORG, date(2024, 6, 1), date(2024, 6, 2))


def test_move_replaces_join_rows(db):
    reservation = models.Reservation(
        organization_id=ORG,
        checkin=datetime(2024, 6, 1),
        checkout=datetime(2024, 6, 3),
    )
    reservation.space_links.append(models.ReservationSpace(space_id="A", position=0))
    reservation.space_links.append(models.ReservationSpace(space_id="B", position=1))
    db.add(reservation)
    db.commit()

    assert repository.reservation_space_ids(db, reservation.id) == ("A", "B")

    repository.move_reservation(db, reservation.id, "B", datetime(2024, 6, 4), datetime(2024, 6, 6))

    assert repository.reservation_space_ids(db, reservation.id) == ("B",)
    assert db.query(models.ReservationSpace).count() == 1


def test_delete_removes_join_rows(db):
    reservation = repository.create_reservation(db, ORG, "A", datetime(2024, 6, 1), datetime(2024, 6, 3))

    repository.delete_reservation(db, reservation.id)

    assert db.query(models.Reservation).count() == 0
    assert db.query(models.ReservationSpace).count() == 0
    with pytest.raises(ReservationNotFoundError):
        repository.get_reservation_details(db, reservation.id)


def test_active_bookings_only_returns_confirmed_and_checked_in(db):
    for status in (
        models.ReservationStatus.CONFIRMED,
        models.ReservationStatus.CHECKED_IN,
        models.ReservationStatus.TENTATIVE,
        models.ReservationStatus.NO_SHOW,
    ):
        repository.create_reservation(db, ORG, "A", datetime(2024, 6, 1), datetime(2024, 6, 2), status=status)

    active = repository.fetch_active_bookings(db, ORG, date(2024, 6, 1), date(2024, 6, 1))

    assert sorted(b.status for b in active) == ["checked_in", "confirmed"]
    assert repository.count_spaces(db, ORG) == 2


def test_get_space_is_scoped_to_the_organization(db):
    db.add(models.Space(id="F", organization_id=ORG + 1, label="F-1"))
    db.commit()

    assert repository.get_space(db, "A", ORG).label == "B-2"
    with pytest.raises(SpaceNotFoundError):
        repository.get_space(db, "F", ORG)
    with pytest.raises(SpaceNotFoundError):
        repository.get_space(db, "missing", ORG)


def test_writes_on_a_foreign_space_are_refused(db):
    db.add(models.Space(id="F", organization_id=ORG + 1, label="F-1"))
    db.commit()

    with pytest.raises(SpaceNotFoundError):
        repository.create_reservation(db, ORG, "F", datetime(2024, 6, 1), datetime(2024, 6, 2))
    with pytest.raises(SpaceNotFoundError):
        repository.create_block(db, ORG, "F", date(2024, 6, 1), date(2024, 6, 2), models.BlockType.OTHER)

    assert db.query(models.Reservation).count() == 0
    assert db.query(models.ReservationBlock).count() == 0


def test_active_bookings_ignore_rows_pointing_at_foreign_spaces(db):
    db.add(models.Space(id="F", organization_id=ORG + 1, label="F-1"))
    db.add(models.Reservation(
        id="LEGACY",
        organization_id=ORG,
        space_id="F",
        checkin=datetime(2024, 6, 1),
        checkout=datetime(2024, 6, 2),
        status=models.ReservationStatus.CONFIRMED,
    ))
    db.commit()
    repository.create_reservation(db, ORG, "A", datetime(2024, 6, 1), datetime(2024, 6, 2))

    active = repository.fetch_active_bookings(db, ORG, date(2024, 6, 1), date(2024, 6, 1))

    assert [b.space_id for b in active] == ["A"]
