class TapeChartError(Exception):
    """Base class for errors raised by the tape chart service."""


class FetchError(TapeChartError):
    """
    Reading spaces, reservations or blocks from the backing store failed.

    The original driver exception is kept as ``__cause__``.
    """

    def __init__(self, collection: str, message: str = ""):
        self.collection = collection
        super().__init__(message or f"Failed to fetch {collection}")


class InvalidRangeError(TapeChartError, ValueError):
    """A date window or interval is empty or reversed."""


class ReservationNotFoundError(TapeChartError):
    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} not found")


class SpaceNotFoundError(TapeChartError):
    """The space does not exist in the caller's organization."""

    def __init__(self, space_id: str):
        self.space_id = space_id
        super().__init__(f"Space {space_id} not found")
