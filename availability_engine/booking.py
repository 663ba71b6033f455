from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Iterator

from .errors import InvalidRangeError

STATUS_REQUESTED = "requested"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
RESERVATION_STATUSES = frozenset({STATUS_REQUESTED, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED})
DEFAULT_INCLUDE_STATUSES = frozenset({STATUS_CONFIRMED})
# Plain status updates may only free dates; taking dates goes through the admission gate.
RELEASE_STATUSES = frozenset({STATUS_CANCELLED, STATUS_COMPLETED})

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    resource_id: str
    check_in: date
    check_out: date
    status: str = STATUS_CONFIRMED
    created_at: datetime | None = None
    updated_at: datetime | None = None
    guest_name: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "check_in", to_calendar_date(self.check_in, "check_in"))
        object.__setattr__(self, "check_out", to_calendar_date(self.check_out, "check_out"))
        if self.check_in > self.check_out:
            raise InvalidRangeError("Reservation check_in must not be later than check_out.")
        if self.status not in RESERVATION_STATUSES:
            raise ValueError(f"Unknown reservation status: {self.status!r}")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reservation_id": self.reservation_id,
            "resource_id": self.resource_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "status": self.status,
        }
        if self.created_at is not None:
            payload["created_at"] = self.created_at.isoformat(timespec="seconds")
        if self.updated_at is not None:
            payload["updated_at"] = self.updated_at.isoformat(timespec="seconds")
        if self.guest_name is not None:
            payload["guest_name"] = self.guest_name
        if self.notes is not None:
            payload["notes"] = self.notes
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        return Reservation(
            reservation_id=str(data["reservation_id"]),
            resource_id=str(data["resource_id"]),
            check_in=_parse_iso_date(data["check_in"]),
            check_out=_parse_iso_date(data["check_out"]),
            status=str(data.get("status", STATUS_CONFIRMED)),
            created_at=_parse_optional_datetime(data.get("created_at")),
            updated_at=_parse_optional_datetime(data.get("updated_at")),
            guest_name=(str(data["guest_name"]) if data.get("guest_name") is not None else None),
            notes=(str(data["notes"]) if data.get("notes") is not None else None),
        )


@dataclass(frozen=True)
class OccupiedDateSet:
    dates: frozenset[date] = frozenset()
    include_statuses: frozenset[str] = DEFAULT_INCLUDE_STATUSES

    def __contains__(self, day: object) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        return day in self.dates

    def __iter__(self) -> Iterator[date]:
        return iter(self.dates)

    def __len__(self) -> int:
        return len(self.dates)

    def sorted_dates(self) -> list[date]:
        return sorted(self.dates)


def to_calendar_date(value: Any, label: str = "date") -> date:
    """Truncate a datetime to its day; reject anything that is not a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise InvalidRangeError(f"{label} must be a calendar date, got {type(value).__name__}.")


def iter_dates(check_in: date, check_out: date) -> Iterator[date]:
    """Yield every day from check_in to check_out, both ends included.

    The range is validated when this is called, before the first date is produced.
    """
    start = to_calendar_date(check_in, "check_in")
    end = to_calendar_date(check_out, "check_out")
    if start > end:
        raise InvalidRangeError(f"check_in {start.isoformat()} is later than check_out {end.isoformat()}.")
    return _walk_days(start, end)


def _walk_days(start: date, end: date) -> Iterator[date]:
    cursor = start
    while cursor <= end:
        yield cursor
        cursor += _ONE_DAY


def expand_dates(check_in: date, check_out: date) -> list[date]:
    return list(iter_dates(check_in, check_out))


def normalize_statuses(include_statuses: Iterable[str] | None) -> frozenset[str]:
    if include_statuses is None:
        return DEFAULT_INCLUDE_STATUSES
    if isinstance(include_statuses, str):
        include_statuses = [include_statuses]

    normalized = frozenset(str(status).strip().lower() for status in include_statuses)
    unknown = sorted(normalized - RESERVATION_STATUSES)
    if unknown:
        raise ValueError(f"Unknown reservation status filter: {', '.join(unknown)}")
    return normalized


def require_release_status(status: str) -> str:
    if status not in RELEASE_STATUSES:
        raise ValueError(
            f"Status {status!r} cannot be set directly; use cancelled or completed, "
            "or confirm through the admission gate."
        )
    return status


def build_occupied(
    reservations: Iterable[Reservation],
    include_statuses: Iterable[str] | None = None,
) -> OccupiedDateSet:
    """Union the expanded stays of every reservation whose status passes the filter.

    Only confirmed reservations block the calendar unless a wider filter is given.
    """
    statuses = normalize_statuses(include_statuses)
    occupied: set[date] = set()
    for reservation in reservations:
        if reservation.status not in statuses:
            continue
        occupied.update(iter_dates(reservation.check_in, reservation.check_out))
    return OccupiedDateSet(dates=frozenset(occupied), include_statuses=statuses)


def is_occupied(day: date, index: OccupiedDateSet) -> bool:
    return to_calendar_date(day, "day") in index.dates


def has_conflict(start: date, end: date, index: OccupiedDateSet) -> bool:
    """Return True when any day of [start, end] is already occupied.

    Stops at the first occupied day.
    """
    dates = index.dates
    for day in iter_dates(start, end):
        if day in dates:
            return True
    return False


def find_conflicting_dates(start: date, end: date, index: OccupiedDateSet) -> list[date]:
    dates = index.dates
    return [day for day in iter_dates(start, end) if day in dates]


def _parse_iso_date(value: Any) -> date:
    if isinstance(value, (date, datetime)):
        return to_calendar_date(value)
    try:
        return date.fromisoformat(str(value))
    except ValueError as error:
        raise InvalidRangeError(f"Invalid calendar date: {value!r}") from error


def _parse_optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
