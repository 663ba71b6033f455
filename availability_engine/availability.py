from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from .booking import build_occupied, find_conflicting_dates, iter_dates, to_calendar_date
from .store import ReservationStore


@dataclass(frozen=True)
class AvailabilityCheck:
    resource_id: str
    start: date
    end: date
    available: bool
    conflicting_dates: tuple[date, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.available,
            "conflicting_dates": [day.isoformat() for day in self.conflicting_dates],
        }


def get_occupied_dates(
    store: ReservationStore,
    resource_id: str,
    include_statuses: Iterable[str] | None = None,
) -> set[date]:
    reservations = store.list_reservations(resource_id)
    return set(build_occupied(reservations, include_statuses).dates)


def check_availability(
    store: ReservationStore,
    resource_id: str,
    start: date,
    end: date,
    include_statuses: Iterable[str] | None = None,
) -> AvailabilityCheck:
    """Read-only availability check; takes no admission lock.

    The range is validated before the store is read.
    """
    start = to_calendar_date(start, "start")
    end = to_calendar_date(end, "end")
    iter_dates(start, end)

    index = build_occupied(store.list_reservations(resource_id), include_statuses)
    conflicts = find_conflicting_dates(start, end, index)
    return AvailabilityCheck(
        resource_id=resource_id,
        start=start,
        end=end,
        available=not conflicts,
        conflicting_dates=tuple(conflicts),
    )
