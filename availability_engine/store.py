from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
import threading
from typing import Protocol
from uuid import uuid4

from .booking import STATUS_CONFIRMED, Reservation, require_release_status
from .errors import PersistenceUnavailableError, ReservationNotFoundError, ResourceNotFoundError


class ReservationStore(Protocol):
    def list_reservations(self, resource_id: str) -> list[Reservation]: ...

    def create_reservation(
        self,
        resource_id: str,
        check_in: date,
        check_out: date,
        status: str = STATUS_CONFIRMED,
        *,
        guest_name: str | None = None,
        notes: str | None = None,
    ) -> Reservation: ...

    def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    def reschedule_reservation(self, reservation_id: str, check_in: date, check_out: date) -> Reservation: ...

    def update_status(self, reservation_id: str, status: str) -> Reservation: ...

    def confirm_reservation(self, reservation_id: str) -> Reservation: ...

    def register_resource(self, resource_id: str) -> str: ...

    def list_resources(self) -> list[str]: ...


class InMemoryReservationStore:
    """Process-local store, mostly for tests and for embedding the engine.

    ``fail_reads`` / ``fail_writes`` simulate an unreachable backend.
    """

    def __init__(self, resources: list[str] | None = None) -> None:
        self._resources: set[str] = set()
        self._reservations: dict[str, Reservation] = {}
        self._lock = threading.Lock()
        self.fail_reads = False
        self.fail_writes = False
        for resource_id in resources or []:
            self.register_resource(resource_id)

    def register_resource(self, resource_id: str) -> str:
        resource_id = normalize_resource_id(resource_id)
        with self._lock:
            self._resources.add(resource_id)
        return resource_id

    def list_resources(self) -> list[str]:
        with self._lock:
            return sorted(self._resources)

    def list_reservations(self, resource_id: str) -> list[Reservation]:
        if self.fail_reads:
            raise PersistenceUnavailableError("reservation store is unavailable")
        with self._lock:
            if resource_id not in self._resources:
                raise ResourceNotFoundError(f"Unknown resource: {resource_id}")
            return [row for row in self._reservations.values() if row.resource_id == resource_id]

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        with self._lock:
            return self._reservations.get(reservation_id)

    def create_reservation(
        self,
        resource_id: str,
        check_in: date,
        check_out: date,
        status: str = STATUS_CONFIRMED,
        *,
        guest_name: str | None = None,
        notes: str | None = None,
    ) -> Reservation:
        if self.fail_writes:
            raise PersistenceUnavailableError("reservation store is unavailable")

        now = datetime.now()
        record = Reservation(
            reservation_id=str(uuid4()),
            resource_id=resource_id,
            check_in=check_in,
            check_out=check_out,
            status=status,
            created_at=now,
            updated_at=now,
            guest_name=guest_name,
            notes=notes,
        )
        with self._lock:
            if resource_id not in self._resources:
                raise ResourceNotFoundError(f"Unknown resource: {resource_id}")
            self._reservations[record.reservation_id] = record
        return record

    def update_status(self, reservation_id: str, status: str) -> Reservation:
        require_release_status(status)
        if self.fail_writes:
            raise PersistenceUnavailableError("reservation store is unavailable")
        return self._set_status(reservation_id, status)

    def confirm_reservation(self, reservation_id: str) -> Reservation:
        """Mark a stay confirmed; overlap checks belong to the admission gate."""
        if self.fail_writes:
            raise PersistenceUnavailableError("reservation store is unavailable")
        return self._set_status(reservation_id, STATUS_CONFIRMED)

    def _set_status(self, reservation_id: str, status: str) -> Reservation:
        with self._lock:
            current = self._require(reservation_id)
            updated = replace(current, status=status, updated_at=datetime.now())
            self._reservations[reservation_id] = updated
        return updated

    def reschedule_reservation(self, reservation_id: str, check_in: date, check_out: date) -> Reservation:
        if self.fail_writes:
            raise PersistenceUnavailableError("reservation store is unavailable")
        with self._lock:
            current = self._require(reservation_id)
            updated = replace(current, check_in=check_in, check_out=check_out, updated_at=datetime.now())
            self._reservations[reservation_id] = updated
        return updated

    def _require(self, reservation_id: str) -> Reservation:
        current = self._reservations.get(reservation_id)
        if current is None:
            raise ReservationNotFoundError(f"Unknown reservation: {reservation_id}")
        return current


def normalize_resource_id(resource_id: str | None) -> str:
    if resource_id is None:
        raise ValueError("resource_id must not be None")

    normalized = str(resource_id).strip()
    if not normalized:
        raise ValueError("resource_id must not be empty")
    return normalized
