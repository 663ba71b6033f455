from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import threading
from typing import Any, Callable, Iterable

from .booking import (
    RESERVATION_STATUSES,
    STATUS_CONFIRMED,
    STATUS_REQUESTED,
    Reservation,
    build_occupied,
    find_conflicting_dates,
    has_conflict,
    iter_dates,
    normalize_statuses,
    to_calendar_date,
)
from .errors import PersistenceUnavailableError, ReservationNotFoundError, ResourceNotFoundError
from .store import ReservationStore, normalize_resource_id

logger = logging.getLogger(__name__)

ADMISSION_RECEIVED = "received"
ADMISSION_CHECKING = "checking"
ADMISSION_ACCEPTED = "accepted"
ADMISSION_REJECTED = "rejected"
ADMISSION_ABORTED = "aborted"

REASON_CONFLICT = "conflict"
REASON_CANCELLED = "cancelled"
REASON_LOCK_TIMEOUT = "lock_timeout"
REASON_RESOURCE_NOT_FOUND = "resource_not_found"
REASON_RESERVATION_NOT_FOUND = "reservation_not_found"
REASON_PERSISTENCE_UNAVAILABLE = "persistence_unavailable"


@dataclass(frozen=True)
class AdmissionResult:
    state: str
    resource_id: str
    check_in: date | None
    check_out: date | None
    reservation: Reservation | None = None
    conflicting_dates: tuple[date, ...] = ()
    reason: str | None = None
    error: Exception | None = None
    transitions: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.state == ADMISSION_ACCEPTED

    @property
    def rejected(self) -> bool:
        return self.state == ADMISSION_REJECTED

    @property
    def aborted(self) -> bool:
        return self.state == ADMISSION_ABORTED

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "state": self.state,
            "resource_id": self.resource_id,
            "check_in": self.check_in.isoformat() if self.check_in else None,
            "check_out": self.check_out.isoformat() if self.check_out else None,
        }
        if self.reservation is not None:
            payload["reservation"] = self.reservation.to_dict()
        if self.conflicting_dates:
            payload["conflicting_dates"] = [day.isoformat() for day in self.conflicting_dates]
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.error is not None:
            payload["message"] = str(self.error)
        return payload


class ReservationAdmissionGate:
    """Accept or reject new stays so that no two admitted stays share a date.

    Each resource has its own lock covering the read of existing reservations,
    the conflict check and the write of the new reservation. Resources never
    wait on each other.

    Locks are created on first use and kept for the life of the gate, one per
    resource id it has been asked about, unknown ids included. A gate is meant
    for a bounded catalogue of resources; build a new gate to start over.
    """

    def __init__(
        self,
        store: ReservationStore,
        include_statuses: Iterable[str] | None = None,
        lock_timeout: float | None = None,
        admitted_status: str = STATUS_CONFIRMED,
    ) -> None:
        if admitted_status not in RESERVATION_STATUSES:
            raise ValueError(f"Unknown reservation status: {admitted_status!r}")
        if lock_timeout is not None and lock_timeout < 0:
            raise ValueError("lock_timeout must not be negative")

        self.store = store
        self.include_statuses = normalize_statuses(include_statuses)
        self.lock_timeout = lock_timeout
        self.admitted_status = admitted_status
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def resource_lock(self, resource_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[resource_id] = lock
            return lock

    def admit(
        self,
        resource_id: str,
        check_in: date,
        check_out: date,
        *,
        status: str | None = None,
        guest_name: str | None = None,
        notes: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AdmissionResult:
        resource_id = normalize_resource_id(resource_id)
        check_in, check_out = _validated_range(check_in, check_out)
        effective_status = status or self.admitted_status
        if effective_status not in RESERVATION_STATUSES:
            raise ValueError(f"Unknown reservation status: {effective_status!r}")

        def commit() -> Reservation:
            return self.store.create_reservation(
                resource_id,
                check_in,
                check_out,
                effective_status,
                guest_name=guest_name,
                notes=notes,
            )

        return self._run(resource_id, check_in, check_out, commit, cancel_event=cancel_event)

    def reschedule(
        self,
        reservation_id: str,
        check_in: date,
        check_out: date,
        *,
        cancel_event: threading.Event | None = None,
    ) -> AdmissionResult:
        """Move an existing reservation to new dates, ignoring its own current stay."""
        check_in, check_out = _validated_range(check_in, check_out)
        current, failure = self._lookup(reservation_id, check_in, check_out)
        if failure is not None:
            return failure

        def commit() -> Reservation:
            return self.store.reschedule_reservation(reservation_id, check_in, check_out)

        return self._run(
            current.resource_id,
            check_in,
            check_out,
            commit,
            cancel_event=cancel_event,
            exclude_reservation_id=reservation_id,
        )

    def confirm(
        self,
        reservation_id: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> AdmissionResult:
        """Promote a requested stay to confirmed when none of its dates are taken."""
        current, failure = self._lookup(reservation_id, None, None)
        if failure is not None:
            return failure
        if current.status != STATUS_REQUESTED:
            raise ValueError(f"Only requested reservations can be confirmed, not {current.status!r}")

        def commit() -> Reservation:
            return self.store.confirm_reservation(reservation_id)

        return self._run(
            current.resource_id,
            current.check_in,
            current.check_out,
            commit,
            cancel_event=cancel_event,
            exclude_reservation_id=reservation_id,
        )

    def _lookup(
        self,
        reservation_id: str,
        check_in: date | None,
        check_out: date | None,
    ) -> tuple[Reservation | None, AdmissionResult | None]:
        try:
            current = self.store.get_reservation(reservation_id)
        except PersistenceUnavailableError as error:
            return None, _aborted("", check_in, check_out, REASON_PERSISTENCE_UNAVAILABLE, error, [ADMISSION_RECEIVED])
        if current is None:
            error = ReservationNotFoundError(f"Unknown reservation: {reservation_id}")
            return None, _aborted("", check_in, check_out, REASON_RESERVATION_NOT_FOUND, error, [ADMISSION_RECEIVED])
        return current, None

    def _run(
        self,
        resource_id: str,
        check_in: date,
        check_out: date,
        commit: Callable[[], Reservation],
        *,
        cancel_event: threading.Event | None = None,
        exclude_reservation_id: str | None = None,
    ) -> AdmissionResult:
        transitions = [ADMISSION_RECEIVED]
        if _is_cancelled(cancel_event):
            return _aborted(resource_id, check_in, check_out, REASON_CANCELLED, None, transitions)

        lock = self.resource_lock(resource_id)
        if not self._acquire(lock):
            return _aborted(resource_id, check_in, check_out, REASON_LOCK_TIMEOUT, None, transitions)

        try:
            if _is_cancelled(cancel_event):
                return _aborted(resource_id, check_in, check_out, REASON_CANCELLED, None, transitions)

            transitions.append(ADMISSION_CHECKING)
            try:
                existing = self.store.list_reservations(resource_id)
            except (ResourceNotFoundError, PersistenceUnavailableError) as error:
                return _aborted(resource_id, check_in, check_out, _reason_for(error), error, transitions)

            if _is_cancelled(cancel_event):
                return _aborted(resource_id, check_in, check_out, REASON_CANCELLED, None, transitions)

            others = [row for row in existing if row.reservation_id != exclude_reservation_id]
            index = build_occupied(others, self.include_statuses)
            if has_conflict(check_in, check_out, index):
                transitions.append(ADMISSION_REJECTED)
                conflicts = tuple(find_conflicting_dates(check_in, check_out, index))
                logger.info(
                    "Rejected stay %s..%s on %s: %d conflicting date(s)",
                    check_in.isoformat(),
                    check_out.isoformat(),
                    resource_id,
                    len(conflicts),
                )
                return AdmissionResult(
                    state=ADMISSION_REJECTED,
                    resource_id=resource_id,
                    check_in=check_in,
                    check_out=check_out,
                    conflicting_dates=conflicts,
                    reason=REASON_CONFLICT,
                    transitions=tuple(transitions),
                )

            # Past the verdict: cancel_event is no longer consulted.
            try:
                reservation = commit()
            except (ResourceNotFoundError, PersistenceUnavailableError) as error:
                return _aborted(resource_id, check_in, check_out, _reason_for(error), error, transitions)

            transitions.append(ADMISSION_ACCEPTED)
            logger.info(
                "Accepted stay %s..%s on %s as %s",
                check_in.isoformat(),
                check_out.isoformat(),
                resource_id,
                reservation.reservation_id,
            )
            return AdmissionResult(
                state=ADMISSION_ACCEPTED,
                resource_id=resource_id,
                check_in=check_in,
                check_out=check_out,
                reservation=reservation,
                transitions=tuple(transitions),
            )
        finally:
            lock.release()

    def _acquire(self, lock: threading.Lock) -> bool:
        if self.lock_timeout is None:
            return lock.acquire()
        return lock.acquire(timeout=self.lock_timeout)


def _validated_range(check_in: date, check_out: date) -> tuple[date, date]:
    check_in = to_calendar_date(check_in, "check_in")
    check_out = to_calendar_date(check_out, "check_out")
    iter_dates(check_in, check_out)
    return check_in, check_out


def _is_cancelled(cancel_event: threading.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _reason_for(error: Exception) -> str:
    if isinstance(error, ReservationNotFoundError):
        return REASON_RESERVATION_NOT_FOUND
    if isinstance(error, ResourceNotFoundError):
        return REASON_RESOURCE_NOT_FOUND
    return REASON_PERSISTENCE_UNAVAILABLE


def _aborted(
    resource_id: str,
    check_in: date | None,
    check_out: date | None,
    reason: str,
    error: Exception | None,
    transitions: list[str],
) -> AdmissionResult:
    logger.warning(
        "Aborted stay %s..%s on %s: %s%s",
        check_in,
        check_out,
        resource_id or "<unknown>",
        reason,
        f" ({error})" if error is not None else "",
    )
    return AdmissionResult(
        state=ADMISSION_ABORTED,
        resource_id=resource_id,
        check_in=check_in,
        check_out=check_out,
        reason=reason,
        error=error,
        transitions=tuple(transitions) + (ADMISSION_ABORTED,),
    )
