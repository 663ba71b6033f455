from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
import logging
from pathlib import Path
from typing import Any
import random
import shutil
import threading
from uuid import uuid4

import yaml

from .booking import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_REQUESTED,
    Reservation,
    require_release_status,
    to_calendar_date,
)
from .errors import PersistenceUnavailableError, ReservationNotFoundError, ResourceNotFoundError
from .store import normalize_resource_id

logger = logging.getLogger(__name__)

DEMO_RESOURCES = [f"villa-{i}" for i in range(1, 6)] + [f"apartment-{i}" for i in range(1, 11)]


class ReservationYamlRepository:
    """Reservation store backed by YAML files in ``base_dir``.

    ``resources.yaml`` lists known resources, ``reservations.yaml`` holds every
    reservation regardless of status and ``reservation_events.yaml`` is an
    append-only audit log.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.resources_file = self.base_dir / "resources.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self._io_lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for path in (self.resources_file, self.reservations_file, self.log_file):
                if not path.exists():
                    path.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise PersistenceUnavailableError(f"Cannot prepare data directory: {self.base_dir}") from error

    def _read_yaml_list(self, path: Path, recover: bool = False) -> list[Any]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            self._write_yaml_list(path, [])
            return []
        except (UnicodeDecodeError, yaml.YAMLError) as error:
            if recover:
                self._recover_corrupted_yaml(path, error)
                return []
            raise PersistenceUnavailableError(f"Corrupted YAML file: {path}") from error
        except OSError as error:
            raise PersistenceUnavailableError(f"Failed to read YAML file: {path}") from error

        if payload is None:
            return []
        if not isinstance(payload, list):
            error = ValueError("top-level YAML is not a list")
            if recover:
                self._recover_corrupted_yaml(path, error)
                return []
            raise PersistenceUnavailableError(f"Corrupted YAML file: {path}") from error
        return payload

    def _read_rows(self, path: Path) -> list[dict[str, Any]]:
        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(self._read_yaml_list(path)):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[Any]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise PersistenceUnavailableError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path)

        logger.warning("Recovered corrupted YAML file %s: %s", path.name, error)
        self._write_yaml_list(path, [])
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        """Append to the audit log. A failed append is logged and leaves the committed data as is."""
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        try:
            with self._io_lock:
                events = self._read_yaml_list(self.log_file, recover=True)
                events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
                self._write_yaml_list(self.log_file, events)
        except PersistenceUnavailableError as error:
            logger.warning("Could not append %s to %s: %s", event_type, self.log_file.name, error)

    def _load_reservations(self) -> list[Reservation]:
        records: list[Reservation] = []
        for row in self._read_rows(self.reservations_file):
            try:
                records.append(Reservation.from_dict(row))
            except (KeyError, ValueError) as error:
                raise PersistenceUnavailableError(f"Malformed reservation row in {self.reservations_file.name}") from error
        return records

    def _save_reservations(self, records: list[Reservation]) -> None:
        self._write_yaml_list(self.reservations_file, [record.to_dict() for record in records])

    def register_resource(self, resource_id: str, now: datetime | None = None) -> str:
        resource_id = normalize_resource_id(resource_id)
        with self._io_lock:
            resources = [str(value) for value in self._read_yaml_list(self.resources_file)]
            if resource_id in resources:
                return resource_id
            resources.append(resource_id)
            self._write_yaml_list(self.resources_file, resources)
            self._log_event("RESOURCE_REGISTERED", {"resource_id": resource_id}, now)
        return resource_id

    def list_resources(self) -> list[str]:
        with self._io_lock:
            return sorted(str(value) for value in self._read_yaml_list(self.resources_file))

    def _require_resource(self, resource_id: str) -> None:
        if resource_id not in {str(value) for value in self._read_yaml_list(self.resources_file)}:
            raise ResourceNotFoundError(f"Unknown resource: {resource_id}")

    def list_reservations(self, resource_id: str) -> list[Reservation]:
        with self._io_lock:
            self._require_resource(resource_id)
            return [record for record in self._load_reservations() if record.resource_id == resource_id]

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        with self._io_lock:
            for record in self._load_reservations():
                if record.reservation_id == reservation_id:
                    return record
        return None

    def create_reservation(
        self,
        resource_id: str,
        check_in: date,
        check_out: date,
        status: str = STATUS_CONFIRMED,
        *,
        guest_name: str | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Reservation:
        """Persist a reservation as given; overlap checks belong to the admission gate."""
        effective_now = (now or datetime.now()).replace(microsecond=0)
        record = Reservation(
            reservation_id=str(uuid4()),
            resource_id=resource_id,
            check_in=check_in,
            check_out=check_out,
            status=status,
            created_at=effective_now,
            updated_at=effective_now,
            guest_name=guest_name,
            notes=notes,
        )

        with self._io_lock:
            self._require_resource(resource_id)
            records = self._load_reservations()
            records.append(record)
            self._save_reservations(records)
            self._log_event(
                "RESERVATION_CREATED",
                {
                    "reservation_id": record.reservation_id,
                    "resource_id": resource_id,
                    "check_in": record.check_in.isoformat(),
                    "check_out": record.check_out.isoformat(),
                    "status": status,
                },
                effective_now,
            )
        return record

    def update_status(self, reservation_id: str, status: str, now: datetime | None = None) -> Reservation:
        require_release_status(status)
        return self._set_status(reservation_id, status, now)

    def confirm_reservation(self, reservation_id: str, now: datetime | None = None) -> Reservation:
        """Mark a stay confirmed; overlap checks belong to the admission gate."""
        return self._set_status(reservation_id, STATUS_CONFIRMED, now)

    def _set_status(self, reservation_id: str, status: str, now: datetime | None) -> Reservation:
        effective_now = (now or datetime.now()).replace(microsecond=0)
        with self._io_lock:
            records = self._load_reservations()
            found_index = _find_index(records, reservation_id)
            current = records[found_index]
            updated = replace(current, status=status, updated_at=effective_now)
            records[found_index] = updated
            self._save_reservations(records)
            self._log_event(
                "RESERVATION_STATUS_CHANGED",
                {
                    "reservation_id": reservation_id,
                    "resource_id": current.resource_id,
                    "from": current.status,
                    "to": status,
                },
                effective_now,
            )
        return updated

    def cancel_reservation(self, reservation_id: str, now: datetime | None = None) -> Reservation:
        return self.update_status(reservation_id, STATUS_CANCELLED, now=now)

    def complete_reservation(self, reservation_id: str, now: datetime | None = None) -> Reservation:
        return self.update_status(reservation_id, STATUS_COMPLETED, now=now)

    def reschedule_reservation(
        self,
        reservation_id: str,
        check_in: date,
        check_out: date,
        now: datetime | None = None,
    ) -> Reservation:
        effective_now = (now or datetime.now()).replace(microsecond=0)
        with self._io_lock:
            records = self._load_reservations()
            found_index = _find_index(records, reservation_id)
            current = records[found_index]
            updated = replace(current, check_in=check_in, check_out=check_out, updated_at=effective_now)
            records[found_index] = updated
            self._save_reservations(records)
            self._log_event(
                "RESERVATION_RESCHEDULED",
                {
                    "reservation_id": reservation_id,
                    "resource_id": current.resource_id,
                    "check_in": updated.check_in.isoformat(),
                    "check_out": updated.check_out.isoformat(),
                },
                effective_now,
            )
        return updated

    def seed_test_data(
        self,
        now: datetime | None = None,
        resources: list[str] | None = None,
        days: int = 60,
        overwrite: bool = True,
    ) -> list[Reservation]:
        effective_now = (now or datetime.now()).replace(microsecond=0)
        target_resources = resources or DEMO_RESOURCES
        generated = generate_test_reservations(effective_now.date(), target_resources, days=days)

        with self._io_lock:
            if overwrite:
                self._write_yaml_list(self.resources_file, [])
                self._save_reservations([])

            for resource_id in target_resources:
                self.register_resource(resource_id, now=effective_now)

            records = self._load_reservations()
            records.extend(generated)
            self._save_reservations(records)

            self._log_event(
                "TEST_DATA_GENERATED",
                {
                    "count": len(generated),
                    "resources": len(target_resources),
                    "date_window_days": days,
                    "overwrite": overwrite,
                },
                effective_now,
            )
        return generated


def generate_test_reservations(
    start_date: date,
    resources: list[str],
    days: int = 60,
) -> list[Reservation]:
    """Build a deterministic calendar of stays per resource.

    Stays on the same resource never overlap, whatever their status, so seeded
    data is always a valid calendar.
    """
    if days <= 0:
        raise ValueError("days must be greater than zero")
    if not resources:
        raise ValueError("resources must not be empty")

    start_date = to_calendar_date(start_date, "start_date")
    window_end = start_date + timedelta(days=days - 1)
    rng = random.Random(f"stays:{start_date.isoformat()}:{days}")
    now = datetime.now().replace(microsecond=0)
    records: list[Reservation] = []

    for resource_id in resources:
        cursor = start_date + timedelta(days=rng.randint(0, 6))
        while cursor <= window_end:
            nights = rng.choice([0, 1, 2, 3, 4, 6, 7])
            check_out = min(cursor + timedelta(days=nights), window_end)
            status = rng.choices(
                [STATUS_CONFIRMED, STATUS_REQUESTED, STATUS_CANCELLED],
                weights=[6, 2, 1],
            )[0]
            records.append(
                Reservation(
                    reservation_id=str(uuid4()),
                    resource_id=resource_id,
                    check_in=cursor,
                    check_out=check_out,
                    status=status,
                    created_at=now,
                    updated_at=now,
                )
            )
            # inclusive ranges: the next stay starts at least one day after check_out
            cursor = check_out + timedelta(days=rng.randint(1, 9))

    return records


def _find_index(records: list[Reservation], reservation_id: str) -> int:
    for index, record in enumerate(records):
        if record.reservation_id == reservation_id:
            return index
    raise ReservationNotFoundError(f"Unknown reservation: {reservation_id}")
