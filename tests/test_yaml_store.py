import tempfile
import unittest
from datetime import date, datetime, timedelta
from itertools import combinations
from pathlib import Path

import yaml

from availability_engine import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_REQUESTED,
    PersistenceUnavailableError,
    ReservationAdmissionGate,
    ReservationNotFoundError,
    ReservationYamlRepository,
    ResourceNotFoundError,
    expand_dates,
    generate_test_reservations,
    get_occupied_dates,
)


class TestGenerateTestReservations(unittest.TestCase):
    def test_generated_stays_stay_in_window_and_never_overlap(self) -> None:
        resources = ["villa-1", "villa-2", "apartment-1"]
        records = generate_test_reservations(date(2024, 3, 1), resources, days=45)

        self.assertGreater(len(records), len(resources))
        self.assertEqual({record.resource_id for record in records}, set(resources))
        for record in records:
            self.assertGreaterEqual(record.check_in, date(2024, 3, 1))
            self.assertLessEqual(record.check_out, date(2024, 3, 1) + timedelta(days=44))
            self.assertLessEqual(record.check_in, record.check_out)

        for resource_id in resources:
            stays = [record for record in records if record.resource_id == resource_id]
            for first, second in combinations(stays, 2):
                self.assertTrue(
                    set(expand_dates(first.check_in, first.check_out)).isdisjoint(
                        expand_dates(second.check_in, second.check_out)
                    )
                )

    def test_generation_is_deterministic_for_same_window(self) -> None:
        first = generate_test_reservations(date(2024, 3, 1), ["villa-1"], days=30)
        second = generate_test_reservations(date(2024, 3, 1), ["villa-1"], days=30)

        self.assertEqual(
            [(record.check_in, record.check_out, record.status) for record in first],
            [(record.check_in, record.check_out, record.status) for record in second],
        )

    def test_invalid_params_raise(self) -> None:
        with self.assertRaises(ValueError):
            generate_test_reservations(date(2024, 3, 1), ["villa-1"], days=0)

        with self.assertRaises(ValueError):
            generate_test_reservations(date(2024, 3, 1), [], days=30)


class TestReservationYamlRepository(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._temp_dir.name) / "data"
        self.repo = ReservationYamlRepository(self.data_dir)
        self.repo.register_resource("villa-1")

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_creates_files_on_init(self) -> None:
        for name in ("resources.yaml", "reservations.yaml", "reservation_events.yaml"):
            self.assertTrue((self.data_dir / name).exists())

    def test_register_resource_is_idempotent(self) -> None:
        self.repo.register_resource("villa-1")
        self.repo.register_resource("villa-2")

        self.assertEqual(self.repo.list_resources(), ["villa-1", "villa-2"])

    def test_create_and_reload_reservation(self) -> None:
        created = self.repo.create_reservation(
            "villa-1",
            date(2024, 3, 1),
            date(2024, 3, 5),
            guest_name="Ana",
            now=datetime(2024, 2, 1, 9, 0),
        )

        reloaded = ReservationYamlRepository(self.data_dir)
        self.assertEqual(reloaded.list_reservations("villa-1"), [created])
        self.assertEqual(reloaded.get_reservation(created.reservation_id), created)

    def test_list_reservations_for_unknown_resource_raises(self) -> None:
        with self.assertRaises(ResourceNotFoundError):
            self.repo.list_reservations("villa-404")

        with self.assertRaises(ResourceNotFoundError):
            self.repo.create_reservation("villa-404", date(2024, 3, 1), date(2024, 3, 2))

    def test_cancel_and_complete_change_status(self) -> None:
        created = self.repo.create_reservation("villa-1", date(2024, 3, 1), date(2024, 3, 5))

        cancelled = self.repo.cancel_reservation(created.reservation_id)
        self.assertEqual(cancelled.status, STATUS_CANCELLED)
        self.assertEqual(get_occupied_dates(self.repo, "villa-1"), set())

        completed = self.repo.complete_reservation(created.reservation_id)
        self.assertEqual(completed.status, STATUS_COMPLETED)
        self.assertEqual(completed.created_at, created.created_at)

    def test_update_status_of_unknown_reservation_raises(self) -> None:
        with self.assertRaises(ReservationNotFoundError):
            self.repo.cancel_reservation("missing")

    def test_reschedule_updates_dates(self) -> None:
        created = self.repo.create_reservation("villa-1", date(2024, 3, 1), date(2024, 3, 5))

        moved = self.repo.reschedule_reservation(created.reservation_id, date(2024, 3, 10), date(2024, 3, 11))

        self.assertEqual(moved.check_in, date(2024, 3, 10))
        self.assertEqual(self.repo.get_reservation(created.reservation_id).check_out, date(2024, 3, 11))

    def test_logs_create_status_and_reschedule_events(self) -> None:
        created = self.repo.create_reservation("villa-1", date(2024, 3, 1), date(2024, 3, 5))
        self.repo.reschedule_reservation(created.reservation_id, date(2024, 3, 2), date(2024, 3, 6))
        self.repo.cancel_reservation(created.reservation_id)

        contents = (self.data_dir / "reservation_events.yaml").read_text(encoding="utf-8")
        self.assertIn("RESOURCE_REGISTERED", contents)
        self.assertIn("RESERVATION_CREATED", contents)
        self.assertIn("RESERVATION_RESCHEDULED", contents)
        self.assertIn("RESERVATION_STATUS_CHANGED", contents)

    def test_seed_test_data_registers_resources(self) -> None:
        generated = self.repo.seed_test_data(
            now=datetime(2024, 3, 1, 9, 0),
            resources=["villa-7", "villa-8"],
            days=30,
            overwrite=True,
        )

        self.assertEqual(self.repo.list_resources(), ["villa-7", "villa-8"])
        stored = self.repo.list_reservations("villa-7") + self.repo.list_reservations("villa-8")
        self.assertEqual(len(stored), len(generated))

    def test_gate_admits_through_yaml_store(self) -> None:
        gate = ReservationAdmissionGate(self.repo)

        first = gate.admit("villa-1", date(2024, 5, 10), date(2024, 5, 12))
        second = gate.admit("villa-1", date(2024, 5, 12), date(2024, 5, 14))

        self.assertTrue(first.accepted)
        self.assertTrue(second.rejected)
        stored = self.repo.list_reservations("villa-1")
        self.assertEqual(len(stored), 1)
        self.assertEqual(stored[0].status, STATUS_CONFIRMED)

    def test_corrupted_reservations_file_raises(self) -> None:
        (self.data_dir / "reservations.yaml").write_text("this: [is: invalid", encoding="utf-8")

        with self.assertRaises(PersistenceUnavailableError):
            self.repo.list_reservations("villa-1")

    def test_malformed_reservation_row_raises(self) -> None:
        rows = [{"reservation_id": "x", "resource_id": "villa-1", "check_in": "2024-03-05", "check_out": "2024-03-01"}]
        (self.data_dir / "reservations.yaml").write_text(yaml.safe_dump(rows), encoding="utf-8")

        with self.assertRaises(PersistenceUnavailableError):
            self.repo.list_reservations("villa-1")

    def test_corrupted_event_log_is_recovered(self) -> None:
        log_path = self.data_dir / "reservation_events.yaml"
        log_path.write_text("this: [is: invalid", encoding="utf-8")

        self.repo.create_reservation("villa-1", date(2024, 3, 1), date(2024, 3, 2))

        events = yaml.safe_load(log_path.read_text(encoding="utf-8"))
        self.assertEqual([event["event_type"] for event in events], ["RESERVATION_CREATED"])
        backups = list(self.data_dir.glob("reservation_events.corrupt.*.yaml"))
        self.assertEqual(len(backups), 1)

    def test_unwritable_event_log_does_not_undo_admission(self) -> None:
        log_path = self.data_dir / "reservation_events.yaml"
        log_path.unlink()
        log_path.mkdir()
        gate = ReservationAdmissionGate(self.repo)

        with self.assertLogs("availability_engine.yaml_store", level="WARNING"):
            result = gate.admit("villa-1", date(2024, 5, 10), date(2024, 5, 12))

        self.assertTrue(result.accepted)
        self.assertEqual(self.repo.list_reservations("villa-1"), [result.reservation])
        self.assertTrue(gate.admit("villa-1", date(2024, 5, 10), date(2024, 5, 12)).rejected)

    def test_status_update_only_frees_dates(self) -> None:
        created = self.repo.create_reservation("villa-1", date(2024, 3, 1), date(2024, 3, 5), STATUS_REQUESTED)

        with self.assertRaises(ValueError):
            self.repo.update_status(created.reservation_id, STATUS_CONFIRMED)
        self.assertEqual(self.repo.get_reservation(created.reservation_id).status, STATUS_REQUESTED)

    def test_gate_confirm_through_yaml_store(self) -> None:
        gate = ReservationAdmissionGate(self.repo)
        requested = gate.admit("villa-1", date(2024, 5, 11), date(2024, 5, 13), status=STATUS_REQUESTED).reservation
        blocker = gate.admit("villa-1", date(2024, 5, 10), date(2024, 5, 12)).reservation

        self.assertTrue(gate.confirm(requested.reservation_id).rejected)

        self.repo.cancel_reservation(blocker.reservation_id)
        confirmed = gate.confirm(requested.reservation_id)
        self.assertTrue(confirmed.accepted)
        self.assertEqual(self.repo.get_reservation(requested.reservation_id).status, STATUS_CONFIRMED)

    def test_non_mapping_rows_are_skipped(self) -> None:
        created = self.repo.create_reservation("villa-1", date(2024, 3, 1), date(2024, 3, 2))
        rows = yaml.safe_load((self.data_dir / "reservations.yaml").read_text(encoding="utf-8"))
        rows.append("not a reservation")
        (self.data_dir / "reservations.yaml").write_text(yaml.safe_dump(rows), encoding="utf-8")

        self.assertEqual(self.repo.list_reservations("villa-1"), [created])
        contents = (self.data_dir / "reservation_events.yaml").read_text(encoding="utf-8")
        self.assertIn("YAML_ROW_SKIPPED", contents)


if __name__ == "__main__":
    unittest.main()
