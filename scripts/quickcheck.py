from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
import threading
import traceback

from availability_engine import ReservationAdmissionGate, ReservationYamlRepository, get_occupied_dates


def main() -> int:
    print("[INFO] Reservation Availability Engine Quick Check")
    print("[INFO] Generating and validating demo data...")

    repo = ReservationYamlRepository("data")
    now = datetime(2024, 3, 1, 9, 0)

    generated = repo.seed_test_data(now=now, days=60, overwrite=True)
    print(f"[OK] Demo stays generated: {len(generated)} records")

    resource_id = "villa-1"
    occupied = get_occupied_dates(repo, resource_id)
    print(f"[OK] Occupied dates on {resource_id}: {len(occupied)}")

    # first free 3-day window on villa-1, then race two identical requests for it
    check_in = now.date()
    while any(check_in + timedelta(days=offset) in occupied for offset in range(3)):
        check_in += timedelta(days=1)
    check_out = check_in + timedelta(days=2)

    gate = ReservationAdmissionGate(repo, lock_timeout=5.0)
    results = []
    barrier = threading.Barrier(2)

    def attempt() -> None:
        barrier.wait()
        results.append(gate.admit(resource_id, check_in, check_out, guest_name="Quick Check"))

    workers = [threading.Thread(target=attempt) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    states = sorted(result.state for result in results)
    print(f"[OK] Concurrent admissions for {check_in.isoformat()}~{check_out.isoformat()}: {', '.join(states)}")
    if states != ["accepted", "rejected"]:
        print("[ERROR] Expected exactly one accepted admission.")
        return 1

    print(f"[OK] Resources YAML: {Path('data/resources.yaml').resolve()}")
    print(f"[OK] Reservations YAML: {Path('data/reservations.yaml').resolve()}")
    print(f"[OK] Event Log YAML: {Path('data/reservation_events.yaml').resolve()}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
