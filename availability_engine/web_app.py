from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .admission import (
    ADMISSION_ACCEPTED,
    REASON_RESERVATION_NOT_FOUND,
    REASON_RESOURCE_NOT_FOUND,
    AdmissionResult,
    ReservationAdmissionGate,
)
from .availability import check_availability, get_occupied_dates
from .config import EngineSettings
from .errors import InvalidRangeError, PersistenceUnavailableError, ResourceNotFoundError
from .parsing import parse_calendar_date, parse_stay_request
from .yaml_store import ReservationYamlRepository


def create_app(
    data_dir: str | Path | None = None,
    settings: EngineSettings | None = None,
    today_provider: Callable[[], date] | None = None,
) -> Flask:
    effective_settings = settings or EngineSettings()
    app = Flask(__name__)
    repository = ReservationYamlRepository(data_dir if data_dir is not None else effective_settings.data_dir)
    gate = ReservationAdmissionGate(
        repository,
        include_statuses=effective_settings.include_statuses,
        lock_timeout=effective_settings.lock_timeout,
        admitted_status=effective_settings.admitted_status,
    )
    today: Callable[[], date] = today_provider or date.today
    app.extensions["availability_gate"] = gate

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.errorhandler(InvalidRangeError)
    def handle_invalid_range(error: InvalidRangeError) -> Any:
        return jsonify({"ok": False, "error": "invalid_range", "message": str(error)}), 400

    @app.errorhandler(ResourceNotFoundError)
    def handle_not_found(error: ResourceNotFoundError) -> Any:
        return jsonify({"ok": False, "error": "not_found", "message": str(error)}), 404

    @app.errorhandler(PersistenceUnavailableError)
    def handle_persistence(error: PersistenceUnavailableError) -> Any:
        app.logger.warning("Reservation store unavailable: %s", error)
        return jsonify({"ok": False, "error": "persistence_unavailable", "message": str(error)}), 503

    @app.get("/api/resources")
    def list_resources() -> Any:
        return jsonify({"ok": True, "resources": repository.list_resources()})

    @app.post("/api/resources")
    def register_resource() -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            resource_id = repository.register_resource(str(payload.get("resource_id", "")))
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return jsonify({"ok": True, "resource_id": resource_id}), 201

    @app.get("/api/resources/<resource_id>/reservations")
    def list_reservations(resource_id: str) -> Any:
        records = sorted(repository.list_reservations(resource_id), key=lambda record: (record.check_in, record.check_out))
        return jsonify({"ok": True, "reservations": [record.to_dict() for record in records]})

    @app.get("/api/resources/<resource_id>/occupied-dates")
    def occupied_dates(resource_id: str) -> Any:
        statuses = request.args.getlist("status") or effective_settings.include_statuses
        try:
            dates = get_occupied_dates(repository, resource_id, statuses)
        except InvalidRangeError:
            raise
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return jsonify(
            {
                "ok": True,
                "resource_id": resource_id,
                "dates": [day.isoformat() for day in sorted(dates)],
            }
        )

    @app.get("/api/resources/<resource_id>/availability")
    def availability(resource_id: str) -> Any:
        start = parse_calendar_date(request.args.get("start"))
        end = parse_calendar_date(request.args.get("end"))
        verdict = check_availability(repository, resource_id, start, end, effective_settings.include_statuses)
        return jsonify({"ok": True, **verdict.to_dict()})

    @app.post("/api/resources/<resource_id>/reservations")
    def create_reservation(resource_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        check_in = parse_calendar_date(payload.get("check_in"))
        check_out = parse_calendar_date(payload.get("check_out"))
        try:
            result = gate.admit(
                resource_id,
                check_in,
                check_out,
                status=payload.get("status") or None,
                guest_name=payload.get("guest_name"),
                notes=payload.get("notes"),
            )
        except InvalidRangeError:
            raise
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return _admission_response(result)

    @app.post("/api/reserve/text")
    def reserve_from_text() -> Any:
        payload = request.get_json(silent=True) or {}
        text = str(payload.get("text", "")).strip()
        if not text:
            return jsonify({"ok": False, "message": "Please enter a stay request."}), 400

        try:
            parsed = parse_stay_request(text, reference_date=today())
        except InvalidRangeError:
            raise
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        if not parsed.resource_id:
            return jsonify({"ok": False, "message": "Could not find which property to book."}), 400

        result = gate.admit(parsed.resource_id, parsed.check_in, parsed.check_out, notes=text)
        return _admission_response(result)

    @app.post("/api/reservations/<reservation_id>/reschedule")
    def reschedule(reservation_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        check_in = parse_calendar_date(payload.get("check_in"))
        check_out = parse_calendar_date(payload.get("check_out"))
        return _admission_response(gate.reschedule(reservation_id, check_in, check_out))

    @app.post("/api/reservations/<reservation_id>/confirm")
    def confirm(reservation_id: str) -> Any:
        try:
            result = gate.confirm(reservation_id)
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 409
        return _admission_response(result)

    @app.post("/api/reservations/<reservation_id>/cancel")
    def cancel(reservation_id: str) -> Any:
        updated = repository.cancel_reservation(reservation_id)
        return jsonify({"ok": True, "reservation": updated.to_dict()})

    @app.post("/api/reservations/<reservation_id>/complete")
    def complete(reservation_id: str) -> Any:
        updated = repository.complete_reservation(reservation_id)
        return jsonify({"ok": True, "reservation": updated.to_dict()})

    return app


def _admission_response(result: AdmissionResult) -> Any:
    payload = {"ok": result.state == ADMISSION_ACCEPTED, **result.to_dict()}
    if result.accepted:
        return jsonify(payload), 201
    if result.rejected:
        payload["message"] = "The selected dates conflict with an existing reservation."
        return jsonify(payload), 409
    if result.reason in {REASON_RESOURCE_NOT_FOUND, REASON_RESERVATION_NOT_FOUND}:
        return jsonify(payload), 404
    return jsonify(payload), 503


if __name__ == "__main__":
    from .config import configure_logging, load_settings

    loaded = load_settings()
    configure_logging(loaded.log_level)
    app = create_app(settings=loaded)
    app.run(host="127.0.0.1", port=5000, debug=False)
