from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from availability_engine import (
    ReservationAdmissionGate,
    ReservationYamlRepository,
    check_availability,
    get_occupied_dates,
    load_settings,
    parse_calendar_date,
)
from availability_engine.config import configure_logging

mcp = FastMCP(
    "Availability MCP Server",
    instructions="Query occupied dates and admit stays through the reservation availability engine.",
    json_response=True,
)

SETTINGS = load_settings()
REPOSITORY = ReservationYamlRepository(SETTINGS.data_dir)
GATE = ReservationAdmissionGate(
    REPOSITORY,
    include_statuses=SETTINGS.include_statuses,
    lock_timeout=SETTINGS.lock_timeout,
    admitted_status=SETTINGS.admitted_status,
)


@mcp.resource("availability://resources")
async def list_resources() -> list[str]:
    """List bookable resource ids."""
    return REPOSITORY.list_resources()


@mcp.tool(name="get_occupied_dates")
def occupied_dates(resource_id: str, statuses: list[str] | None = None) -> list[str]:
    """Return occupied dates (YYYY-MM-DD) of a resource; confirmed stays only by default."""
    dates = get_occupied_dates(REPOSITORY, resource_id, statuses or SETTINGS.include_statuses)
    return [day.isoformat() for day in sorted(dates)]


@mcp.tool(name="check_availability")
def availability(resource_id: str, start: str, end: str) -> dict:
    """Check whether every date from start to end (inclusive) is free."""
    verdict = check_availability(
        REPOSITORY,
        resource_id,
        parse_calendar_date(start),
        parse_calendar_date(end),
        SETTINGS.include_statuses,
    )
    return verdict.to_dict()


@mcp.tool()
def reserve_stay(resource_id: str, check_in: str, check_out: str, guest_name: str | None = None) -> dict:
    """Admit a stay; returns the admission state and the stored reservation when accepted."""
    result = GATE.admit(
        resource_id,
        parse_calendar_date(check_in),
        parse_calendar_date(check_out),
        guest_name=guest_name,
        notes="MCP reservation",
    )
    return result.to_dict()


@mcp.tool()
def confirm_reservation(reservation_id: str) -> dict:
    """Confirm a requested stay; it is rejected if a confirmed stay already holds any of its dates."""
    return GATE.confirm(reservation_id).to_dict()


@mcp.tool()
def cancel_reservation(reservation_id: str) -> dict:
    """Mark a reservation as cancelled so its dates no longer block the calendar."""
    return REPOSITORY.cancel_reservation(reservation_id).to_dict()


def main() -> None:
    configure_logging(SETTINGS.log_level)
    mcp.run()


if __name__ == "__main__":
    main()
