from .admission import AdmissionResult, ReservationAdmissionGate
from .availability import AvailabilityCheck, check_availability, get_occupied_dates
from .booking import (
	DEFAULT_INCLUDE_STATUSES,
	RESERVATION_STATUSES,
	STATUS_CANCELLED,
	STATUS_COMPLETED,
	STATUS_CONFIRMED,
	STATUS_REQUESTED,
	OccupiedDateSet,
	Reservation,
	build_occupied,
	expand_dates,
	find_conflicting_dates,
	has_conflict,
	is_occupied,
	iter_dates,
)
from .config import EngineSettings, load_settings
from .errors import (
	AvailabilityError,
	InvalidRangeError,
	PersistenceUnavailableError,
	ReservationNotFoundError,
	ResourceNotFoundError,
)
from .parsing import ParsedStayRequest, parse_calendar_date, parse_stay_request
from .store import InMemoryReservationStore, ReservationStore
from .yaml_store import ReservationYamlRepository, generate_test_reservations

__all__ = [
	"AdmissionResult",
	"ReservationAdmissionGate",
	"AvailabilityCheck",
	"check_availability",
	"get_occupied_dates",
	"DEFAULT_INCLUDE_STATUSES",
	"RESERVATION_STATUSES",
	"STATUS_CANCELLED",
	"STATUS_COMPLETED",
	"STATUS_CONFIRMED",
	"STATUS_REQUESTED",
	"OccupiedDateSet",
	"Reservation",
	"build_occupied",
	"expand_dates",
	"find_conflicting_dates",
	"has_conflict",
	"is_occupied",
	"iter_dates",
	"EngineSettings",
	"load_settings",
	"AvailabilityError",
	"InvalidRangeError",
	"PersistenceUnavailableError",
	"ReservationNotFoundError",
	"ResourceNotFoundError",
	"ParsedStayRequest",
	"parse_calendar_date",
	"parse_stay_request",
	"InMemoryReservationStore",
	"ReservationStore",
	"ReservationYamlRepository",
	"generate_test_reservations",
]
