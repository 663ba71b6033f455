import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from .errors import InvalidRangeError

_DATE_RE = re.compile(r"(?<!\d)(?P<date>\d{4}[/.-]\d{1,2}[/.-]\d{1,2})(?!\d)")
_RELATIVE_DATE_RE = re.compile(r"\b(?P<day>today|tomorrow)\b", re.IGNORECASE)
_NIGHTS_RE = re.compile(r"\b(?P<nights>\d+)\s*nights?\b", re.IGNORECASE)
_RESOURCE_CLEAN_RE = re.compile(r"\b(book|reserve|please|stay|from|to|until|for|at|in|on)\b", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedStayRequest:
    resource_id: str | None
    check_in: date
    check_out: date
    raw_text: str


def parse_calendar_date(value: Any) -> date:
    """Accept a date, a datetime (truncated) or a YYYY-MM-DD / YYYY/MM/DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        raise InvalidRangeError("date is required")

    text = str(value).strip()
    if not _DATE_RE.fullmatch(text):
        try:
            return datetime.fromisoformat(text).date()
        except ValueError as error:
            raise InvalidRangeError(f"Invalid calendar date: {text!r}") from error

    normalized = re.sub(r"[/.]", "-", text)
    try:
        return datetime.strptime(normalized, "%Y-%m-%d").date()
    except ValueError as error:
        raise InvalidRangeError(f"Invalid calendar date: {text!r}") from error


def _extract_resource_from_fragments(text: str, fragments: list[str]) -> str | None:
    candidate = text
    for fragment in fragments:
        if fragment:
            candidate = candidate.replace(fragment, " ")
    candidate = re.sub(r"[~,]|(?<=\s)-(?=\s)", " ", candidate)
    candidate = _RESOURCE_CLEAN_RE.sub(" ", candidate)
    candidate = re.sub(r"\s+", " ", candidate).strip()
    return candidate or None


def parse_stay_request(text: str, reference_date: date | None = None) -> ParsedStayRequest:
    """Parse requests like ``villa-3 2024-03-01~2024-03-05`` or ``villa-3 tomorrow 2 nights``.

    Both forms are inclusive: ``tomorrow 2 nights`` covers tomorrow and the two
    following days.
    """
    if not text or not text.strip():
        raise ValueError("text must not be empty")

    date_matches = list(_DATE_RE.finditer(text))
    if len(date_matches) >= 2:
        check_in = parse_calendar_date(date_matches[0].group("date"))
        check_out = parse_calendar_date(date_matches[1].group("date"))
        if check_in > check_out:
            raise InvalidRangeError("check-in date must not be later than check-out date")

        resource = _extract_resource_from_fragments(text, [match.group(0) for match in date_matches[:2]])
        return ParsedStayRequest(resource_id=resource, check_in=check_in, check_out=check_out, raw_text=text)

    nights_match = _NIGHTS_RE.search(text)
    relative_match = _RELATIVE_DATE_RE.search(text)
    if not nights_match or not (relative_match or date_matches):
        raise ValueError(
            "Could not find stay dates in text. Expected 'YYYY-MM-DD~YYYY-MM-DD' "
            "or a start like 'tomorrow' / 'YYYY-MM-DD' followed by 'N nights'"
        )

    if date_matches:
        start_fragment = date_matches[0].group(0)
        check_in = parse_calendar_date(date_matches[0].group("date"))
    else:
        start_fragment = relative_match.group(0)
        today = reference_date or date.today()
        check_in = today + timedelta(days=1 if relative_match.group("day").lower() == "tomorrow" else 0)

    nights = int(nights_match.group("nights"))
    if nights <= 0:
        raise InvalidRangeError("nights must be greater than zero")
    check_out = check_in + timedelta(days=nights)

    resource = _extract_resource_from_fragments(text, [start_fragment, nights_match.group(0)])
    return ParsedStayRequest(resource_id=resource, check_in=check_in, check_out=check_out, raw_text=text)
