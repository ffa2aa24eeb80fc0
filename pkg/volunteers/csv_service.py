"""
CSV import and export.

Import reads the volunteer-form export: a header row naming the form
questions, then one submission per line. Columns the board has a field for
are mapped onto the card; every non-empty column is also kept in the card's
notes and raw data so nothing from the form is lost.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .schema import BoardList, VolunteerCard, utc_now
from .store import VolunteerStore

logger = logging.getLogger(__name__)

COL_SUBMISSION_ID = "Submission ID"
COL_SUBMISSION_DATE = "Submission Date"
COL_FIRST_NAME = "Name - First Name"
COL_LAST_NAME = "Name - Last Name"
COL_EMAIL = "Preferred Email Address"
COL_PHONE = "Preferred Phone Number"
COL_DOB = "Date of Birth of Volunteer"
COL_WHY = "Why would you like to volunteer with FNC?"
COL_INTERESTS = "What kind of volunteer activities are you interested in?"
COL_LOCATIONS = (
    "Select all places you are able to voluneer at. "
    "Please note that not all opportunities are available at all locations."
)

INTEREST_SEPARATOR = "||"

EXPORT_HEADERS = ["ID", "Name", "Email", "Phone", "List", "Tags", "Roles", "Notes", "Created At"]
DATA_EXPORT_HEADERS = ["ID", "Name", "Email", "Phone", "Notes", "Tags", "Roles"]


class CSVParseError(Exception):
    """Raised when a CSV file cannot be parsed."""
    pass


def parse_csv_line(line: str) -> List[str]:
    """
    Split one CSV line on commas outside quotes.

    A double quote toggles quoting and is dropped, so "a,b" yields a,b and
    doubled quotes inside a field collapse to nothing.
    """
    result = []
    current = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            result.append("".join(current))
            current = []
        else:
            current.append(ch)
    result.append("".join(current))
    return result


def _column(headers: List[str], name: str) -> int:
    try:
        return headers.index(name)
    except ValueError:
        return -1


def _value(values: List[str], index: int) -> str:
    if index < 0 or index >= len(values):
        return ""
    return values[index] or ""


def parse_csv(text: str, progress: Optional[Callable[[float], None]] = None) -> List[VolunteerCard]:
    """Convert a form-export CSV into volunteer cards."""
    try:
        # Spreadsheet exports often start with a byte order mark
        lines = text.lstrip("\ufeff").split("\n")
        headers = [h.strip("\r") for h in parse_csv_line(lines[0])]

        idx = {
            name: _column(headers, name)
            for name in (
                COL_SUBMISSION_ID, COL_SUBMISSION_DATE, COL_FIRST_NAME, COL_LAST_NAME,
                COL_EMAIL, COL_PHONE, COL_DOB, COL_WHY, COL_INTERESTS, COL_LOCATIONS,
            )
        }

        volunteers: List[VolunteerCard] = []
        for i in range(1, len(lines)):
            if progress:
                progress(i / len(lines) * 100)

            line = lines[i].strip()
            if not line:
                continue
            values = parse_csv_line(line)

            submission_id = _value(values, idx[COL_SUBMISSION_ID])
            first_name = _value(values, idx[COL_FIRST_NAME]).strip()
            last_name = _value(values, idx[COL_LAST_NAME]).strip()
            if not submission_id or not first_name or not last_name:
                continue

            email = _value(values, idx[COL_EMAIL]).strip()
            phone = _value(values, idx[COL_PHONE]).strip()
            dob = _value(values, idx[COL_DOB]).strip()
            why = _value(values, idx[COL_WHY]).strip()
            submitted = _value(values, idx[COL_SUBMISSION_DATE])

            roles: List[str] = []
            interests = _value(values, idx[COL_INTERESTS])
            if interests:
                for interest in interests.split(INTEREST_SEPARATOR):
                    interest = interest.strip()
                    if interest not in roles:
                        roles.append(interest)

            notes = f"{why}\n\n" if why else ""
            notes += "CSV Data:\n"
            for col, header in enumerate(headers):
                cell = _value(values, col).strip()
                if cell:
                    notes += f"{header}: {cell}\n"

            volunteers.append(VolunteerCard(
                id=submission_id,
                title=f"{first_name} {last_name}",
                description=notes,
                email=email,
                phone=phone,
                tags=[],
                current_roles=roles,
                created_at=submitted or utc_now(),
                attachments=[],
                data={
                    "id": submission_id,
                    "firstName": first_name,
                    "lastName": last_name,
                    "email": email,
                    "phone": phone,
                    "notes": notes,
                    "dob": dob,
                    "submissionDate": submitted,
                    "csvData": {h: _value(values, col) for col, h in enumerate(headers)},
                    "importDate": utc_now(),
                },
            ))
        return volunteers
    except Exception as e:
        logger.error(f"Error parsing CSV: {e}")
        raise CSVParseError(f"Failed to parse CSV: {e}") from e


@dataclass
class ImportResult:
    added: int = 0
    skipped: int = 0
    total: int = 0
    duplicate_names: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.added > 0:
            return "CSV import completed successfully."
        return "All volunteers in this CSV already exist in your board."

    def to_dict(self) -> dict:
        data = {
            "success": True,
            "message": self.message,
            "added": self.added,
            "skipped": self.skipped,
            "total": self.total,
        }
        if self.duplicate_names:
            data["duplicateNames"] = self.duplicate_names
        return data


def import_csv(
    store: VolunteerStore,
    text: str,
    progress: Optional[Callable[[float], None]] = None,
) -> ImportResult:
    """
    Parse a CSV and append the volunteers that are not already stored.

    A record is a duplicate when its id matches, or its email matches
    case-insensitively. New volunteers land in the first list.
    """
    parsed = parse_csv(text, progress)
    existing = store.load_volunteers()
    lists = store.load_lists()

    known_ids = {v.id for v in existing}
    known_emails = {v.email.lower() for v in existing if v.email}

    result = ImportResult(total=len(parsed))
    added: List[VolunteerCard] = []
    for volunteer in parsed:
        if volunteer.id in known_ids or (volunteer.email and volunteer.email.lower() in known_emails):
            result.duplicate_names.append(volunteer.title)
            continue
        if lists:
            volunteer.list_id = lists[0].id
        added.append(volunteer)

    store.save_volunteers(existing + added)
    result.added = len(added)
    result.skipped = result.total - result.added
    logger.info(f"CSV import: {result.added} added, {result.skipped} skipped of {result.total}")
    return result


def _quote(cell) -> str:
    return '"' + str(cell).replace('"', '""') + '"'


def _rows_to_csv(headers: List[str], rows: Iterable[List[str]], include_header: bool = True) -> str:
    out = [",".join(headers)] if include_header else []
    out.extend(",".join(_quote(c) for c in row) for row in rows)
    return "\n".join(out)


def export_csv(volunteers: Iterable[VolunteerCard], lists: Iterable[BoardList]) -> str:
    """Board export: one row per volunteer with its list name."""
    list_names: Dict[str, str] = {lst.id: lst.title for lst in lists}
    rows = []
    for v in volunteers:
        if v.list_id:
            list_name = list_names.get(v.list_id, "Unknown List")
        else:
            list_name = "Unassigned"
        rows.append([
            v.id,
            v.title,
            v.email or "",
            v.phone or "",
            list_name,
            "; ".join(v.tags),
            "; ".join(v.current_roles),
            (v.description or "").replace("\n", " "),
            v.created_at,
        ])
    return _rows_to_csv(EXPORT_HEADERS, rows)


def export_volunteer_data(volunteers: Iterable[VolunteerCard]) -> str:
    """Contact export without images or list placement."""
    rows = [
        [
            v.id,
            v.title,
            v.email or "",
            v.phone or "",
            (v.description or "").replace("\n", " "),
            "; ".join(v.tags),
            "; ".join(v.current_roles),
        ]
        for v in volunteers
    ]
    return _rows_to_csv(DATA_EXPORT_HEADERS, rows)


def export_filename(prefix: str = "volunteer-tracker-export", on: Optional[date] = None) -> str:
    on = on or datetime.now(timezone.utc).date()
    return f"{prefix}-{on.isoformat()}.csv"
