"""
Volunteer reports.

A report is an ordered selection of fields over a (possibly filtered) set of
volunteers, rendered as CSV or as a standalone HTML page.
"""
import html
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .checklist import completion_percentage
from .schema import ALL_VOLUNTEERS_LIST_ID, BoardList, VolunteerCard


@dataclass
class ReportField:
    id: str
    label: str
    enabled: bool = True


AVAILABLE_FIELDS = [
    ReportField("name", "Name", True),
    ReportField("email", "Email", True),
    ReportField("phone", "Phone", True),
    ReportField("list", "List", True),
    ReportField("roles", "Roles", True),
    ReportField("tags", "Tags", True),
    ReportField("notes", "Notes", False),
    ReportField("createdAt", "Created Date", False),
    ReportField("checklistProgress", "Checklist Progress", False),
    ReportField("attachments", "Has Attachments", False),
]

_FIELDS_BY_ID = {f.id: f for f in AVAILABLE_FIELDS}


class ReportError(Exception):
    """Raised when a report cannot be produced from the given options."""
    pass


def default_fields() -> List[ReportField]:
    return [ReportField(f.id, f.label, f.enabled) for f in AVAILABLE_FIELDS]


def resolve_fields(field_ids: Optional[Iterable[str]]) -> List[ReportField]:
    """Fields in the requested order; None means the default selection."""
    if field_ids is None:
        return [f for f in default_fields() if f.enabled]
    fields = []
    for fid in field_ids:
        if fid not in _FIELDS_BY_ID:
            raise ReportError(f"Unknown report field: {fid}")
        f = _FIELDS_BY_ID[fid]
        fields.append(ReportField(f.id, f.label, True))
    return fields


def filter_volunteers(
    volunteers: Iterable[VolunteerCard],
    roles: Iterable[str] = (),
    tags: Iterable[str] = (),
    lists: Iterable[str] = (),
    list_id: Optional[str] = None,
    exclude: Iterable[str] = (),
) -> List[VolunteerCard]:
    """Volunteers matching any of the roles, any of the tags and any of the lists."""
    roles, tags, lists, exclude = set(roles), set(tags), set(lists), set(exclude)
    out = []
    for v in volunteers:
        if v.id in exclude:
            continue
        if roles and not roles.intersection(v.current_roles):
            continue
        if tags and not tags.intersection(v.tags):
            continue
        if lists and (v.list_id or "") not in lists:
            continue
        if list_id and list_id != ALL_VOLUNTEERS_LIST_ID and v.list_id != list_id:
            continue
        out.append(v)
    return out


def _date(value: str) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%m/%d/%Y")
    except ValueError:
        return value


def _checklist(v: VolunteerCard) -> str:
    if not v.checklist_progress:
        return "0%" if v.checklist_progress is None else "N/A"
    return f"{completion_percentage(v.checklist_progress)}%"


def _list_namer(lists: Iterable[BoardList]) -> Callable[[Optional[str]], str]:
    names: Dict[str, str] = {lst.id: lst.title for lst in lists}

    def name(list_id: Optional[str]) -> str:
        if not list_id:
            return "Unassigned"
        return names.get(list_id, "Unknown List")
    return name


def field_value(field_id: str, v: VolunteerCard, list_name: Callable, flatten_notes: bool = True) -> str:
    if field_id == "name":
        return v.title
    if field_id == "email":
        return v.email or ""
    if field_id == "phone":
        return v.phone or ""
    if field_id == "list":
        return list_name(v.list_id)
    if field_id == "roles":
        return "; ".join(v.current_roles)
    if field_id == "tags":
        return "; ".join(v.tags)
    if field_id == "notes":
        return (v.description or "").replace("\n", " ") if flatten_notes else (v.description or "")
    if field_id == "createdAt":
        return _date(v.created_at)
    if field_id == "checklistProgress":
        return _checklist(v)
    if field_id == "attachments":
        return "Yes" if v.attachments else "No"
    return ""


def _check(volunteers: List[VolunteerCard], fields: List[ReportField]) -> None:
    if not fields:
        raise ReportError("Please select at least one field to include in the report")
    if not volunteers:
        raise ReportError("No volunteers to include in the report")


def generate_csv_report(
    volunteers: List[VolunteerCard],
    fields: List[ReportField],
    lists: Iterable[BoardList],
    include_header: bool = True,
) -> str:
    _check(volunteers, fields)
    list_name = _list_namer(lists)
    lines = []
    if include_header:
        lines.append(",".join(f.label for f in fields))
    for v in volunteers:
        cells = [field_value(f.id, v, list_name) for f in fields]
        lines.append(",".join('"' + c.replace('"', '""') + '"' for c in cells))
    return "\n".join(lines)


def generate_html_report(
    title: str,
    volunteers: List[VolunteerCard],
    fields: List[ReportField],
    lists: Iterable[BoardList],
    include_header: bool = True,
    generated_at: Optional[datetime] = None,
) -> str:
    _check(volunteers, fields)
    list_name = _list_namer(lists)
    generated_at = generated_at or datetime.now()
    esc = html.escape

    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{esc(title)}</title>",
        "<style>",
        "body { font-family: Arial, sans-serif; margin: 20px; }",
        "h1 { color: #333; }",
        "table { border-collapse: collapse; width: 100%; margin-top: 20px; }",
        "th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }",
        "th { background-color: #f2f2f2; }",
        "tr:nth-child(even) { background-color: #f9f9f9; }",
        "</style>",
        "</head>",
        "<body>",
        f"<h1>{esc(title)}</h1>",
        f"<p>Generated on {generated_at.strftime('%m/%d/%Y')} at {generated_at.strftime('%H:%M:%S')}</p>",
        f"<p>Total volunteers: {len(volunteers)}</p>",
        "<table>",
    ]
    if include_header:
        parts.append("<thead><tr>" + "".join(f"<th>{esc(f.label)}</th>" for f in fields) + "</tr></thead>")
    parts.append("<tbody>")
    for v in volunteers:
        cells = "".join(
            f"<td>{esc(field_value(f.id, v, list_name, flatten_notes=False))}</td>" for f in fields
        )
        parts.append(f"<tr>{cells}</tr>")
    parts.append("</tbody></table></body></html>")
    return "\n".join(parts)


def report_filename(title: str, ext: str) -> str:
    slug = re.sub(r"\s+", "-", title)
    return f"{slug}.{ext}"
