"""Normalization of Clio's loosely shaped JSON into strict records.

Clio returns the same attribute under different names depending on the
endpoint, the API version and which fields were requested (a note's text
may be "note" or "body"; a related contact's name may sit on the
relationship or on its nested contact). Every attribute therefore has an
explicit, ordered fallback chain here, and the engines only ever see the
pydantic models below.

Field paths use dots for nesting: "created_by.name" reads
record["created_by"]["name"].
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

_MISSING = (None, "")


def pick(record: Any, *paths: str, default: Any = None) -> Any:
    """Return the first present value among paths, else default.

    None and the empty string count as absent.
    """
    for path in paths:
        value = record
        for key in path.split("."):
            if not isinstance(value, Mapping):
                value = None
                break
            value = value.get(key)
        if value not in _MISSING:
            return value
    return default


def pick_text(record: Any, *paths: str, default: str | None = None) -> str | None:
    """Like pick(), but only accepts scalar values and returns them as text."""
    for path in paths:
        value = pick(record, path)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value)
    return default


def pick_number(record: Any, *paths: str) -> float | None:
    for path in paths:
        value = pick(record, path)
        if isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def as_id(value: Any) -> str:
    return "" if value in _MISSING else str(value)


def person_name(record: Any) -> str:
    """Full name from "name", or first and last name joined."""
    name = pick_text(record, "name")
    if name:
        return name
    parts = [pick_text(record, "first_name"), pick_text(record, "last_name")]
    return " ".join(p for p in parts if p)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO date or datetime into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_key_desc(value: str | None) -> tuple[int, float]:
    """Sort key putting the newest first and undated items last."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return (1, 0.0)
    return (0, -parsed.timestamp())


def sort_key_asc(value: str | None) -> tuple[int, float]:
    """Sort key putting the oldest first and undated items last."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return (1, 0.0)
    return (0, parsed.timestamp())


def unwrap(response: Any) -> Any:
    """Strip Clio's {"data": ...} envelope if present."""
    if isinstance(response, Mapping) and "data" in response:
        return response["data"]
    return response


def unwrap_list(response: Any) -> list[Any]:
    data = unwrap(response)
    return data if isinstance(data, list) else []


def unwrap_record(response: Any) -> Mapping[str, Any]:
    data = unwrap(response)
    return data if isinstance(data, Mapping) else {}


# --- Records ---


class CustomField(BaseModel):
    name: str
    value: Any = None


class RelatedContact(BaseModel):
    id: str
    name: str
    role: str | None = None


class Matter(BaseModel):
    id: str
    display_number: str
    description: str | None = None
    status: str | None = None
    practice_area: str | None = None
    closed_date: str | None = None
    updated_at: str | None = None
    custom_fields: list[CustomField] = Field(default_factory=list)
    related_contacts: list[RelatedContact] = Field(default_factory=list)

    @property
    def custom_field_values(self) -> dict[str, Any]:
        """Custom fields that actually hold a value, by name."""
        return {
            field.name: field.value
            for field in self.custom_fields
            if field.value not in _MISSING
        }

    @property
    def is_closed(self) -> bool:
        return self.status == "Closed" or bool(self.closed_date)


class Contact(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    company: str | None = None


class FileNote(BaseModel):
    id: str
    note: str
    created_at: str
    created_by: str | None = None


class CalendarEntry(BaseModel):
    id: str
    subject: str
    due_date: str | None = None
    assigned_to: str | None = None


class Activity(BaseModel):
    id: str
    description: str
    date: str
    time_spent: float | None = None
    rate: float | None = None
    amount: float | None = None


# --- Normalizers ---


def normalize_custom_field(raw: Any) -> CustomField:
    return CustomField(
        name=pick_text(raw, "name", "field_name", "custom_field.name", "id", default="Custom Field"),
        value=pick(raw, "value"),
    )


def normalize_related_contact(raw: Any) -> RelatedContact:
    contact = pick(raw, "contact", default={})
    return RelatedContact(
        id=as_id(pick(raw, "id", "contact_id", "contact.id")),
        name=pick_text(raw, "name") or person_name(contact),
        role=pick_text(raw, "role", "relationship_type", "description"),
    )


def normalize_matter(raw: Any) -> Matter:
    custom_fields = pick(raw, "custom_fields", "custom_field_values", default=[])
    contacts = pick(raw, "contacts", "relationships", default=[])
    return Matter(
        id=as_id(pick(raw, "id")),
        display_number=pick_text(raw, "display_number", "number", default=""),
        description=pick_text(raw, "description"),
        status=pick_text(raw, "status"),
        practice_area=pick_text(raw, "practice_area.name", "practice_area"),
        closed_date=pick_text(raw, "closed_date", "close_date"),
        updated_at=pick_text(raw, "updated_at"),
        custom_fields=[
            normalize_custom_field(f) for f in custom_fields if isinstance(f, Mapping)
        ],
        related_contacts=[
            normalize_related_contact(c) for c in contacts if isinstance(c, Mapping)
        ],
    )


def normalize_contact(raw: Any) -> Contact:
    return Contact(
        id=as_id(pick(raw, "id")),
        name=person_name(raw),
        email=pick_text(raw, "email", "primary_email_address"),
        phone=pick_text(raw, "phone", "primary_phone_number"),
        company=pick_text(raw, "company.name", "company"),
    )


def normalize_file_note(raw: Any) -> FileNote:
    return FileNote(
        id=as_id(pick(raw, "id")),
        note=pick_text(raw, "note", "body", default=""),
        created_at=pick_text(raw, "created_at", "date", default=""),
        created_by=pick_text(raw, "created_by.name", "user.name", "author.name"),
    )


def normalize_calendar_entry(raw: Any) -> CalendarEntry:
    return CalendarEntry(
        id=as_id(pick(raw, "id")),
        subject=pick_text(raw, "subject", "summary", "title", default=""),
        due_date=pick_text(raw, "start_at", "due_date"),
        assigned_to=pick_text(raw, "assigned_to.name", "user.name"),
    )


def normalize_activity(raw: Any) -> Activity:
    return Activity(
        id=as_id(pick(raw, "id")),
        description=pick_text(raw, "description", "note", "subject", default=""),
        date=pick_text(raw, "date", "created_at", default=""),
        time_spent=pick_number(raw, "time_spent", "quantity_in_hours"),
        rate=pick_number(raw, "rate", "price"),
        amount=pick_number(raw, "billable_amount", "total"),
    )
