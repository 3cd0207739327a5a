"""Matter Intelligence Brief — one-page summary of a matter.

API endpoints used:
- GET /matters/{id}                   — Matter detail, custom fields, contacts
- GET /matters/{id}/file_notes        — Latest 5 file notes
- GET /matters/{id}/calendar_entries  — Upcoming calendar entries (max 10)

The three fetches run concurrently and each one is optional: if file
notes are unavailable the brief still renders, with a placeholder in
Recent Activity.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from clio_bridge.clio_client import ClioClient
from clio_bridge.config import CALENDAR_START_DATE
from clio_bridge.fanout import gather_settled
from clio_bridge.normalize import (
    CalendarEntry,
    FileNote,
    Matter,
    normalize_calendar_entry,
    normalize_file_note,
    normalize_matter,
    sort_key_asc,
    sort_key_desc,
    unwrap_list,
    unwrap_record,
)
from clio_bridge.redaction import safe_log

logger = logging.getLogger(__name__)

RECENT_NOTES_LIMIT = 5
CALENDAR_LIMIT = 10


async def get_matter_intelligence_brief(client: ClioClient, matter_id: str) -> str:
    """Get a comprehensive intelligence brief for a legal matter.

    Aggregates matter details, the 5 most recent file notes and upcoming
    calendar entries into a Markdown brief with Recent Activity, Pending
    Tasks and Case Metadata (custom fields and related contacts).

    Args:
        client: Clio client bound to the caller's credential.
        matter_id: The ID of the matter.

    Returns:
        The brief as Markdown.
    """
    started = time.monotonic()
    safe_log("info", "Fetching matter intelligence brief", {"matter_id": matter_id}, logger=logger)

    matter_response, notes_response, calendar_response = await gather_settled(
        [
            ("matter detail", client.get(f"/matters/{matter_id}"), {}),
            (
                "file notes",
                client.get(
                    f"/matters/{matter_id}/file_notes",
                    params={"limit": RECENT_NOTES_LIMIT, "order": "created_at desc"},
                ),
                {"data": []},
            ),
            (
                "calendar entries",
                client.get(
                    f"/matters/{matter_id}/calendar_entries",
                    params={
                        "limit": CALENDAR_LIMIT,
                        "start_date": CALENDAR_START_DATE,
                        "order": "start_at asc",
                    },
                ),
                {"data": []},
            ),
        ]
    )

    matter = normalize_matter(unwrap_record(matter_response))
    if not matter.id:
        matter = matter.model_copy(update={"id": matter_id})

    # Clio is asked for this ordering; re-sort in case a deployment ignores it.
    notes = sorted(
        (normalize_file_note(n) for n in unwrap_list(notes_response)),
        key=lambda n: sort_key_desc(n.created_at),
    )[:RECENT_NOTES_LIMIT]
    entries = sorted(
        (normalize_calendar_entry(e) for e in unwrap_list(calendar_response)),
        key=lambda e: sort_key_asc(e.due_date),
    )[:CALENDAR_LIMIT]

    brief = format_brief(matter, notes, entries)

    safe_log(
        "info",
        "Matter intelligence brief generated",
        {
            "matter_id": matter_id,
            "duration_ms": round((time.monotonic() - started) * 1000),
            "notes": len(notes),
            "calendar_entries": len(entries),
        },
        logger=logger,
    )
    return brief


def format_brief(
    matter: Matter,
    notes: list[FileNote],
    entries: list[CalendarEntry],
) -> str:
    """Render the brief. Empty sections get a placeholder line."""
    lines = ["# Matter Intelligence Brief", ""]
    lines.append(f"**Matter:** {matter.display_number or matter.id}")
    if matter.description:
        lines.append(f"**Description:** {matter.description}")
    if matter.status:
        lines.append(f"**Status:** {matter.status}")
    if matter.practice_area:
        lines.append(f"**Practice Area:** {matter.practice_area}")
    lines += ["", "---", ""]

    lines += ["## Recent Activity", ""]
    if not notes:
        lines += ["*No recent file notes found.*", ""]
    for note in notes:
        lines.append(f"### {note.created_at or 'Undated'}")
        if note.created_by:
            lines.append(f"*By: {note.created_by}*")
        lines += [note.note, ""]

    lines += ["## Pending Tasks", ""]
    if not entries:
        lines.append("*No upcoming calendar entries found.*")
    for entry in entries:
        line = f"- **{entry.subject or 'Untitled'}**"
        if entry.due_date:
            line += f" (Due: {entry.due_date})"
        if entry.assigned_to:
            line += f" - Assigned to: {entry.assigned_to}"
        lines.append(line)
    lines.append("")

    lines += ["## Case Metadata", "", "### Custom Fields", ""]
    custom_fields: dict[str, Any] = matter.custom_field_values
    if not custom_fields:
        lines.append("*No custom fields recorded.*")
    for name, value in custom_fields.items():
        lines.append(f"- **{name}:** {value}")
    lines += ["", "### Related Contacts", ""]
    if not matter.related_contacts:
        lines.append("*No related contacts found.*")
    for contact in matter.related_contacts:
        line = f"- **{contact.name or 'Unnamed contact'}**"
        if contact.role:
            line += f" ({contact.role})"
        lines.append(line)
    lines.append("")

    return "\n".join(lines)
