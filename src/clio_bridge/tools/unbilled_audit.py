"""Unbilled activity audit — find time entries that will bounce.

API endpoints used:
- GET /matters/{id}/activities    — Unbilled, billable activities
- GET /matters/{id}/time_entries  — Fallback when activities is unavailable

Insurers and LEDES reviewers routinely reject entries like "call" or
"review" that do not say what was done. This tool flags those before the
bill goes out and totals what is waiting to be billed.
"""

from __future__ import annotations

import logging
import re
import time

from pydantic import BaseModel

from clio_bridge.clio_client import ClioClient
from clio_bridge.errors import AuthenticationError, FatalDependencyUnavailable
from clio_bridge.normalize import Activity, normalize_activity, sort_key_desc, unwrap_list
from clio_bridge.redaction import safe_log

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 15
CLEAR_DISPLAY_LIMIT = 20
ACTIVITY_PAGE_LIMIT = 500

VAGUE_PATTERNS = [
    re.compile(
        r"^(meeting|call|email|phone|review|work|task|draft|research|prep|preparation|follow.?up|followup)\s*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(mtg|mtng|tel|telcon|eml|em|rev|wk|tsk|drft|rsch|prep|f/u|f/up)\s*$",
        re.IGNORECASE,
    ),
    re.compile(r"^(see|see above|same|as above|as noted|per|per above)\s*$", re.IGNORECASE),
    re.compile(
        r"^(misc|miscellaneous|other|various|general|miscellaneous work|general work|other tasks)\s*$",
        re.IGNORECASE,
    ),
    re.compile(r"^[a-z]\s*$", re.IGNORECASE),  # single letter
    re.compile(r"^\d+\s*$"),  # digits only
    re.compile(r"^[^\w\s]+\s*$"),  # punctuation only
]


class AuditedActivity(BaseModel):
    id: str
    description: str
    date: str
    time_spent: float | None = None
    rate: float | None = None
    billable_amount: float
    vague: bool
    vague_reason: str | None = None


def vague_reason(description: str) -> str | None:
    """Say why a description is too vague to bill, or None if it is fine."""
    text = description.strip()
    if not text:
        return "Empty description"
    if len(text) < MIN_DESCRIPTION_LENGTH:
        return (
            f"Too short ({len(text)} characters). "
            f"Insurance typically requires at least {MIN_DESCRIPTION_LENGTH} characters."
        )
    if any(pattern.match(text) for pattern in VAGUE_PATTERNS):
        return 'Matches vague description pattern (e.g., "meeting", "call", "review" without context)'
    return None


def is_vague_description(description: str) -> bool:
    return vague_reason(description) is not None


def billable_amount(activity: Activity) -> float:
    """Provided non-zero amount, else time spent x rate, else zero."""
    if activity.amount:
        return activity.amount
    if activity.time_spent is not None and activity.rate is not None:
        return activity.time_spent * activity.rate
    return 0.0


async def _fetch_activities(client: ClioClient, matter_id: str) -> list[Activity]:
    try:
        response = await client.get(
            f"/matters/{matter_id}/activities",
            params={"billable": True, "billed": False, "limit": ACTIVITY_PAGE_LIMIT},
        )
    except AuthenticationError:
        raise
    except Exception as exc:
        safe_log(
            "warning",
            "Activities endpoint not available, trying time_entries",
            {"matter_id": matter_id, "error_type": type(exc).__name__},
            logger=logger,
        )
        try:
            response = await client.get(
                f"/matters/{matter_id}/time_entries",
                params={"billable": True, "limit": ACTIVITY_PAGE_LIMIT},
            )
        except AuthenticationError:
            raise
        except Exception as fallback_exc:
            safe_log(
                "error",
                "Both activities and time_entries endpoints failed",
                {"matter_id": matter_id, "error_type": type(fallback_exc).__name__},
                logger=logger,
            )
            raise FatalDependencyUnavailable(
                "activities",
                "Unable to fetch activities. Endpoint may not be available for this matter.",
            ) from fallback_exc

    return [normalize_activity(a) for a in unwrap_list(response)]


async def audit_unbilled_activities(client: ClioClient, matter_id: str) -> str:
    """Audit all unbilled activities for a matter.

    Flags vague descriptions (blank, under 15 characters, or generic like
    "call" or "see above") that might be rejected by insurance, and totals
    the unbilled amount.

    Args:
        client: Clio client bound to the caller's credential.
        matter_id: The ID of the matter to audit.

    Returns:
        A Markdown report: summary, vague items, then clear items.
    """
    started = time.monotonic()
    safe_log("info", "Auditing unbilled activities", {"matter_id": matter_id}, logger=logger)

    audited: list[AuditedActivity] = []
    for activity in await _fetch_activities(client, matter_id):
        reason = vague_reason(activity.description)
        audited.append(
            AuditedActivity(
                id=activity.id,
                description=activity.description,
                date=activity.date,
                time_spent=activity.time_spent,
                rate=activity.rate,
                billable_amount=billable_amount(activity),
                vague=reason is not None,
                vague_reason=reason,
            )
        )
    audited.sort(key=lambda a: sort_key_desc(a.date))

    total = round(sum(a.billable_amount for a in audited), 2)
    report = format_audit_report(matter_id, audited, total)

    safe_log(
        "info",
        "Unbilled activities audit completed",
        {
            "matter_id": matter_id,
            "duration_ms": round((time.monotonic() - started) * 1000),
            "total_activities": len(audited),
            "vague_count": sum(1 for a in audited if a.vague),
            "total_billable_amount": total,
        },
        logger=logger,
    )
    return report


def format_audit_report(
    matter_id: str,
    activities: list[AuditedActivity],
    total_billable_amount: float,
) -> str:
    vague = [a for a in activities if a.vague]
    clear = [a for a in activities if not a.vague]
    status = "Review Required" if vague else "All Clear"

    lines = [
        "# Unbilled Activities Audit",
        "",
        f"**Matter ID:** {matter_id}",
        f"**Total Unbilled Activities:** {len(activities)}",
        f"**Total Billable Amount:** ${total_billable_amount:.2f}",
        f"**Vague Descriptions:** {len(vague)} ({status})",
        "",
        "---",
        "",
    ]

    if not activities:
        lines.append("*No unbilled activities found.*")
        return "\n".join(lines) + "\n"

    if vague:
        lines += [
            f"## Vague Descriptions ({len(vague)})",
            "",
            "*These descriptions may be rejected by insurance. Please review and update.*",
            "",
        ]
        for activity in vague:
            lines += [
                f"### Activity {activity.id}",
                f"- **Date:** {activity.date or 'Undated'}",
                f'- **Description:** "{activity.description}"',
                f"- **Issue:** {activity.vague_reason}",
            ]
            if activity.time_spent:
                lines.append(f"- **Time:** {activity.time_spent:g} hours")
            if activity.billable_amount:
                lines.append(f"- **Amount:** ${activity.billable_amount:.2f}")
            lines.append("")

    if clear:
        lines += [f"## Clear Descriptions ({len(clear)})", ""]
        for activity in clear[:CLEAR_DISPLAY_LIMIT]:
            line = f"- **{activity.date or 'Undated'}** - {activity.description}"
            if activity.billable_amount:
                line += f" - ${activity.billable_amount:.2f}"
            lines.append(line)
        if len(clear) > CLEAR_DISPLAY_LIMIT:
            lines += [
                "",
                f"*... and {len(clear) - CLEAR_DISPLAY_LIMIT} more clear activities*",
            ]
        lines.append("")

    return "\n".join(lines)
