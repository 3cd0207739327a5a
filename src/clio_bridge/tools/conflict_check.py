"""Ethical conflict check — who does the firm already know by this name?

API endpoints used:
- GET /contacts?q=      — Contact search
- GET /matters?q=       — Matter search
- GET /matters          — Full matter listing (only when search is short)
- GET /matters/{id}     — Matter detail, for related contacts and custom fields

A name can surface three ways: as a contact or matter in its own right
(direct match), as a party related to some matter or inside one of its
custom fields such as "Opposing Counsel" (related-party match), or on a
matter that is already closed (closed-matter history).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from clio_bridge.clio_client import ClioClient
from clio_bridge.errors import AuthenticationError
from clio_bridge.fanout import gather_all, gather_settled
from clio_bridge.normalize import (
    Matter,
    normalize_contact,
    normalize_matter,
    unwrap_list,
    unwrap_record,
)
from clio_bridge.redaction import safe_log

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100
DETAIL_CANDIDATE_LIMIT = 20


async def perform_ethical_conflict_check(client: ClioClient, search_query: str) -> str:
    """Perform an ethical conflict check for a person or entity.

    Searches contacts and matters simultaneously, then inspects up to 20
    matters for related contacts and custom fields (e.g. Opposing Counsel)
    that mention the name.

    Args:
        client: Clio client bound to the caller's credential.
        search_query: Name of the person or entity to search for.

    Returns:
        A JSON report with direct_matches, related_party_matches,
        closed_matter_history and summary counts.
    """
    started = time.monotonic()
    safe_log("info", "Performing ethical conflict check", {"search_query": search_query}, logger=logger)

    contacts_response, matters_response = await gather_all(
        client.get("/contacts", params={"q": search_query, "limit": SEARCH_LIMIT}),
        client.get("/matters", params={"q": search_query, "limit": SEARCH_LIMIT}),
    )
    contacts = [normalize_contact(c) for c in unwrap_list(contacts_response)]
    matters = [normalize_matter(m) for m in unwrap_list(matters_response)]

    direct_matches: list[dict[str, Any]] = []
    closed_matter_history: list[dict[str, Any]] = []

    for contact in contacts:
        direct_matches.append(
            {
                "type": "contact",
                "id": contact.id,
                "name": contact.name,
                "details": {
                    "email": contact.email,
                    "phone": contact.phone,
                    "company": contact.company,
                },
            }
        )

    for matter in matters:
        direct_matches.append(
            {
                "type": "matter",
                "id": matter.id,
                "name": matter.display_number or matter.description or "",
                "details": {
                    "description": matter.description,
                    "status": matter.status,
                    "practice_area": matter.practice_area,
                },
            }
        )
        if matter.is_closed:
            closed_matter_history.append(
                {
                    "matter_id": matter.id,
                    "matter_number": matter.display_number,
                    "status": matter.status,
                    "closed_date": matter.closed_date or matter.updated_at,
                }
            )

    candidates = await _candidate_matters(client, matters)

    per_matter = await gather_settled(
        [
            (
                f"matter detail {candidate.id}",
                _related_party_matches(client, candidate, search_query),
                [],
            )
            for candidate in candidates[:DETAIL_CANDIDATE_LIMIT]
        ]
    )
    related_party_matches = [match for matches in per_matter for match in matches]

    report = {
        "search_query": search_query,
        "direct_matches": direct_matches,
        "related_party_matches": related_party_matches,
        "closed_matter_history": closed_matter_history,
        "summary": {
            "direct_matches": len(direct_matches),
            "related_party_matches": len(related_party_matches),
            "closed_matters": len(closed_matter_history),
        },
    }

    safe_log(
        "info",
        "Ethical conflict check completed",
        {
            "duration_ms": round((time.monotonic() - started) * 1000),
            **report["summary"],
        },
        logger=logger,
    )
    return json.dumps(report, indent=2)


async def _candidate_matters(client: ClioClient, matters: list[Matter]) -> list[Matter]:
    """Search hits, plus the full listing when the search came back short.

    A name buried in a custom field does not make the matter a search hit,
    so unless the search already filled its cap we also look at the
    general listing. Failure to list is tolerated.
    """
    if len(matters) >= SEARCH_LIMIT:
        return matters

    try:
        listing = await client.get("/matters", params={"limit": SEARCH_LIMIT})
    except AuthenticationError:
        raise
    except Exception as exc:
        safe_log(
            "warning",
            "Could not fetch full matter listing for conflict check",
            {"error_type": type(exc).__name__},
            logger=logger,
        )
        return matters

    seen = {m.id for m in matters}
    candidates = list(matters)
    for raw in unwrap_list(listing):
        matter = normalize_matter(raw)
        if matter.id not in seen:
            seen.add(matter.id)
            candidates.append(matter)
    return candidates


async def _related_party_matches(
    client: ClioClient,
    candidate: Matter,
    search_query: str,
) -> list[dict[str, Any]]:
    """Match the query against one matter's related contacts and custom fields."""
    detail = normalize_matter(unwrap_record(await client.get(f"/matters/{candidate.id}")))
    needle = search_query.lower()
    matter_number = candidate.display_number or detail.display_number

    matches: list[dict[str, Any]] = []
    for contact in detail.related_contacts:
        if needle in contact.name.lower():
            matches.append(
                {
                    "type": "contact",
                    "id": contact.id,
                    "name": contact.name,
                    "relationship": contact.role or "Related Contact",
                    "source_matter_id": candidate.id,
                    "source_matter_number": matter_number,
                }
            )

    for field in detail.custom_fields:
        if field.value in (None, ""):
            continue
        if needle in str(field.value).lower():
            matches.append(
                {
                    "type": "matter",
                    "id": candidate.id,
                    "name": matter_number,
                    "relationship": f"{field.name}: {field.value}",
                    "source_matter_id": candidate.id,
                    "source_matter_number": matter_number,
                }
            )
    return matches
