"""Clio aggregation tools for AI agents.

Each module in this package contains one "tool": an async function that
fans out several Clio API calls and renders one report. The agent reads
each tool's description to decide which one to use.

- matter_brief.py:    Matter Intelligence Brief (Markdown)
- conflict_check.py:  Ethical Conflict Check (JSON)
- unbilled_audit.py:  Unbilled Activity Audit (Markdown)

This module is the registry. run_tool() validates arguments, runs the
tool and turns every failure into a structured error payload, so callers
always get a string back. build_langchain_tools() exposes the same tools
to LangChain/LangGraph agents.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel

from clio_bridge.clio_client import ClioClient
from clio_bridge.errors import BridgeError
from clio_bridge.redaction import safe_log
from clio_bridge.schemas import MatterIdInput, SearchQueryInput, validate_input
from clio_bridge.tools.conflict_check import perform_ethical_conflict_check
from clio_bridge.tools.matter_brief import get_matter_intelligence_brief
from clio_bridge.tools.unbilled_audit import audit_unbilled_activities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """A named tool: its input record and the engine that serves it."""

    name: str
    description: str
    input_model: type[BaseModel]
    argument: str
    handler: Callable[[ClioClient, str], Awaitable[str]]

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(),
        }


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name="get_matter_intelligence_brief",
            description=(
                "Get a comprehensive intelligence brief for a legal matter. "
                "Aggregates matter details, recent file notes (last 5), and upcoming "
                "calendar entries. Returns a structured Markdown brief with Recent "
                "Activity, Pending Tasks, and Case Metadata including Custom Fields."
            ),
            input_model=MatterIdInput,
            argument="matter_id",
            handler=get_matter_intelligence_brief,
        ),
        ToolSpec(
            name="perform_ethical_conflict_check",
            description=(
                "Perform an ethical conflict check by searching contacts and matters "
                "simultaneously. Flags matches found in Related Contacts or Custom "
                "Fields (e.g., Opposing Counsel). Returns a JSON report with Direct "
                "Matches, Related Party Matches, and Closed Matter History."
            ),
            input_model=SearchQueryInput,
            argument="search_query",
            handler=perform_ethical_conflict_check,
        ),
        ToolSpec(
            name="audit_unbilled_activities",
            description=(
                "Audit all unbilled activities for a matter. Flags Vague Descriptions "
                "(entries under 15 characters or matching vague patterns) that might "
                "be rejected by insurance, and totals the billable amount."
            ),
            input_model=MatterIdInput,
            argument="matter_id",
            handler=audit_unbilled_activities,
        ),
    )
}


def list_tools() -> list[dict[str, Any]]:
    """Name, description and JSON input schema of every tool."""
    return [spec.describe() for spec in TOOLS.values()]


async def run_tool(client: ClioClient, name: str, arguments: Any) -> ToolResult:
    """Validate arguments, run the named tool and capture any failure.

    Known failures render their BridgeError payload; anything unexpected
    renders a generic error that names only the tool.
    """
    started = time.monotonic()
    spec = TOOLS.get(name)
    if spec is None:
        safe_log("error", f"Unknown tool: {name}", logger=logger)
        return ToolResult(json.dumps({"error": f"Unknown tool: {name}"}), is_error=True)

    safe_log("info", f"Tool execution started: {name}", logger=logger)
    try:
        record = validate_input(spec.input_model, arguments)
        text = await spec.handler(client, getattr(record, spec.argument))
    except BridgeError as exc:
        safe_log(
            "error",
            f"Tool execution failed: {name}",
            {
                "duration_ms": round((time.monotonic() - started) * 1000),
                **exc.to_dict(),
            },
            logger=logger,
        )
        return ToolResult(json.dumps(exc.to_dict()), is_error=True)
    except Exception as exc:
        safe_log(
            "error",
            f"Tool execution error: {name}",
            {
                "duration_ms": round((time.monotonic() - started) * 1000),
                "error_type": type(exc).__name__,
            },
            logger=logger,
        )
        return ToolResult(
            json.dumps({"error": "Internal error while running tool", "tool": name}),
            is_error=True,
        )

    safe_log(
        "info",
        f"Tool execution completed: {name}",
        {"duration_ms": round((time.monotonic() - started) * 1000)},
        logger=logger,
    )
    return ToolResult(text)


def _bind(client: ClioClient, name: str) -> Callable[..., Awaitable[str]]:
    async def invoke(**kwargs: Any) -> str:
        result = await run_tool(client, name, kwargs)
        return result.text

    return invoke


def build_langchain_tools(client: ClioClient) -> list[StructuredTool]:
    """Wrap every tool as a LangChain StructuredTool bound to one client."""
    return [
        StructuredTool.from_function(
            coroutine=_bind(client, spec.name),
            name=spec.name,
            description=spec.description,
            args_schema=spec.input_model,
        )
        for spec in TOOLS.values()
    ]
