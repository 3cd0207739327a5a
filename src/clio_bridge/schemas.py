"""Input records for the three tools.

Each tool takes one required, non-empty string. Validation failures are
turned into our own ValidationError, which names the offending field so
the agent can correct its call.
"""

from __future__ import annotations

from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, Field

from clio_bridge.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class MatterIdInput(BaseModel):
    """Input for the matter brief and the unbilled activity audit.

    The id is interpolated into request paths, so it is limited to a
    single path segment.
    """

    matter_id: str = Field(
        min_length=1,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="The ID of the Clio matter",
    )


class SearchQueryInput(BaseModel):
    """Input for the ethical conflict check."""

    search_query: str = Field(
        min_length=1,
        description="Name of the person or entity to search for",
    )


def validate_input(model: type[ModelT], arguments: Any) -> ModelT:
    """Validate tool arguments against model.

    Blank strings are rejected like empty ones.

    Raises:
        ValidationError: Naming the first offending field and why.
    """
    if not isinstance(arguments, dict):
        raise ValidationError("arguments", "must be an object")

    try:
        record = model.model_validate(arguments)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "arguments"
        raise ValidationError(field, first["msg"]) from exc

    for name, value in record.model_dump().items():
        if isinstance(value, str) and not value.strip():
            raise ValidationError(name, "must not be blank")
    return record
