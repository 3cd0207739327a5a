"""Join policies for concurrent Clio calls.

Each engine fans out several requests and picks one of two policies:

- gather_all: all-or-nothing. The first failure propagates and the
  operation aborts.
- gather_settled: all-settled. A failed call is logged as
  PartialDataUnavailable and replaced by its default.

Neither policy cancels calls that are still in flight when another one
fails; they run to completion or to the client timeout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import Any

from clio_bridge.errors import AuthenticationError, BridgeError, PartialDataUnavailable
from clio_bridge.redaction import safe_log

logger = logging.getLogger(__name__)


async def gather_all(*calls: Awaitable[Any]) -> list[Any]:
    """Await every call; raise the first failure."""
    return list(await asyncio.gather(*calls))


async def gather_settled(
    calls: Sequence[tuple[str, Awaitable[Any], Any]],
) -> list[Any]:
    """Await every call, substituting defaults for the ones that fail.

    Args:
        calls: (label, awaitable, default) triples. The label names the
            sub-fetch in the log when it fails.

    Returns:
        Results in the same order as calls.

    Raises:
        AuthenticationError: If any call failed authentication. A rejected
            credential breaks every sub-fetch, so it is never papered over.
    """
    results = await asyncio.gather(
        *(awaitable for _, awaitable, _ in calls),
        return_exceptions=True,
    )

    settled: list[Any] = []
    for (label, _, default), result in zip(calls, results):
        if isinstance(result, AuthenticationError):
            raise result
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            partial = PartialDataUnavailable(label, result)
            # Only the structured payload is logged; remote bodies stay out.
            details = result.to_dict() if isinstance(result, BridgeError) else {}
            safe_log(
                "warning",
                partial.message,
                {"error_type": type(result).__name__, **details},
                logger=logger,
            )
            settled.append(default)
        else:
            settled.append(result)
    return settled
