"""
Shared plumbing for Library Desk tools.

Every tool handler has the same shape:

1. Validate ``arguments`` against the tool's input model
2. Call one desk operation on a worker thread
3. Return ``{"content": [...], "data": {...}}`` or an ``isError`` response

Expected failures (bad input, missing entities, conflicts, access denied)
are reported with their message so the client can correct the call. Server
faults get a generic message; the details go to the log.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import anyio.to_thread
from pydantic import BaseModel, Field, ValidationError

from ..errors import LibraryError, ValidationFailed

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)

GENERIC_FAULT = "The library desk could not complete the request. Please try again later."


class TokenInput(BaseModel):
    """Base input for tools that act on behalf of a logged-in user."""

    token: str = Field(
        ...,
        min_length=1,
        description="Bearer token returned by the login tool",
        repr=False,
    )


def format_error_response(error: Exception) -> dict[str, Any]:
    """Format error responses consistently across all tools."""
    if isinstance(error, LibraryError):
        if error.is_server_fault:
            text = GENERIC_FAULT
        else:
            text = f"{type(error).__name__}: {error.message}"
        kind, code = error.kind, error.http_status
    else:
        text, kind, code = GENERIC_FAULT, "internal_error", 500
    return {
        "isError": True,
        "content": [{"type": "text", "text": text}],
        "error": {"kind": kind, "code": code},
    }


def format_success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": message}], "data": data}


def dump(value: Any) -> Any:
    """JSON-ready form of a model or a list of models."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [dump(item) for item in value]
    return value


def parse_arguments(model: type[InputT], arguments: dict[str, Any] | None) -> InputT:
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationFailed(f"Invalid parameters: {problems}") from e


async def run_tool(
    tool_name: str,
    model: type[InputT],
    arguments: dict[str, Any] | None,
    action: Callable[[InputT], dict[str, Any]],
) -> dict[str, Any]:
    """Validate, run ``action`` and turn any failure into an error response."""
    try:
        params = parse_arguments(model, arguments)
        # Desk calls block on SQLite; keep them off the event loop.
        return await anyio.to_thread.run_sync(action, params)
    except LibraryError as e:
        if e.is_server_fault:
            logger.error("Tool %s failed: %s (%s)", tool_name, e.kind, e.message)
        else:
            logger.warning("Tool %s rejected: %s (%s)", tool_name, e.kind, e.message)
        return format_error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in %s tool", tool_name)
        return format_error_response(e)


__all__ = [
    "TokenInput",
    "dump",
    "format_error_response",
    "format_success_response",
    "parse_arguments",
    "run_tool",
]
