"""Normalization of errors into caller-facing descriptions."""

import json
from typing import Any, Optional

from e2b import CommandExitException
from pydantic import BaseModel, Field, ValidationError

from mcp_sandbox_exec.utils.exceptions import SandboxExecError


class ErrorDetails(BaseModel):
    """Structured description of an error."""

    message: str = Field(..., description="Human readable error message")
    json_payload: Optional[Any] = Field(
        None, alias="json", description="Structured payload extracted from the error"
    )
    text: Optional[str] = Field(None, description="Raw text extracted from the error")

    model_config = {"populate_by_name": True}


class RichError(BaseModel):
    """Error message for the caller plus its structured details."""

    message: str
    error: ErrorDetails


def get_error_details(error: object) -> ErrorDetails:
    """
    Extract message, structured payload and raw text from an error.

    Known shapes are matched explicitly; anything else becomes a bare
    message built from ``str(error)``.

    Args:
        error: Exception or arbitrary value that was raised or returned

    Returns:
        ErrorDetails for the error
    """
    if not isinstance(error, BaseException):
        return ErrorDetails(message=str(error), json_payload=error)

    if isinstance(error, SandboxExecError):
        text = None
        if isinstance(error.original_error, CommandExitException):
            text = error.original_error.stderr or None
        return ErrorDetails(message=str(error), json_payload=error.payload, text=text)

    if isinstance(error, CommandExitException):
        return ErrorDetails(
            message=str(error),
            json_payload={"exitCode": error.exit_code},
            text=error.stderr or None,
        )

    if isinstance(error, ValidationError):
        return ErrorDetails(message=str(error), json_payload=error.errors(include_url=False))

    if error.__cause__ is not None:
        return ErrorDetails(message=str(error), text=str(error.__cause__))

    return ErrorDetails(message=str(error))


def describe_error(
    action: str,
    error: object,
    args: Optional[dict[str, Any]] = None,
) -> RichError:
    """
    Build a rich error message that can be handed back to the caller.

    Args:
        action: What was being attempted (e.g. "connect to sandbox")
        error: The raised exception or value
        args: Parameters of the failed action

    Returns:
        RichError with the rendered message and structured details
    """
    details = get_error_details(error)

    message = f"Error during {action}: {details.message}"
    if args:
        message += f"\nParameters: {json.dumps(args, indent=2, default=str)}"
    if details.json_payload is not None:
        message += f"\nJSON: {json.dumps(details.json_payload, indent=2, default=str)}"
    if details.text:
        message += f"\nText: {details.text}"

    return RichError(message=message, error=details)
