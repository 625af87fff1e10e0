"""JSON output helpers for the devtools-mcp CLI.

The CLI is JSON-first: success envelopes go to stdout, error envelopes to
stderr. Both are built with devtools_mcp.core.responses so CLI output matches
the response-v2 schema.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Sequence

from devtools_mcp.cli.logging import generate_request_id, get_request_id, set_request_id
from devtools_mcp.core.responses import error_response, success_response


def _ensure_request_id() -> str:
    request_id = get_request_id()
    if request_id:
        return request_id
    request_id = generate_request_id()
    set_request_id(request_id)
    return request_id


def emit(data: Any) -> None:
    """Emit minified JSON to stdout.

    Args:
        data: Any JSON-serializable data structure.
    """
    print(json.dumps(data, separators=(",", ":"), default=str), flush=True)


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> NoReturn:
    """Emit error JSON to stderr and exit with code 1.

    Args:
        message: Human-readable error description.
        code: Error code in SCREAMING_SNAKE_CASE (e.g., VALIDATION_ERROR).
        error_type: Error category for routing (validation, not_found, internal, etc.).
        remediation: Actionable guidance for resolving the error.
        details: Optional additional error context.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message=message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        request_id=_ensure_request_id(),
    )
    print(json.dumps(asdict(response), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)


def emit_success(
    data: Any,
    *,
    warnings: Sequence[str] | None = None,
    telemetry: Mapping[str, Any] | None = None,
    meta: Mapping[str, Any] | None = None,
) -> None:
    """Emit a success envelope to stdout.

    Non-dict payloads are wrapped under a ``result`` key.
    """
    if not isinstance(data, dict):
        data = {"result": data}
    response = success_response(
        data=data,
        warnings=warnings,
        telemetry=telemetry,
        meta=meta,
        request_id=_ensure_request_id(),
    )
    emit(asdict(response))
