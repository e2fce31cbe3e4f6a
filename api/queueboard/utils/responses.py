"""The ``{"ok": ..., "data" | "error": ...}`` envelope shared by all routes."""

from typing import Any, Dict


def ok(data: Any) -> Dict[str, Any]:
    """Return a success envelope."""
    return {"ok": True, "data": data}


def err(
    code: int | str,
    message: str,
    details: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Return an error envelope tagged with the current request id.

    ``code`` is an HTTP status for transport errors and a symbolic code such
    as ``CONFLICT`` for queue errors.
    """
    from ..middlewares.request_id import current_request_id

    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"ok": False, "request_id": current_request_id(), "error": error}
