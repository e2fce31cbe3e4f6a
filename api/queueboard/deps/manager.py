from fastapi import Header, HTTPException

"""Dependency helpers for manager resolution."""


def get_manager_id(x_manager_id: str | None = Header(default=None)) -> str:
    """Return the manager identifier from the ``X-Manager-ID`` header.

    Raises:
        HTTPException: If the header is missing.
    """
    # sign-in happens upstream; the gateway forwards the manager id
    if not x_manager_id:
        raise HTTPException(400, "Missing X-Manager-ID")
    return x_manager_id
