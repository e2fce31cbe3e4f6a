"""Unauthenticated read-only routes for queue screens and token holders."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .deps.services import get_lookup
from .services import PublicLookup
from .utils.responses import ok

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/tokens/{token_id}")
async def lookup_token(token_id: str, lookup: PublicLookup = Depends(get_lookup)):
    return ok((await lookup.lookup(token_id)).unwrap())


@router.get("/queues/{queue_id}/display")
async def queue_display(queue_id: str, lookup: PublicLookup = Depends(get_lookup)):
    return ok((await lookup.display(queue_id)).unwrap())
