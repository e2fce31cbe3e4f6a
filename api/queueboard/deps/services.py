"""Resolve the service objects stored on ``app.state`` at startup."""

from __future__ import annotations

from fastapi import Request

from ..services import (
    AnalyticsService,
    EventLog,
    PublicLookup,
    QueueStore,
    TokenOrderingEngine,
)


def get_engine(request: Request) -> TokenOrderingEngine:
    return request.app.state.engine


def get_store(request: Request) -> QueueStore:
    return request.app.state.store


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def get_analytics(request: Request) -> AnalyticsService:
    return request.app.state.analytics


def get_lookup(request: Request) -> PublicLookup:
    return request.app.state.lookup
