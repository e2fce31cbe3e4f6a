"""Database models for queues, tokens, the event log and settings.

The table and column names, and the status and event type strings stored in
them, match the layout of existing queue deployments so that stored data can
be read without conversion.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from .domain import TokenStatus
from .utils.clock import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Queue(Base):
    """A named waiting queue owned by a manager."""

    __tablename__ = "queues"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="active")
    manager_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ServiceType(Base):
    """Kind of service a token can request within a queue."""

    __tablename__ = "service_types"

    id = Column(String(36), primary_key=True, default=_uuid)
    queue_id = Column(String(36), ForeignKey("queues.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    estimated_duration_minutes = Column(Integer, nullable=False, default=15)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Token(Base):
    """A person waiting in a queue."""

    __tablename__ = "tokens"
    __table_args__ = (Index("ix_tokens_queue_status_position", "queue_id", "status", "position"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    queue_id = Column(String(36), ForeignKey("queues.id"), nullable=False)
    person_name = Column(String, nullable=False)
    contact_number = Column(String, nullable=True)
    service_type_id = Column(String(36), ForeignKey("service_types.id"), nullable=True)
    priority_level = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=TokenStatus.WAITING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    serving_at = Column(DateTime(timezone=True), nullable=True)
    served_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    no_show_at = Column(DateTime(timezone=True), nullable=True)


class QueueEvent(Base):
    """Append-only audit trail of token state changes."""

    __tablename__ = "queue_events"
    __table_args__ = (Index("ix_queue_events_queue_created", "queue_id", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    queue_id = Column(String(36), ForeignKey("queues.id"), nullable=False)
    token_id = Column(String(36), ForeignKey("tokens.id"), nullable=True)
    event_type = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    wait_time_minutes = Column(Integer, nullable=True)
    service_duration_minutes = Column(Integer, nullable=True)


class QueueSettings(Base):
    """Per-queue operating settings."""

    __tablename__ = "queue_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    queue_id = Column(String(36), ForeignKey("queues.id"), nullable=False, unique=True)
    is_paused = Column(Boolean, nullable=False, default=False)
    pause_reason = Column(Text, nullable=True)
    auto_serve_enabled = Column(Boolean, nullable=False, default=False)
    auto_serve_minutes = Column(Integer, nullable=False, default=5)
    priority_enabled = Column(Boolean, nullable=False, default=False)
    max_tokens_per_day = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class Notification(Base):
    """Outbox of notifications produced for tokens."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    queue_id = Column(String(36), ForeignKey("queues.id"), nullable=False, index=True)
    token_id = Column(String(36), ForeignKey("tokens.id"), nullable=True)
    type = Column(String, nullable=False, default="system")
    recipient = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="pending")
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
