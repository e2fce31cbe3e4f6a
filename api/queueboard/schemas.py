# schemas.py

"""Pydantic models for API payloads and responses."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueueIn(BaseModel):
    """Input schema for creating a queue."""

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


class QueueOut(BaseModel):
    """Queue representation returned from the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    status: str
    manager_id: str
    created_at: datetime


class SettingsIn(BaseModel):
    """Partial update of queue settings; omitted fields keep their value."""

    auto_serve_enabled: Optional[bool] = None
    auto_serve_minutes: Optional[int] = Field(default=None, ge=1)
    priority_enabled: Optional[bool] = None
    max_tokens_per_day: Optional[int] = Field(default=None, ge=1)


class PauseIn(BaseModel):
    reason: Optional[str] = None


class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    queue_id: str
    is_paused: bool
    pause_reason: Optional[str] = None
    auto_serve_enabled: bool
    auto_serve_minutes: int
    priority_enabled: bool
    max_tokens_per_day: Optional[int] = None
    updated_at: datetime


class ServiceTypeIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_duration_minutes: int = Field(default=15, ge=1)


class ServiceTypePatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_duration_minutes: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class ServiceTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    queue_id: str
    name: str
    description: Optional[str] = None
    estimated_duration_minutes: int
    is_active: bool


class TokenIn(BaseModel):
    """Input schema for adding a person to a queue."""

    person_name: str
    contact_number: Optional[str] = None
    service_type_id: Optional[str] = None
    priority_level: int = 1


class TokenOut(BaseModel):
    """Token representation including lifecycle timestamps."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    queue_id: str
    person_name: str
    contact_number: Optional[str] = None
    service_type_id: Optional[str] = None
    priority_level: int
    position: int
    status: str
    created_at: datetime
    serving_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None


class ReorderIn(BaseModel):
    """Full waiting order, first element becomes position 1."""

    token_ids: List[str]


class MoveIn(BaseModel):
    position: int


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    queue_id: str
    token_id: Optional[str] = None
    event_type: str
    created_at: datetime
    wait_time_minutes: Optional[int] = None
    service_duration_minutes: Optional[int] = None


def dump(model: type[BaseModel], obj) -> dict:
    """Serialise an ORM object through ``model`` into JSON-safe data."""
    return model.model_validate(obj).model_dump(mode="json")


def dump_all(model: type[BaseModel], objs) -> list[dict]:
    return [dump(model, obj) for obj in objs]
