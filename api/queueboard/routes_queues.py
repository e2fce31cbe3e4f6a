"""Manager routes for queues, their settings and service types."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .deps.manager import get_manager_id
from .deps.services import get_store
from .schemas import (
    PauseIn,
    QueueIn,
    QueueOut,
    ServiceTypeIn,
    ServiceTypeOut,
    ServiceTypePatch,
    SettingsIn,
    SettingsOut,
    dump,
    dump_all,
)
from .services import QueueStore
from .utils.responses import ok

router = APIRouter(prefix="/api/queues", tags=["queues"])


@router.post("", status_code=201)
async def create_queue(
    payload: QueueIn,
    manager_id: str = Depends(get_manager_id),
    store: QueueStore = Depends(get_store),
):
    queue = (
        await store.create_queue(manager_id, payload.name, payload.description)
    ).unwrap()
    return ok(dump(QueueOut, queue))


@router.get("")
async def list_queues(
    manager_id: str = Depends(get_manager_id),
    store: QueueStore = Depends(get_store),
):
    queues = (await store.list_queues(manager_id)).unwrap()
    return ok(dump_all(QueueOut, queues))


@router.get("/{queue_id}")
async def get_queue(queue_id: str, store: QueueStore = Depends(get_store)):
    return ok(dump(QueueOut, (await store.get_queue(queue_id)).unwrap()))


@router.get("/{queue_id}/settings")
async def get_settings(queue_id: str, store: QueueStore = Depends(get_store)):
    return ok(dump(SettingsOut, (await store.get_settings(queue_id)).unwrap()))


@router.patch("/{queue_id}/settings")
async def update_settings(
    queue_id: str, payload: SettingsIn, store: QueueStore = Depends(get_store)
):
    values = payload.model_dump(exclude_unset=True)
    settings = (await store.update_settings(queue_id, values)).unwrap()
    return ok(dump(SettingsOut, settings))


@router.post("/{queue_id}/pause")
async def pause_queue(
    queue_id: str, payload: PauseIn | None = None, store: QueueStore = Depends(get_store)
):
    reason = payload.reason if payload else None
    return ok(dump(SettingsOut, (await store.pause(queue_id, reason)).unwrap()))


@router.post("/{queue_id}/resume")
async def resume_queue(queue_id: str, store: QueueStore = Depends(get_store)):
    return ok(dump(SettingsOut, (await store.resume(queue_id)).unwrap()))


@router.post("/{queue_id}/close")
async def close_queue(queue_id: str, store: QueueStore = Depends(get_store)):
    return ok(dump(QueueOut, (await store.close_queue(queue_id)).unwrap()))


@router.post("/{queue_id}/reopen")
async def reopen_queue(queue_id: str, store: QueueStore = Depends(get_store)):
    return ok(dump(QueueOut, (await store.reopen_queue(queue_id)).unwrap()))


@router.get("/{queue_id}/service-types")
async def list_service_types(queue_id: str, store: QueueStore = Depends(get_store)):
    return ok(dump_all(ServiceTypeOut, (await store.list_service_types(queue_id)).unwrap()))


@router.post("/{queue_id}/service-types", status_code=201)
async def create_service_type(
    queue_id: str, payload: ServiceTypeIn, store: QueueStore = Depends(get_store)
):
    service_type = (
        await store.create_service_type(
            queue_id,
            payload.name,
            payload.estimated_duration_minutes,
            payload.description,
        )
    ).unwrap()
    return ok(dump(ServiceTypeOut, service_type))


@router.patch("/service-types/{service_type_id}")
async def update_service_type(
    service_type_id: str,
    payload: ServiceTypePatch,
    store: QueueStore = Depends(get_store),
):
    values = payload.model_dump(exclude_unset=True)
    service_type = (await store.update_service_type(service_type_id, values)).unwrap()
    return ok(dump(ServiceTypeOut, service_type))


@router.delete("/service-types/{service_type_id}")
async def deactivate_service_type(
    service_type_id: str, store: QueueStore = Depends(get_store)
):
    service_type = (await store.deactivate_service_type(service_type_id)).unwrap()
    return ok(dump(ServiceTypeOut, service_type))
