"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse

from app.schemas import (
    AIProvider,
    AISettings,
    ChatRequest,
    Device,
    DeviceCreate,
    DeviceUpdate,
    HistoryResponse,
    ModePayload,
    Notification,
    NotificationFeedResponse,
    PredictiveAnalysis,
    Protocol,
    ProtocolCreate,
    SimulatedNotificationRequest,
)
from datastore.protocol_catalog import ProtocolCatalog, build_default_catalog
from services.ai_gateway import AIGateway, build_default_gateway
from services.monitor import MonitorService, build_default_monitor
from storage.ai_settings import AISettingsStore, build_default_settings_store

router = APIRouter()

_MASK_PREFIX = "****"


def get_monitor() -> MonitorService:
    return build_default_monitor()


def get_gateway() -> AIGateway:
    return build_default_gateway()


def get_settings_store() -> AISettingsStore:
    return build_default_settings_store()


def get_catalog() -> ProtocolCatalog:
    return build_default_catalog()


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])


def _mask(api_key: str) -> str:
    if not api_key:
        return ""
    return f"{_MASK_PREFIX}{api_key[-4:]}"


def _masked(settings: AISettings) -> AISettings:
    masked = settings.model_copy(deep=True)
    for provider in AIProvider:
        section = masked.for_provider(provider)
        section.api_key = _mask(section.api_key)
    return masked


def _restore_masked_keys(incoming: AISettings, current: AISettings) -> AISettings:
    """Keep the stored key wherever the client echoed back the masked value."""
    restored = incoming.model_copy(deep=True)
    for provider in AIProvider:
        section = restored.for_provider(provider)
        if section.api_key.startswith(_MASK_PREFIX):
            section.api_key = current.for_provider(provider).api_key
    return restored


@router.get("/devices", response_model=List[Device], summary="List registered devices.")
async def list_devices(monitor: MonitorService = Depends(get_monitor)) -> List[Device]:
    return monitor.list_devices()


@router.post(
    "/devices",
    status_code=status.HTTP_201_CREATED,
    response_model=Device,
    summary="Register a new device.",
)
async def add_device(
    payload: DeviceCreate,
    monitor: MonitorService = Depends(get_monitor),
) -> Device:
    try:
        return await monitor.add_device(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get("/devices/{device_id}", response_model=Device, summary="Fetch one device.")
async def get_device(
    device_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> Device:
    try:
        return monitor.get_device(device_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.put(
    "/devices/{device_id}",
    response_model=Device,
    summary="Edit a device's name, protocol and connection parameters.",
)
async def update_device(
    device_id: str,
    payload: DeviceUpdate,
    monitor: MonitorService = Depends(get_monitor),
) -> Device:
    try:
        return monitor.update_device(device_id, payload)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.delete(
    "/devices/{device_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect and remove a device.",
)
async def delete_device(
    device_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> Response:
    try:
        monitor.delete_device(device_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/devices/{device_id}/history",
    response_model=HistoryResponse,
    summary="Readings within an inclusive UTC date range, with per-channel statistics.",
)
async def device_history(
    device_id: str,
    start: Optional[date] = Query(None, description="First UTC day to include."),
    end: Optional[date] = Query(None, description="Last UTC day to include."),
    monitor: MonitorService = Depends(get_monitor),
) -> HistoryResponse:
    if start is not None and end is not None and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must not be after end.",
        )
    try:
        return monitor.history(device_id, start, end)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.post(
    "/devices/{device_id}/analysis",
    response_model=PredictiveAnalysis,
    summary="Request a predictive maintenance analysis from the active AI provider.",
)
async def analyze_device(
    device_id: str,
    monitor: MonitorService = Depends(get_monitor),
    gateway: AIGateway = Depends(get_gateway),
    store: AISettingsStore = Depends(get_settings_store),
) -> PredictiveAnalysis:
    try:
        device = monitor.get_device(device_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    analysis = await gateway.get_predictive_analysis(device, store.get())
    if analysis is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The AI provider did not return a usable analysis.",
        )
    return analysis


@router.get("/mode", response_model=ModePayload, summary="Current data-source mode.")
async def get_mode(monitor: MonitorService = Depends(get_monitor)) -> ModePayload:
    return ModePayload(mode=monitor.mode)


@router.put("/mode", response_model=ModePayload, summary="Switch between simulation and live data.")
async def set_mode(
    payload: ModePayload,
    monitor: MonitorService = Depends(get_monitor),
) -> ModePayload:
    return ModePayload(mode=await monitor.set_mode(payload.mode))


@router.post(
    "/cycle",
    response_model=List[Notification],
    summary="Run one update cycle immediately and return the alerts it raised.",
)
async def run_cycle(monitor: MonitorService = Depends(get_monitor)) -> List[Notification]:
    return await monitor.run_cycle()


@router.get(
    "/notifications",
    response_model=NotificationFeedResponse,
    summary="Notification feed, most recent first.",
)
async def list_notifications(
    monitor: MonitorService = Depends(get_monitor),
) -> NotificationFeedResponse:
    return NotificationFeedResponse(
        unread_count=monitor.unread_count(),
        notifications=monitor.notifications(),
    )


@router.post("/notifications/read", summary="Mark every notification as read.")
async def mark_notifications_read(
    monitor: MonitorService = Depends(get_monitor),
) -> dict[str, int]:
    return {"marked": monitor.mark_notifications_read()}


@router.post(
    "/notifications/simulate",
    status_code=status.HTTP_201_CREATED,
    response_model=Notification,
    summary="Inject a simulated alert for a random device.",
)
async def simulate_notification(
    payload: SimulatedNotificationRequest,
    monitor: MonitorService = Depends(get_monitor),
) -> Notification:
    notification = monitor.simulate_notification(payload.level)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No devices registered.",
        )
    return notification


@router.get("/settings/ai", response_model=AISettings, summary="AI provider settings (keys masked).")
async def get_ai_settings(store: AISettingsStore = Depends(get_settings_store)) -> AISettings:
    return _masked(store.get())


@router.put("/settings/ai", response_model=AISettings, summary="Replace the AI provider settings.")
async def update_ai_settings(
    payload: AISettings,
    store: AISettingsStore = Depends(get_settings_store),
) -> AISettings:
    updated = store.update(_restore_masked_keys(payload, store.get()))
    return _masked(updated)


@router.post("/chat", summary="Stream a chat reply grounded in the current device data.")
async def chat(
    payload: ChatRequest,
    monitor: MonitorService = Depends(get_monitor),
    gateway: AIGateway = Depends(get_gateway),
    store: AISettingsStore = Depends(get_settings_store),
) -> StreamingResponse:
    stream = gateway.stream_chat(payload.messages, store.get(), monitor.list_devices())
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")


@router.get("/protocols", response_model=List[Protocol], summary="Known device protocols.")
async def list_protocols(catalog: ProtocolCatalog = Depends(get_catalog)) -> List[Protocol]:
    return catalog.list()


@router.post(
    "/protocols",
    status_code=status.HTTP_201_CREATED,
    response_model=Protocol,
    summary="Register a custom protocol label.",
)
async def add_protocol(
    payload: ProtocolCreate,
    catalog: ProtocolCatalog = Depends(get_catalog),
) -> Protocol:
    try:
        return catalog.add(payload.name, payload.description)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(monitor: MonitorService = Depends(get_monitor)) -> dict[str, str]:
    return {"status": "ok", "mode": monitor.mode.value}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status and /ui for the dashboard."}
