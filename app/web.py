from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.schemas import ConnectionStatus, DeviceStatus
from datastore.protocol_catalog import ProtocolCatalog, build_default_catalog
from services.monitor import MonitorService, build_default_monitor


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

STATUS_BADGES = {
    DeviceStatus.normal: "badge-normal",
    DeviceStatus.warning: "badge-warning",
    DeviceStatus.critical: "badge-critical",
}
CONNECTION_BADGES = {
    ConnectionStatus.disconnected: "badge-muted",
    ConnectionStatus.connecting: "badge-warning",
    ConnectionStatus.connected: "badge-normal",
    ConnectionStatus.error: "badge-critical",
}

REFRESH_SECONDS = 2


def get_monitor() -> MonitorService:
    return build_default_monitor()


def get_catalog() -> ProtocolCatalog:
    return build_default_catalog()


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    monitor: MonitorService = Depends(get_monitor),
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "devices": monitor.list_devices(),
            "mode": monitor.mode,
            "notifications": monitor.notifications()[:10],
            "unread_count": monitor.unread_count(),
            "status_badges": STATUS_BADGES,
            "connection_badges": CONNECTION_BADGES,
            "refresh_seconds": REFRESH_SECONDS,
        },
    )


@router.get("/ui/devices/{device_id}", name="ui_device_detail", response_class=HTMLResponse)
async def ui_device_detail(
    request: Request,
    device_id: str,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    monitor: MonitorService = Depends(get_monitor),
    catalog: ProtocolCatalog = Depends(get_catalog),
) -> HTMLResponse:
    try:
        device = monitor.get_device(device_id)
        history = monitor.history(device_id, start, end)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return templates.TemplateResponse(
        request,
        "ui/detail.html",
        {
            "device": device,
            "protocol": catalog.get(device.protocol),
            "readings": list(reversed(history.readings)),
            "stats": history.stats,
            "start": start,
            "end": end,
            "status_badges": STATUS_BADGES,
            "connection_badges": CONNECTION_BADGES,
            # A filtered view is a snapshot; only the live log keeps refreshing.
            "refresh_seconds": None if start or end else REFRESH_SECONDS,
        },
    )
