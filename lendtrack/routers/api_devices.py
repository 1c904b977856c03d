from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import PlainTextResponse

from ..deps.auth import require_actor, require_admin
from ..deps.services import get_lifecycle_service
from ..schemas.auth import Actor
from ..schemas.device import Device, DeviceCreate, DeviceStatus, DeviceUpdate
from ..services.lifecycle import DeviceLifecycleService
from ..services.reporting import devices_to_csv

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


@router.get("", response_model=list[Device])
def api_list(
    status_filter: Optional[DeviceStatus] = Query(default=None, alias="status"),
    os_name: Optional[str] = None,
    manufacturer: Optional[str] = None,
    q: Optional[str] = None,
    actor: Actor = Depends(require_actor),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.list_devices(status=status_filter, os_name=os_name, manufacturer=manufacturer, search=q)


@router.get("/export.csv", response_class=PlainTextResponse)
def api_export_csv(
    actor: Actor = Depends(require_admin),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    body = devices_to_csv(service.list_devices())
    return PlainTextResponse(
        body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="devices.csv"'},
    )


@router.get("/mine", response_model=list[Device])
def api_mine(
    actor: Actor = Depends(require_actor),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.list_devices_for_user(actor.id)


@router.get("/{device_id}", response_model=Device)
def api_get(
    device_id: str,
    actor: Actor = Depends(require_actor),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.get_device(device_id)


@router.post("", response_model=Device, status_code=status.HTTP_201_CREATED)
def api_register(
    payload: DeviceCreate,
    actor: Actor = Depends(require_actor),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.register_device(payload.model_dump(), actor)


@router.patch("/{device_id}", response_model=Device)
def api_update(
    device_id: str,
    payload: DeviceUpdate,
    actor: Actor = Depends(require_admin),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.update_device(device_id, payload.model_dump(exclude_unset=True))


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_delete(
    device_id: str,
    actor: Actor = Depends(require_admin),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    service.delete_device(device_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{device_id}/borrow", response_model=Device)
def api_borrow(
    device_id: str,
    actor: Actor = Depends(require_actor),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.borrow(device_id, actor)


@router.post("/{device_id}/return", response_model=Device)
def api_return(
    device_id: str,
    actor: Actor = Depends(require_actor),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.return_device(device_id, actor)


@router.post("/{device_id}/force-return", response_model=Device)
def api_force_return(
    device_id: str,
    actor: Actor = Depends(require_admin),
    service: DeviceLifecycleService = Depends(get_lifecycle_service),
):
    return service.force_return(device_id, actor)
