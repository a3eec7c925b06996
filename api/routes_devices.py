"""Device routes for the HomeSim Management API.

Every mutation goes through the registry's update path, so changes made
here trigger automation rules exactly like the simulator's own timers.
"""

from fastapi import APIRouter, HTTPException, Query

from .models import DeviceCreate, DeviceResponse, DeviceUpdate

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


def _get_or_404(home, device_id: str) -> dict:
    device = home.registry.get_device(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.get("", response_model=list[DeviceResponse])
def list_devices(
    room_id: str | None = None,
    device_type: str | None = Query(default=None, alias="type"),
    favorite: bool | None = None,
):
    """List devices, optionally filtered by room, type or favourite flag."""
    home = router.app.state.home
    devices = home.registry.list_devices()
    if room_id is not None:
        devices = [d for d in devices if d.get("room_id") == room_id]
    if device_type is not None:
        devices = [d for d in devices if d.get("type") == device_type]
    if favorite is not None:
        devices = [d for d in devices if bool(d.get("is_favorite")) == favorite]
    return devices


@router.get("/{device_id}", response_model=DeviceResponse)
def get_device(device_id: str):
    home = router.app.state.home
    return _get_or_404(home, device_id)


@router.post("", response_model=DeviceResponse, status_code=201)
def create_device(body: DeviceCreate):
    """Add a device. Heating appliances get their built-in automations."""
    home = router.app.state.home
    try:
        return home.add_device(body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.patch("/{device_id}", response_model=DeviceResponse)
def update_device(device_id: str, body: DeviceUpdate):
    """Apply a partial update (fires state-change automations)."""
    home = router.app.state.home
    device = _get_or_404(home, device_id)
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        return device
    result = home.registry.update_device(device_id, updates)
    if result is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return result


@router.delete("/{device_id}", status_code=204)
def delete_device(device_id: str):
    """Remove a device along with its scene steps, links and rules."""
    home = router.app.state.home
    if not home.registry.delete_device(device_id):
        raise HTTPException(status_code=404, detail="Device not found")


@router.post("/{device_id}/toggle", response_model=DeviceResponse)
def toggle_device(device_id: str):
    home = router.app.state.home
    result = home.registry.toggle_device(device_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return result


@router.post("/{device_id}/links/{other_id}", response_model=DeviceResponse)
def link_device(device_id: str, other_id: str):
    """Link two devices (symmetric)."""
    home = router.app.state.home
    _get_or_404(home, device_id)
    _get_or_404(home, other_id)
    if not home.registry.link_devices(device_id, other_id):
        raise HTTPException(status_code=422, detail="A device cannot be linked to itself")
    return home.registry.get_device(device_id)


@router.delete("/{device_id}/links/{other_id}", response_model=DeviceResponse)
def unlink_device(device_id: str, other_id: str):
    home = router.app.state.home
    _get_or_404(home, device_id)
    _get_or_404(home, other_id)
    home.registry.unlink_devices(device_id, other_id)
    return home.registry.get_device(device_id)
