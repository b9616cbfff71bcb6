"""
Direct device commands, bypassing the rule engine.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ...core.auth import UserContext, get_current_user
from ...core.errors import CommandPublishError
from ...schemas.telemetry import DeviceCommandIn
from ...services.mqtt_publisher import command_topic


router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


def get_command_publisher(request: Request):
    publisher = getattr(request.app.state, "command_publisher", None)
    if publisher is None:
        raise HTTPException(status_code=503, detail="Command publisher unavailable")
    return publisher


@router.post("/{device_id}/command", response_model=dict)
def send_command(
    device_id: str,
    payload: DeviceCommandIn,
    publisher=Depends(get_command_publisher),
    user: UserContext = Depends(get_current_user),
) -> dict:
    try:
        publisher.publish_device_command(user.home_id, device_id, payload.on)
    except CommandPublishError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return {"ok": True, "topic": command_topic(user.home_id, device_id), "on": payload.on}
