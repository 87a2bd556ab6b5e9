"""
AVR control API routes
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
import logging

from avr.errors import AVRConnectionError, CommandTimeout

logger = logging.getLogger(__name__)

# Request models
class CommandRequest(BaseModel):
    name: str

class VolumeRequest(BaseModel):
    percent: int = Field(..., ge=0, le=100)

class MuteRequest(BaseModel):
    muted: bool

class PowerRequest(BaseModel):
    on: bool

class InputRequest(BaseModel):
    input: str

class SoundModeRequest(BaseModel):
    mode: str

class AVRStatusResponse(BaseModel):
    connection_state: str
    power: bool
    volume: int
    muted: bool
    input: str
    sound_mode: str
    error: Optional[str] = None


async def _call_avr(operation, description: str):
    """Run one client call, mapping client failures to HTTP errors"""
    try:
        return await operation
    except CommandTimeout as e:
        logger.warning(f"AVR {description} timed out: {e}")
        raise HTTPException(status_code=504, detail=str(e))
    except AVRConnectionError as e:
        logger.warning(f"AVR {description} failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _status_response(avr_client) -> AVRStatusResponse:
    state = avr_client.status
    return AVRStatusResponse(
        connection_state=avr_client.connection_state.value,
        power=state.power,
        volume=state.volume_percent,
        muted=state.muted,
        input=state.input,
        sound_mode=state.sound_mode
    )


def create_avr_routes(avr_client):
    """Create AVR control routes bound to one telnet session"""
    router = APIRouter(prefix="/api/avr", tags=["avr"])

    @router.get("/status", response_model=AVRStatusResponse)
    async def get_status():
        """Status from the mirrored state, queried where stale"""
        await _call_avr(avr_client.refresh_status(force=False), "status")
        return _status_response(avr_client)

    @router.post("/refresh", response_model=AVRStatusResponse)
    async def refresh_status():
        """Force a full status query"""
        await _call_avr(avr_client.refresh_status(force=True), "refresh")
        return _status_response(avr_client)

    @router.get("/power")
    async def get_power():
        return {"power": await _call_avr(avr_client.get_power_state(), "power query")}

    @router.get("/volume")
    async def get_volume():
        return {"volume": await _call_avr(avr_client.get_volume(), "volume query")}

    @router.get("/mute")
    async def get_mute():
        return {"muted": await _call_avr(avr_client.get_mute_state(), "mute query")}

    @router.get("/input")
    async def get_input():
        return {"input": await _call_avr(avr_client.get_current_input(), "input query")}

    @router.get("/sound-mode")
    async def get_sound_mode():
        return {"sound_mode": await _call_avr(avr_client.get_sound_mode(), "sound mode query")}

    @router.post("/command")
    async def send_command(request: CommandRequest):
        """Send a named command from the command table"""
        success = await _call_avr(avr_client.send_command(request.name), f"command {request.name}")
        return {"success": success, "command": request.name}

    @router.post("/power")
    async def set_power(request: PowerRequest):
        operation = avr_client.power_on() if request.on else avr_client.power_off()
        return {"success": await _call_avr(operation, "power")}

    @router.post("/volume")
    async def set_volume(request: VolumeRequest):
        return {"success": await _call_avr(avr_client.set_volume(request.percent), "volume")}

    @router.post("/mute")
    async def set_mute(request: MuteRequest):
        return {"success": await _call_avr(avr_client.set_mute(request.muted), "mute")}

    @router.post("/input")
    async def set_input(request: InputRequest):
        return {"success": await _call_avr(avr_client.set_input(request.input), "input")}

    @router.post("/sound-mode")
    async def set_sound_mode(request: SoundModeRequest):
        return {"success": await _call_avr(avr_client.set_sound_mode(request.mode), "sound mode")}

    return router
