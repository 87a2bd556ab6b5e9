"""
Network discovery API routes
"""

from fastapi import APIRouter
import logging

from discovery.models import DeviceClass

logger = logging.getLogger(__name__)


def create_discovery_routes(discovery):
    """Create discovery routes; every route degrades to an empty list on failure"""
    router = APIRouter(prefix="/api/discovery", tags=["discovery"])

    @router.get("/avr")
    async def scan_avr():
        """Scored AVR candidates from the ARP table"""
        candidates = await discovery.scan_for_avr_devices()
        return {"candidates": [c.to_dict() for c in candidates]}

    @router.get("/tv")
    async def scan_tv():
        """Scored TV candidates from the ARP table"""
        candidates = await discovery.scan_for_tv_devices()
        return {"candidates": [c.to_dict() for c in candidates]}

    @router.post("/avr/validate")
    async def discover_and_validate_avrs():
        endpoints = await discovery.discover_and_validate(DeviceClass.AVR)
        return {"endpoints": [e.to_dict() for e in endpoints]}

    @router.post("/tv/validate")
    async def discover_and_validate_tvs():
        endpoints = await discovery.discover_and_validate_tvs()
        return {"endpoints": [e.to_dict() for e in endpoints]}

    return router
