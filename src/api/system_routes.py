"""
System health and monitoring API routes
"""

from fastapi import APIRouter
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def create_system_routes(avr_client, discovery, db_manager=None):
    """Create system monitoring routes"""
    router = APIRouter(prefix="/api/system", tags=["system"])

    @router.get("/health")
    async def system_health():
        """System health check"""
        last_discovery = discovery.last_discovery_at
        ip, port = avr_client.target_address
        return {
            "status": "healthy",
            "database": "configured" if db_manager else "disabled",
            "avr": {
                "address": f"{ip}:{port}",
                "connection_state": avr_client.connection_state.value,
                "simulated": avr_client.is_simulated,
                "pending_commands": avr_client.pending_count
            },
            "last_discovery_at": last_discovery.isoformat() if last_discovery else None,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return router
