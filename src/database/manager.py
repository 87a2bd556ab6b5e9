"""
Database manager for PostgreSQL operations
Stores discovered AVR/TV addresses and their connection history
"""

import asyncpg
import logging
from typing import List, Dict, Optional, Any
from datetime import datetime, timezone, timedelta
import json

from .models import DeviceSettingsRecord, _load_history

logger = logging.getLogger(__name__)

# Device class value -> table; never built from request input
SETTINGS_TABLES = {
    'avr': 'avr_settings',
    'tv': 'tv_settings',
}

def _table_for(device_class) -> str:
    key = getattr(device_class, 'value', device_class)
    try:
        return SETTINGS_TABLES[key]
    except KeyError:
        raise ValueError(f"Unknown device class: {device_class}") from None

class DatabaseManager:
    """Manages PostgreSQL operations for device settings"""

    def __init__(self, config: Dict):
        self.config = config
        self.pool = None
        self.db_host = config['database']['host']
        self.db_port = config['database']['port']
        self.db_name = config['database']['database']
        self.db_user = config['database']['username']
        self.db_password = config['database']['password']
        self.history_limit = int(config.get('discovery', {}).get('history_limit', 50))

    async def initialize(self):
        """Initialize database connection pool and schema"""
        try:
            self.pool = await asyncpg.create_pool(
                host=self.db_host,
                port=self.db_port,
                database=self.db_name,
                user=self.db_user,
                password=self.db_password,
                min_size=1,
                max_size=5,
                command_timeout=10
            )

            logger.info("Database connection pool created")

            await self.create_schema()
            logger.info("Database schema initialized")

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    async def create_schema(self):
        """Create settings tables if they don't exist"""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS avr_settings (
            id SERIAL PRIMARY KEY,
            ip INET NOT NULL,
            port INTEGER NOT NULL DEFAULT 23,
            device_name TEXT,
            mac_address TEXT,
            last_connected_at TIMESTAMPTZ,
            last_discovery_at TIMESTAMPTZ,
            failed_attempts INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            discovery_history JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (ip, port)
        );

        CREATE TABLE IF NOT EXISTS tv_settings (
            id SERIAL PRIMARY KEY,
            ip INET NOT NULL,
            port INTEGER NOT NULL DEFAULT 7345,
            auth_token TEXT,
            device_name TEXT,
            mac_address TEXT,
            last_connected_at TIMESTAMPTZ,
            last_discovery_at TIMESTAMPTZ,
            failed_attempts INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            discovery_history JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (ip, port)
        );

        CREATE INDEX IF NOT EXISTS idx_avr_settings_active ON avr_settings(is_active);
        CREATE INDEX IF NOT EXISTS idx_tv_settings_active ON tv_settings(is_active);
        """

        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)

    # ================== READS ==================

    async def _get_current_settings(self, table: str) -> Optional[DeviceSettingsRecord]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT * FROM {table}
                    WHERE is_active = true
                    ORDER BY last_connected_at DESC NULLS LAST
                    LIMIT 1
                """)
                return DeviceSettingsRecord.from_row(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get current {table}: {e}")
            return None

    async def get_current_avr_settings(self) -> Optional[DeviceSettingsRecord]:
        """Active AVR settings, most recently connected first"""
        return await self._get_current_settings('avr_settings')

    async def get_current_tv_settings(self) -> Optional[DeviceSettingsRecord]:
        return await self._get_current_settings('tv_settings')

    async def get_discovery_history(self, device_class, ip: str, port: int) -> List[Dict[str, Any]]:
        table = _table_for(device_class)
        try:
            async with self.pool.acquire() as conn:
                raw = await conn.fetchval(
                    f"SELECT discovery_history FROM {table} WHERE ip = $1 AND port = $2", ip, port
                )
                return _load_history(raw)
        except Exception as e:
            logger.error(f"Failed to get discovery history for {ip}:{port}: {e}")
            return []

    # ================== WRITES ==================

    async def upsert_avr_settings(self, ip: str, port: int = 23, device_name: Optional[str] = None,
                                  mac_address: Optional[str] = None) -> bool:
        """Make this address the single active AVR and mark it connected"""
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute("""
                        UPDATE avr_settings SET is_active = false, updated_at = NOW()
                        WHERE is_active = true AND NOT (ip = $1 AND port = $2)
                    """, ip, port)

                    await conn.execute("""
                        INSERT INTO avr_settings (
                            ip, port, device_name, mac_address, last_connected_at,
                            last_discovery_at, failed_attempts, is_active
                        ) VALUES ($1, $2, $3, $4, NOW(), NOW(), 0, true)
                        ON CONFLICT (ip, port) DO UPDATE SET
                            device_name = COALESCE($3, avr_settings.device_name),
                            mac_address = COALESCE($4, avr_settings.mac_address),
                            last_connected_at = NOW(),
                            failed_attempts = 0,
                            is_active = true,
                            updated_at = NOW()
                    """, ip, port, device_name, mac_address)

            logger.info(f"AVR settings updated: {ip}:{port}")
            return True
        except Exception as e:
            logger.error(f"Failed to upsert AVR settings {ip}:{port}: {e}")
            return False

    async def save_tv_settings(self, endpoint, auth_token: Optional[str] = None,
                               mac_address: Optional[str] = None) -> bool:
        """Upsert a TV row from a validated endpoint"""
        device_name = (endpoint.device_info or {}).get('name')
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO tv_settings (
                        ip, port, auth_token, device_name, mac_address,
                        last_connected_at, last_discovery_at, failed_attempts, is_active
                    ) VALUES ($1, $2, $3, $4, $5, NOW(), NOW(), 0, true)
                    ON CONFLICT (ip, port) DO UPDATE SET
                        auth_token = COALESCE($3, tv_settings.auth_token),
                        device_name = COALESCE($4, tv_settings.device_name),
                        mac_address = COALESCE($5, tv_settings.mac_address),
                        last_connected_at = NOW(),
                        last_discovery_at = NOW(),
                        failed_attempts = 0,
                        is_active = true,
                        updated_at = NOW()
                """, endpoint.ip, endpoint.port, auth_token, device_name, mac_address)

            logger.info(f"TV settings saved: {endpoint.ip}:{endpoint.port} ({device_name})")
            return True
        except Exception as e:
            logger.error(f"Failed to save TV settings {endpoint.ip}:{endpoint.port}: {e}")
            return False

    async def record_failed_connection(self, device_class, ip: str, port: int) -> bool:
        table = _table_for(device_class)
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(f"""
                    UPDATE {table}
                    SET failed_attempts = failed_attempts + 1, updated_at = NOW()
                    WHERE ip = $1 AND port = $2 AND is_active = true
                """, ip, port)
            logger.debug(f"Recorded failed connection to {ip}:{port}")
            return True
        except Exception as e:
            logger.error(f"Failed to record failed connection {ip}:{port}: {e}")
            return False

    async def add_discovery_history(self, device_class, ip: str, port: int, entry: Dict[str, Any]) -> bool:
        """Append a discovery outcome, keeping the most recent history_limit entries"""
        table = _table_for(device_class)
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    raw = await conn.fetchval(
                        f"SELECT discovery_history FROM {table} WHERE ip = $1 AND port = $2 FOR UPDATE",
                        ip, port
                    )
                    history = (_load_history(raw) + [entry])[-self.history_limit:]

                    await conn.execute(f"""
                        INSERT INTO {table} (ip, port, is_active, discovery_history, last_discovery_at)
                        VALUES ($1, $2, false, $3, NOW())
                        ON CONFLICT (ip, port) DO UPDATE SET
                            discovery_history = $3,
                            last_discovery_at = NOW(),
                            updated_at = NOW()
                    """, ip, port, json.dumps(history))
            return True
        except Exception as e:
            logger.error(f"Failed to add discovery history for {ip}:{port}: {e}")
            return False

    async def cleanup_old_settings(self, days_old: int = 30):
        """Delete inactive rows that kept failing and have not been touched in days_old days"""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        try:
            async with self.pool.acquire() as conn:
                for table in SETTINGS_TABLES.values():
                    deleted = await conn.fetchval(f"""
                        WITH removed AS (
                            DELETE FROM {table}
                            WHERE is_active = false AND failed_attempts > 10 AND updated_at < $1
                            RETURNING 1
                        )
                        SELECT COUNT(*) FROM removed
                    """, cutoff)
                    if deleted:
                        logger.info(f"Cleaned up {deleted} old rows from {table}")
        except Exception as e:
            logger.error(f"Settings cleanup failed: {e}")
