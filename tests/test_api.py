"""
HTTP API tests

Routes are exercised through FastAPI's TestClient with a simulated AVR session
and a scripted discovery service.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.main_api import HomeTheaterAPI
from avr.errors import CommandTimeout, ConnectionLost
from avr.telnet_client import ConnectionState, DenonTelnetClient
from discovery.models import Candidate, DeviceClass, ValidatedEndpoint

API_CONFIG = {'api': {'cors_origins': ['*']}}


def scripted_discovery():
    discovery = MagicMock()
    discovery.last_discovery_at = None
    discovery.scan_for_avr_devices = AsyncMock(return_value=[
        Candidate(ip='192.168.50.99', hostname='avr', confidence=1.3, reason='hostname contains "avr"')
    ])
    discovery.scan_for_tv_devices = AsyncMock(return_value=[])
    discovery.discover_and_validate = AsyncMock(return_value=[
        ValidatedEndpoint(ip='192.168.50.99', port=23, response_time_ms=5.0,
                          device_info={'brand': 'denon', 'power_state': 'ON'})
    ])
    discovery.discover_and_validate_tvs = AsyncMock(return_value=[
        ValidatedEndpoint(ip='192.168.50.115', port=7345, response_time_ms=20.0,
                          auth_required=True, device_class=DeviceClass.TV)
    ])
    return discovery


@pytest.fixture
def simulated_avr():
    return DenonTelnetClient({'ip': '192.168.50.98', 'port': 23, 'enable_connection': False})


@pytest.fixture
def client(simulated_avr):
    api = HomeTheaterAPI(simulated_avr, scripted_discovery(), API_CONFIG)
    return TestClient(api.app)


def failing_avr(error):
    avr = MagicMock()
    avr.connection_state = ConnectionState.CONNECTED
    for name in ('get_power_state', 'get_volume', 'send_command', 'set_volume', 'refresh_status'):
        setattr(avr, name, AsyncMock(side_effect=error))
    return avr


# ============================================================
# AVR routes
# ============================================================

class TestAvrRoutes:

    def test_status(self, client):
        response = client.get("/api/avr/status")
        assert response.status_code == 200
        assert response.json() == {
            'connection_state': 'simulated_fallback',
            'power': False,
            'volume': 40,
            'muted': False,
            'input': 'TV',
            'sound_mode': 'STEREO',
            'error': None
        }

    def test_power_on_then_query(self, client):
        assert client.post("/api/avr/power", json={'on': True}).json() == {'success': True}
        assert client.get("/api/avr/power").json() == {'power': True}

    def test_set_volume(self, client):
        assert client.post("/api/avr/volume", json={'percent': 65}).json() == {'success': True}
        assert client.get("/api/avr/volume").json() == {'volume': 65}

    def test_volume_out_of_range_is_rejected(self, client):
        assert client.post("/api/avr/volume", json={'percent': 101}).status_code == 422

    def test_mute_input_and_sound_mode(self, client):
        client.post("/api/avr/mute", json={'muted': True})
        client.post("/api/avr/input", json={'input': 'dvd'})
        client.post("/api/avr/sound-mode", json={'mode': 'movie'})

        assert client.get("/api/avr/mute").json() == {'muted': True}
        assert client.get("/api/avr/input").json() == {'input': 'DVD'}
        assert client.get("/api/avr/sound-mode").json() == {'sound_mode': 'MOVIE'}

    def test_named_command(self, client):
        response = client.post("/api/avr/command", json={'name': 'MUTE_ON'})
        assert response.json() == {'success': True, 'command': 'MUTE_ON'}
        assert client.get("/api/avr/mute").json() == {'muted': True}

    def test_unknown_command_is_bad_request(self, client):
        assert client.post("/api/avr/command", json={'name': 'SELF_DESTRUCT'}).status_code == 400

    def test_empty_input_is_bad_request(self, client):
        assert client.post("/api/avr/input", json={'input': '  '}).status_code == 400

    def test_refresh(self, client):
        response = client.post("/api/avr/refresh")
        assert response.status_code == 200
        assert response.json()['connection_state'] == 'simulated_fallback'

    def test_command_timeout_maps_to_504(self):
        api = HomeTheaterAPI(failing_avr(CommandTimeout("no reply")), scripted_discovery(), API_CONFIG)
        with TestClient(api.app) as client:
            response = client.get("/api/avr/power")
        assert response.status_code == 504
        assert response.json()['detail'] == "no reply"

    def test_connection_error_maps_to_503(self):
        api = HomeTheaterAPI(failing_avr(ConnectionLost("peer closed")), scripted_discovery(), API_CONFIG)
        with TestClient(api.app) as client:
            assert client.post("/api/avr/command", json={'name': 'POWER_ON'}).status_code == 503
            assert client.get("/api/avr/status").status_code == 503


# ============================================================
# Discovery routes
# ============================================================

class TestDiscoveryRoutes:

    def test_avr_candidates(self, client):
        body = client.get("/api/discovery/avr").json()
        assert body['candidates'][0]['ip'] == '192.168.50.99'
        assert body['candidates'][0]['device_class'] == 'avr'

    def test_tv_candidates_empty(self, client):
        assert client.get("/api/discovery/tv").json() == {'candidates': []}

    def test_validate_avrs(self, client):
        body = client.post("/api/discovery/avr/validate").json()
        assert body['endpoints'][0]['device_info'] == {'brand': 'denon', 'power_state': 'ON'}

    def test_validate_tvs(self, client):
        endpoint = client.post("/api/discovery/tv/validate").json()['endpoints'][0]
        assert endpoint['auth_required'] is True
        assert endpoint['device_class'] == 'tv'


# ============================================================
# System routes
# ============================================================

class TestSystemRoutes:

    def test_health(self, client):
        body = client.get("/api/system/health").json()
        assert body['status'] == 'healthy'
        assert body['database'] == 'disabled'
        assert body['avr'] == {
            'address': '192.168.50.98:23',
            'connection_state': 'simulated_fallback',
            'simulated': True,
            'pending_commands': 0
        }
        assert body['last_discovery_at'] is None

    def test_health_reports_last_discovery(self, simulated_avr):
        discovery = scripted_discovery()
        discovery.last_discovery_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        api = HomeTheaterAPI(simulated_avr, discovery, API_CONFIG, database_manager=MagicMock())

        body = TestClient(api.app).get("/api/system/health").json()
        assert body['last_discovery_at'] == '2024-05-01T12:00:00+00:00'
        assert body['database'] == 'configured'
