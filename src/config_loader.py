"""
Configuration loader for the Home Theater Local Server
Loads and validates configuration from YAML files, then applies environment overrides
"""

import os
import yaml
import logging
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"

def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        # Validate required sections
        _validate_config(config)

        # Apply defaults, then let the environment win
        config = _apply_defaults(config)
        config = _apply_env_overrides(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def _validate_config(config: Dict) -> None:
    """Validate that required configuration sections exist"""
    required_sections = ['avr', 'discovery']

    for section in required_sections:
        if section not in config or config[section] is None:
            raise ValueError(f"Missing required configuration section: {section}")

    # Validate AVR section
    avr = config['avr']
    if 'port' in avr and not (0 < int(avr['port']) < 65536):
        raise ValueError(f"avr.port out of range: {avr['port']}")

    connection_timeout = avr.get('connection_timeout')
    command_timeout = avr.get('command_timeout')
    for name, value in (('connection_timeout', connection_timeout), ('command_timeout', command_timeout)):
        if value is not None and float(value) <= 0:
            raise ValueError(f"avr.{name} must be positive")

    # Validate discovery section
    discovery = config['discovery']
    for key in ('avr_ip_range', 'tv_ip_range'):
        if key in discovery:
            octet_range = discovery[key]
            if not isinstance(octet_range, (list, tuple)) or len(octet_range) != 2:
                raise ValueError(f"discovery.{key} must be a [low, high] pair")

    for key in ('avr_threshold', 'tv_threshold'):
        if key in discovery and float(discovery[key]) < 0:
            raise ValueError(f"discovery.{key} must not be negative")

    # Discovery validation must give up before a steady-state command would
    validation_timeout = float(discovery.get('validation_timeout', 2.0))
    if validation_timeout >= float(avr.get('command_timeout', 3.0)):
        raise ValueError("discovery.validation_timeout must be shorter than avr.command_timeout")

    # Validate database section if present
    if config.get('database'):
        db = config['database']
        required_db_fields = ['host', 'port', 'database', 'username', 'password']
        for field in required_db_fields:
            if field not in db:
                raise ValueError(f"Missing required database field: {field}")

def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""

    # AVR defaults
    avr_defaults = {
        'ip': None,
        'port': 23,
        'device_name': 'Denon AVR',
        'enable_connection': False,
        'connection_timeout': 5.0,
        'command_timeout': 3.0,
        'connect_retries': 2,
        'reconnect_base_delay': 1.0,
        'reconnect_max_delay': 60.0,
        'max_reconnect_attempts': 5,
        'status_cache_seconds': 30,
        'status_poll_seconds': 30
    }
    for key, default_value in avr_defaults.items():
        if key not in config['avr']:
            config['avr'][key] = default_value

    # Discovery defaults - heuristics tuned on one household network, kept configurable
    discovery_defaults = {
        'avr_threshold': 0.2,
        'tv_threshold': 0.3,
        'avr_ip_range': [90, 110],
        'tv_ip_range': [100, 130],
        'avr_mac_prefixes': ['0005cd', '001122'],
        'tv_mac_prefixes': ['2c641f', '58fd2b', 'f8e903'],
        'ping_timeout_ms': 3000,
        'arp_command': 'arp -a',
        'validation_timeout': 2.0,
        'avr_port': 23,
        'tv_port': 7345,
        'max_concurrent_validations': 10,
        'tv_auth_token': None,
        'scan_interval_minutes': 60,
        'history_limit': 50
    }
    for key, default_value in discovery_defaults.items():
        if key not in config['discovery']:
            config['discovery'][key] = default_value

    # API defaults
    if 'api' not in config:
        config['api'] = {}
    api_defaults = {
        'host': '0.0.0.0',
        'port': 8000,
        'cors_origins': ['*']
    }
    for key, default_value in api_defaults.items():
        if key not in config['api']:
            config['api'][key] = default_value

    # Logging defaults
    if 'logging' not in config:
        config['logging'] = {}
    logging_defaults = {
        'level': 'INFO',
        'file': 'logs/home_theater_server.log',
        'console_output': True,
        'timezone': 'America/New_York'
    }
    for key, default_value in logging_defaults.items():
        if key not in config['logging']:
            config['logging'][key] = default_value

    if 'database' not in config:
        config['database'] = None

    return config

def _apply_env_overrides(config: Dict) -> Dict:
    """Environment variables override the YAML file for the AVR connection"""
    avr = config['avr']

    enable = os.environ.get('ENABLE_AVR_CONNECTION')
    if enable is not None:
        avr['enable_connection'] = enable.strip().lower() == 'true'

    env_ip = os.environ.get('DENON_AVR_IP')
    if env_ip:
        avr['ip'] = env_ip.strip()

    env_port = os.environ.get('DENON_AVR_PORT')
    if env_port:
        try:
            avr['port'] = int(env_port)
        except ValueError:
            logger.warning(f"Ignoring invalid DENON_AVR_PORT: {env_port}")

    return config


class LocalTimeFormatter(logging.Formatter):
    """Formatter that displays timestamps in the configured site timezone"""

    def __init__(self, fmt=None, timezone_name: str = 'America/New_York'):
        super().__init__(fmt)
        self.local_tz = pytz.timezone(timezone_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.local_tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS TZ
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with site-local timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = LocalTimeFormatter(log_format, log_config.get('timezone', 'America/New_York'))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[]
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))

    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logger.info(f"Logging configured: level={level}, console={log_config.get('console_output', True)}, file={log_file}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "avr": {
            "ip": "192.168.50.98",
            "port": 23,
            "device_name": "SmartHome Controller",
            "enable_connection": False,
            "connection_timeout": 5.0,
            "command_timeout": 3.0,
            "status_poll_seconds": 30
        },
        "discovery": {
            "avr_threshold": 0.2,
            "tv_threshold": 0.3,
            "avr_ip_range": [90, 110],
            "tv_ip_range": [100, 130],
            "validation_timeout": 2.0,
            "scan_interval_minutes": 60
        },
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "home_theater",
            "username": "postgres",
            "password": "postgres"
        },
        "api": {
            "host": "0.0.0.0",
            "port": 8000,
            "cors_origins": ["*"]
        },
        "logging": {
            "level": "INFO",
            "file": "logs/home_theater_server.log",
            "console_output": True,
            "timezone": "America/New_York"
        }
    }
