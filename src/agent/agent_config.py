"""
src/agent/agent_config.py

Purpose: Configuration loading for the Suricata sidecar agent
Context: Operational parameters come from an optional YAML file and the
         process environment. The result is validated once at startup and
         shared by reference; nothing mutates it afterwards.

Precedence (highest first):
- Environment variables (CENTRAL_API_SERVER_URL, LOG_DIR, PORT, ...)
- YAML file named by AGENT_CONFIG (default: config.yaml), keys = field names
- Built-in defaults
"""

import os
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

# Field name -> environment variable
ENV_VARS = {
    'central_api_url': 'CENTRAL_API_SERVER_URL',
    'log_watch_interval_s': 'LOG_WATCH_INTERVAL',
    'cleanup_interval_s': 'CLEANUP_INTERVAL',
    'log_dir': 'LOG_DIR',
    'active_log_file': 'ACTIVE_LOG_FILE',
    'max_log_size_mb': 'MAX_LOG_SIZE_MB',
    'listen_port': 'PORT',
    'rules_dir': 'SURICATA_RULES_DIR',
    'rules_filename': 'SURICATA_CUSTOM_RULE_FILENAME',
    'suricata_config_path': 'SURICATA_CONFIG_PATH',
    'suricata_interface': 'SURICATA_INTERFACE',
    'network_interface': 'NETWORK_INTERFACE',
    'skip_suricata': 'SKIP_SURICATA',
    'suricata_container': 'SURICATA_CONTAINER',
    'auto_reload_rules': 'SURICATA_AUTO_RELOAD',
    'cors_origin': 'CORS_ALLOWED_ORIGIN',
    'log_level': 'LOG_LEVEL',
}

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


class AgentConfig(BaseModel):
    """
    Immutable agent configuration

    Attributes:
        central_api_url: Base URL of the upstream collector (None if unset)
        log_watch_interval_s: Poll cadence when the EVE log is absent or consumed
        cleanup_interval_s: Cadence of the archive retention sweep
        log_dir: Directory holding the active log and rotated archives
        active_log_file: Path of the EVE file Suricata is writing
        max_log_size_mb: Rotation threshold
        listen_port: First port tried for the control API
    """
    model_config = ConfigDict(frozen=True)

    central_api_url: Optional[str] = None
    log_watch_interval_s: float = 1.0
    cleanup_interval_s: float = 3600.0
    log_dir: str
    active_log_file: str
    max_log_size_mb: int = 100
    listen_port: int = 3000
    rules_dir: str = '/var/lib/suricata/rules'
    rules_filename: str = 'custom.rules'
    suricata_config_path: str = '/etc/suricata/suricata.yaml'
    suricata_interface: str = 'eth0'
    network_interface: str = 'eth0'
    skip_suricata: bool = False
    suricata_container: str = 'suricata'
    auto_reload_rules: bool = True
    cors_origin: str = 'http://localhost:8080'
    log_level: str = 'INFO'

    @field_validator('central_api_url')
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip().rstrip('/')

    @field_validator('log_watch_interval_s', 'cleanup_interval_s')
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError('interval must be positive')
        return value

    @field_validator('max_log_size_mb')
    @classmethod
    def _positive_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('max_log_size_mb must be positive')
        return value

    @field_validator('log_level')
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def rules_file_path(self) -> Path:
        return Path(self.rules_dir) / self.rules_filename

    @property
    def max_log_size_bytes(self) -> int:
        return self.max_log_size_mb * 1024 * 1024


def _read_yaml(config_path: str) -> dict:
    path = Path(config_path)
    if not path.exists():
        return {}

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    logger.info(f"Loaded configuration file: {config_path}")
    return data


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for field, var in ENV_VARS.items():
        raw = environ.get(var)
        if raw is None:
            continue
        if field in ('skip_suricata', 'auto_reload_rules'):
            values[field] = raw.strip().lower() in TRUE_VALUES
        else:
            values[field] = raw
    return values


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None
) -> AgentConfig:
    """
    Load configuration from YAML file and environment variables

    Args:
        config_path: YAML file path (defaults to $AGENT_CONFIG or config.yaml)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated, frozen AgentConfig

    Raises:
        pydantic.ValidationError: If a value has the wrong type or range
    """
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = environ.get('AGENT_CONFIG', 'config.yaml')

    values = dict(_read_yaml(config_path))
    values.update(_env_overrides(environ))

    # Derived defaults
    if not values.get('log_dir'):
        home = environ.get('HOME')
        base = Path(home) if home else Path('.')
        values['log_dir'] = str(base / 'suricata_logs')

    if not values.get('active_log_file'):
        values['active_log_file'] = str(Path(values['log_dir']) / 'eve.json')

    if not values.get('network_interface'):
        values['network_interface'] = values.get('suricata_interface', 'eth0')

    return AgentConfig(**values)
