# Configuration module exports
from .app_config import (
    AppConfig,
    DatabaseConfig,
    SchedulerConfig,
    SecurityConfig,
    ServerConfig,
    MonitoringConfig,
    get_config,
    set_config
)

__all__ = [
    'AppConfig',
    'DatabaseConfig',
    'SchedulerConfig',
    'SecurityConfig',
    'ServerConfig',
    'MonitoringConfig',
    'get_config',
    'set_config'
]
