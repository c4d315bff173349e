"""
Centralized application configuration management.
Provides type-safe configuration with environment variable support.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from dotenv import load_dotenv

from core.exceptions import ConfigurationError

@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    path: str = "data/users.db"
    pool_size: int = 5
    timeout: float = 30.0
    operation_timeout: float = 20.0

@dataclass
class SchedulerConfig:
    """Periodic job configuration settings."""
    timezone: str = "UTC"
    check_subscriptions_cadence: str = "@daily"
    reset_traffic_cadence: str = "@weekly"
    checkpoint_file: str = "docs/last_reset_time.txt"
    job_timeout: float = 20.0

@dataclass
class SecurityConfig:
    """Security configuration settings."""
    bot_token: Optional[str] = None

@dataclass
class ServerConfig:
    """Server configuration settings."""
    host: str = "0.0.0.0"
    port: int = 8082
    threads: int = 4
    cors_origins: List[str] = field(default_factory=lambda: ["http://example.com"])
    request_timeout: float = 60.0

@dataclass
class MonitoringConfig:
    """Monitoring configuration settings."""
    log_level: str = "INFO"

@dataclass
class AppConfig:
    """Main application configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'AppConfig':
        """Load configuration from environment variables."""
        if env_file and os.path.exists(env_file):
            load_dotenv(env_file)

        try:
            return cls(
                database=DatabaseConfig(
                    path=os.getenv("DATABASE_PATH", "data/users.db"),
                    pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
                    timeout=float(os.getenv("DB_TIMEOUT", "30")),
                    operation_timeout=float(os.getenv("DB_OPERATION_TIMEOUT", "20"))
                ),
                scheduler=SchedulerConfig(
                    timezone=os.getenv("SCHEDULER_TIMEZONE", "UTC"),
                    check_subscriptions_cadence=os.getenv("CHECK_SUBSCRIPTIONS_CADENCE", "@daily"),
                    reset_traffic_cadence=os.getenv("RESET_TRAFFIC_CADENCE", "@weekly"),
                    checkpoint_file=os.getenv("TRAFFIC_CHECKPOINT_FILE", "docs/last_reset_time.txt"),
                    job_timeout=float(os.getenv("JOB_TIMEOUT", "20"))
                ),
                security=SecurityConfig(
                    bot_token=os.getenv("BOT_TOKEN")
                ),
                server=ServerConfig(
                    host=os.getenv("SERVER_HOST", "0.0.0.0"),
                    port=int(os.getenv("API_PORT", "8082")),
                    threads=int(os.getenv("SERVER_THREADS", "4")),
                    cors_origins=_parse_list(os.getenv("CORS_ORIGINS", "http://example.com")),
                    request_timeout=float(os.getenv("REQUEST_TIMEOUT", "60"))
                ),
                monitoring=MonitoringConfig(
                    log_level=os.getenv("LOG_LEVEL", "INFO")
                )
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric configuration value: {e}") from e

    def validate(self) -> None:
        """Validate configuration settings."""
        if not self.security.bot_token:
            raise ConfigurationError("BOT_TOKEN is required")
        for name, value in (
            ("DB_TIMEOUT", self.database.timeout),
            ("DB_OPERATION_TIMEOUT", self.database.operation_timeout),
            ("JOB_TIMEOUT", self.scheduler.job_timeout),
            ("REQUEST_TIMEOUT", self.server.request_timeout),
        ):
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.database.pool_size < 1:
            raise ConfigurationError("DB_POOL_SIZE must be at least 1")
        try:
            ZoneInfo(self.scheduler.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown SCHEDULER_TIMEZONE '{self.scheduler.timezone}'") from e

        # Ensure database and checkpoint directories exist
        for file_path in (self.database.path, self.scheduler.checkpoint_file):
            Path(file_path).parent.mkdir(parents=True, exist_ok=True)

def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]

# Global configuration instance
_config: Optional[AppConfig] = None

def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        env_file = os.getenv("ACCOUNTS_ENV_FILE", ".env")
        _config = AppConfig.from_env(env_file)
        _config.validate()
    return _config

def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
