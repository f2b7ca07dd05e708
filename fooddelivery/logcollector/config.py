"""Log collector configuration."""

from pydantic import Field

from fooddelivery.shared.config import ServiceConfig


class LogCollectorConfig(ServiceConfig):
    service_name: str = Field(default="log-collector")
    postgres_db: str = Field(default="logs")
    consumer_group_id: str = Field(default="log-collector")
    http_port: int = Field(default=8008, ge=1, le=65535)

    # === SYSTEM LOG FILES ===
    system_log_dir: str = Field(default="logs", description="Directory for system log files")
    system_log_file: str = Field(default="system.log", description="Active system log file name")
    system_log_max_bytes: int = Field(
        default=10 * 1024 * 1024, ge=1024, description="Rotate after this many bytes"
    )
    system_log_backup_count: int = Field(default=5, ge=0, le=100, description="Rotated files kept")


def load_config() -> LogCollectorConfig:
    """Load and validate log collector configuration."""
    return LogCollectorConfig()
