"""Application configuration using Pydantic Settings."""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/sensorhub/sensorhub.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # Database
    database_url: str = ""
    db_path: str = "sensorhub.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle_sec: int = 300
    db_pool_timeout_sec: float = 30.0
    db_connect_attempts: int = 10
    db_connect_interval_sec: float = 2.0

    # Per-operation deadline for repository calls
    query_timeout_sec: float = 5.0

    # Resolve the sensor dimension with a single conditional insert where
    # the database dialect supports it; lookup-then-insert otherwise.
    dimension_upsert: bool = True

    @model_validator(mode="after")
    def _resolve_database_url(self) -> "Settings":
        """Default to a SQLite file relative to the project root."""
        if not self.database_url:
            p = Path(self.db_path)
            if not p.is_absolute():
                p = _PROJECT_ROOT / p
            self.database_url = f"sqlite:///{p}"
        return self

    # MQTT feed
    mqtt_enabled: bool = False
    mqtt_protocol: str = "tcp"  # tcp or ws
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_user: str = ""
    mqtt_pass: str = ""
    mqtt_client_id: str = "sensorhub"
    mqtt_topic: str = "sensors/readings"
    mqtt_qos: int = 0
    mqtt_keepalive_sec: int = 60
    mqtt_connect_timeout_sec: float = 15.0

    # Logging
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "SENSORHUB_", "env_file": str(_ENV_FILE)}


settings = Settings()
