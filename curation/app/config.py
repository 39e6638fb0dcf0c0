"""
Configuration for the Video Curation Activity Core

Settings come from three layers, highest first:
environment variables (per-group prefix), configs/app.yaml sections, defaults.
"""

import logging
import logging.handlers
import os
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/app.yaml"

SettingsT = TypeVar("SettingsT", bound=BaseSettings)


# ============================================================================
# Transport & Infrastructure Settings
# ============================================================================


class APIConfig(BaseSettings):
    """HTTP adapter settings"""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8000, description="Bind port")
    prefix: str = Field(default="/api/v1", description="Router prefix")
    debug: bool = Field(default=False, description="FastAPI debug mode")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated CORS origins",
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Absolute base for canonical subject and share URLs",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class DatabaseConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(
        default="sqlite+aiosqlite:///./curation.db",
        description="Async SQLAlchemy URL",
    )
    echo: bool = Field(default=False, description="Log emitted SQL")
    pool_size: int = Field(default=5, description="Pool size (ignored for SQLite)")
    max_overflow: int = Field(default=10, description="Pool overflow (ignored for SQLite)")


class LoggingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    file_path: Optional[str] = Field(
        default="./logs/curation.log", description="Rotating log file (unset to disable)"
    )
    max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate after this size")
    backup_count: int = Field(default=5, description="Rotated files to keep")


class CeleryConfig(BaseSettings):
    """Maintenance worker and beat settings"""

    model_config = SettingsConfigDict(env_prefix="CELERY_")

    broker_url: str = Field(default="redis://localhost:6379/0")
    result_backend: str = Field(default="redis://localhost:6379/0")

    task_serializer: str = Field(default="json")
    result_serializer: str = Field(default="json")
    accept_content: List[str] = Field(default=["json"])

    task_time_limit: int = Field(default=900, description="Hard limit per cleanup run (s)")
    task_soft_time_limit: int = Field(default=600, description="Soft limit per cleanup run (s)")
    task_acks_late: bool = Field(default=True)
    worker_prefetch_multiplier: int = Field(default=1)
    worker_hijack_root_logger: bool = Field(default=False)
    result_expires: int = Field(default=86400, description="Keep task results for a day")

    task_default_queue: str = Field(default="maintenance")
    beat_scheduler: str = Field(default="celery.beat:PersistentScheduler")
    beat_schedule_filename: str = Field(default="celerybeat-schedule")

    cleanup_hour: int = Field(default=3, description="UTC hour of the daily retention runs")
    share_cleanup_minute: int = Field(
        default=45, description="Minute past each hour when expired shares are removed"
    )

    @field_validator("cleanup_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("cleanup_hour must be between 0 and 23")
        return v

    @field_validator("share_cleanup_minute")
    @classmethod
    def validate_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("share_cleanup_minute must be between 0 and 59")
        return v


# ============================================================================
# Activity Core Settings
# ============================================================================


class ActivitySettings(BaseSettings):
    """Activity log, aggregation and feed settings"""

    model_config = SettingsConfigDict(env_prefix="ACTIVITY_")

    aggregation_window_hours: int = Field(
        default=6, description="Sliding window for folding repeated actions"
    )
    max_conflict_retries: int = Field(
        default=3, description="Retries after losing an aggregation race"
    )
    retention_days: int = Field(default=90, description="Days to keep activity entries")
    default_feed_limit: int = Field(default=15, description="Default feed page size")
    max_feed_limit: int = Field(default=100, description="Largest feed page size")

    @field_validator("aggregation_window_hours")
    @classmethod
    def validate_window(cls, v: int) -> int:
        """Window must stay within 1..24 hours"""
        if v < 1 or v > 24:
            raise ValueError("Aggregation window must be between 1 and 24 hours")
        return v

    @field_validator("max_conflict_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Conflict retries cannot be negative")
        return v


class NotificationSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NOTIFICATION_")

    retention_days: int = Field(default=30, description="Days to keep notifications")
    excerpt_length: int = Field(
        default=100, description="Comment excerpt length stored in payloads"
    )


class SharingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SHARING_")

    default_temporary_hours: int = Field(
        default=168, description="Lifetime of temporary shares without explicit expiry"
    )
    embed_height: int = Field(default=600, description="Embed iframe height (px)")


# ============================================================================
# Aggregate Configuration
# ============================================================================


def load_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping; a missing or unreadable file yields {}"""
    if not path.exists():
        logger.warning(f"⚠️ Config file not found: {path}, using defaults")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"❌ Failed to load config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"❌ Config {path} is not a mapping, ignoring it")
        return {}
    return data


class Config:
    """
    Every settings group, plus the raw YAML for dotted lookups

    A YAML section (e.g. `activity:`) supplies values for its group; an
    environment variable for the same field still wins.
    """

    SECTIONS = {
        "api": APIConfig,
        "database": DatabaseConfig,
        "logging": LoggingConfig,
        "celery": CeleryConfig,
        "activity": ActivitySettings,
        "notifications": NotificationSettings,
        "sharing": SharingSettings,
    }

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH)
        self.yaml_config = load_yaml(self.config_path)

        self.api: APIConfig = self._build("api", APIConfig)
        self.database: DatabaseConfig = self._build("database", DatabaseConfig)
        self.logging: LoggingConfig = self._build("logging", LoggingConfig)
        self.celery: CeleryConfig = self._build("celery", CeleryConfig)
        self.activity: ActivitySettings = self._build("activity", ActivitySettings)
        self.notifications: NotificationSettings = self._build(
            "notifications", NotificationSettings
        )
        self.sharing: SharingSettings = self._build("sharing", SharingSettings)

    def _build(self, section: str, settings_cls: Type[SettingsT]) -> SettingsT:
        values = self.yaml_config.get(section) or {}
        prefix = settings_cls.model_config.get("env_prefix", "")
        overrides = {
            name: value
            for name, value in values.items()
            if name in settings_cls.model_fields
            and f"{prefix}{name}".upper() not in os.environ
        }
        return settings_cls(**overrides)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a raw YAML value by dotted key, e.g. 'app.env'"""
        value: Any = self.yaml_config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    @property
    def environment(self) -> str:
        return self.get("app.env", "development")

    def to_dict(self) -> Dict[str, Any]:
        """Every settings group as plain data, keyed by YAML section name"""
        return {
            section: getattr(self, section).model_dump() for section in self.SECTIONS
        }

    def get_summary(self) -> Dict[str, Any]:
        """Non-secret settings for the startup banner and /system/info"""
        return {
            "app": self.yaml_config.get("app", {}),
            "api": {
                "host": self.api.host,
                "port": self.api.port,
                "prefix": self.api.prefix,
                "debug": self.api.debug,
                "public_base_url": self.api.public_base_url,
            },
            "database": {"url": self.database.url},
            "activity": {
                "aggregation_window_hours": self.activity.aggregation_window_hours,
                "max_conflict_retries": self.activity.max_conflict_retries,
                "retention_days": self.activity.retention_days,
            },
            "notifications": {"retention_days": self.notifications.retention_days},
            "sharing": {
                "default_temporary_hours": self.sharing.default_temporary_hours,
            },
        }


# ============================================================================
# Global Configuration Instance (Singleton)
# ============================================================================

_config: Optional[Config] = None
_config_lock = threading.Lock()


@lru_cache()
def get_config(config_path: Optional[str] = None) -> Config:
    """Process-wide Config, created on first use"""
    global _config

    if _config is None:
        with _config_lock:
            if _config is None:
                _config = Config(config_path)
                logger.info("✅ Configuration initialized")

    return _config


def reload_config(config_path: Optional[str] = None) -> Config:
    """Re-read environment and YAML, replacing the global instance"""
    global _config

    with _config_lock:
        get_config.cache_clear()
        _config = Config(config_path)
        logger.info("🔄 Configuration reloaded")

    return _config


def reset_config() -> None:
    """Drop the global instance (tests)"""
    global _config

    with _config_lock:
        get_config.cache_clear()
        _config = None


# ============================================================================
# Configuration Validation
# ============================================================================


def validate_config(config: Optional[Config] = None) -> Dict[str, Any]:
    """
    Check settings that are individually valid but unusable together

    Returns:
        {"valid": bool, "errors": [...], "warnings": [...]}
    """
    config = config or get_config()
    errors: List[str] = []
    warnings: List[str] = []

    url = config.database.url
    if not url:
        errors.append("Database URL not configured")
    elif url.startswith("sqlite") and "+aiosqlite" not in url:
        errors.append("SQLite URLs must use the async driver (sqlite+aiosqlite)")

    if config.activity.max_feed_limit < config.activity.default_feed_limit:
        errors.append("Feed max limit is smaller than the default limit")

    if config.activity.max_conflict_retries == 0:
        warnings.append("Aggregation conflict retries disabled - races will fail")

    if config.notifications.retention_days > config.activity.retention_days:
        warnings.append("Notifications outlive the activity entries they describe")

    if not config.api.public_base_url.startswith(("http://", "https://")):
        warnings.append("Public base URL is not absolute - subject URLs will be relative")

    if config.logging.file_path:
        log_dir = Path(config.logging.file_path).parent
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Cannot create log directory: {e}")

    return {"valid": not errors, "errors": errors, "warnings": warnings}


# ============================================================================
# Logging Setup
# ============================================================================


def setup_logging(config: Optional[Config] = None) -> None:
    """Attach console (and optional rotating file) handlers to the root logger"""
    config = config or get_config()
    settings = config.logging
    level = getattr(logging, settings.level.upper(), logging.INFO)
    formatter = logging.Formatter(settings.format)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.file_path:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_path,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logger.info(f"📝 Logging configured: level={settings.level}")
