"""Configuration management with YAML and environment variable support"""

import os
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class BaseConfigSection(BaseSettings):
    """Base class for all config sections with correct environment variable precedence.

    This class customizes the settings source priority to ensure that:
    1. Environment variables have highest priority
    2. Init kwargs (YAML data) have second priority
    3. Default values have lowest priority
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings source priority: env vars > init kwargs > defaults."""
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


class ServerConfig(BaseConfigSection):
    """Server configuration"""

    host: str = "0.0.0.0"  # nosec B104 - containerized deployment
    port: int = 3001

    model_config = SettingsConfigDict(env_prefix="APP_SERVER_")


DEFAULT_ALLOWED_MIME_TYPES = [
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]


class StorageConfig(BaseConfigSection):
    """Temporary artifact storage configuration"""

    temp_dir: str = "./temp"
    max_file_size: int = 104857600  # 100MB in bytes
    cleanup_interval_minutes: int = 30
    allowed_mime_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MIME_TYPES)
    )

    model_config = SettingsConfigDict(env_prefix="APP_STORAGE_")

    @field_validator("cleanup_interval_minutes", "max_file_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be a positive integer")
        return v

    @property
    def retention_seconds(self) -> int:
        """Artifacts survive at least one full cleanup interval."""
        return self.cleanup_interval_minutes * 60


class ConversionConfig(BaseConfigSection):
    """Conversion quality settings"""

    image_quality: int = 85
    audio_bitrate: str = "192k"
    png_compression: int = 6
    pdf_density: int = 150
    pdf_jpeg_quality: int = 90

    model_config = SettingsConfigDict(env_prefix="APP_CONVERSION_")

    @field_validator("image_quality", "pdf_jpeg_quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("quality must be between 1 and 100")
        return v

    @field_validator("png_compression")
    @classmethod
    def validate_compression(cls, v: int) -> int:
        if not 0 <= v <= 9:
            raise ValueError("png_compression must be between 0 and 9")
        return v


class FetchConfig(BaseConfigSection):
    """Video fetch configuration"""

    max_duration: int = 7200  # seconds
    default_quality: str = "best"
    allowed_domains: List[str] = Field(
        default_factory=lambda: ["youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be"]
    )

    model_config = SettingsConfigDict(env_prefix="APP_FETCH_")


class ToolsConfig(BaseConfigSection):
    """External executables"""

    ffmpeg: str = "ffmpeg"
    ytdlp: str = "yt-dlp"
    soffice: str = "soffice"
    pdftoppm: str = "pdftoppm"

    model_config = SettingsConfigDict(env_prefix="APP_TOOLS_")


class TimeoutsConfig(BaseConfigSection):
    """Operation timeout configuration"""

    process: Optional[float] = None  # no deadline on conversions by default
    info: float = 30.0
    shutdown_grace: float = 5.0

    model_config = SettingsConfigDict(env_prefix="APP_TIMEOUTS_")


class RateLimitingConfig(BaseConfigSection):
    """Rate limiting configuration"""

    submission_rpm: int = 30  # requests per minute
    query_rpm: int = 300
    burst_capacity: int = 20  # maximum tokens

    model_config = SettingsConfigDict(env_prefix="APP_RATE_LIMITING_")


class LoggingConfig(BaseConfigSection):
    """Logging configuration"""

    level: str = "INFO"
    format: str = "json"

    model_config = SettingsConfigDict(env_prefix="APP_LOGGING_")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return v_upper


class SecurityConfig(BaseConfigSection):
    """Security configuration"""

    api_keys: List[str] = Field(default_factory=list)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    model_config = SettingsConfigDict(env_prefix="APP_SECURITY_")


class MonitoringConfig(BaseConfigSection):
    """Monitoring configuration"""

    metrics_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="APP_MONITORING_")


class Config(BaseSettings):
    """Main application configuration"""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    rate_limiting: RateLimitingConfig = Field(default_factory=RateLimitingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="APP_")


class ConfigService:
    """Service for loading and managing configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get("APP_CONFIG_PATH", "config.yaml")
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from YAML file with environment variable overrides.

        BaseConfigSection.settings_customise_sources() makes environment variables
        take precedence over YAML values, which take precedence over defaults.
        """
        config_data: Dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
                if yaml_data:
                    config_data = yaml_data

        self._config = Config(
            server=ServerConfig(**config_data.get("server", {})),
            storage=StorageConfig(**config_data.get("storage", {})),
            conversion=ConversionConfig(**config_data.get("conversion", {})),
            fetch=FetchConfig(**config_data.get("fetch", {})),
            tools=ToolsConfig(**config_data.get("tools", {})),
            timeouts=TimeoutsConfig(**config_data.get("timeouts", {})),
            rate_limiting=RateLimitingConfig(**config_data.get("rate_limiting", {})),
            logging=LoggingConfig(**config_data.get("logging", {})),
            security=SecurityConfig(**config_data.get("security", {})),
            monitoring=MonitoringConfig(**config_data.get("monitoring", {})),
        )

        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")
        return self._config
