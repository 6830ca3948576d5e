"""Configuration management with YAML and environment variable support"""

import os
import shutil
import tempfile
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

    This allows environment variables to override YAML configuration as expected.
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

    host: str = (
        "0.0.0.0"  # nosec B104 - Intentional binding to all interfaces for containerized deployment
    )
    port: int = 8000

    model_config = SettingsConfigDict(env_prefix="APP_SERVER_")


def resolve_binary(explicit: Optional[str], legacy_env: str, command: str) -> str:
    """Resolve an external binary path.

    Order: explicit setting, the conventional ``legacy_env`` variable,
    ``command`` found on PATH, then the bare command name.
    """
    if explicit:
        return explicit
    from_env = os.environ.get(legacy_env)
    if from_env:
        return from_env
    return shutil.which(command) or command


class ToolsConfig(BaseConfigSection):
    """External command-line tools"""

    ytdlp_path: Optional[str] = None
    ffmpeg_path: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="APP_TOOLS_")

    @property
    def ytdlp(self) -> str:
        return resolve_binary(self.ytdlp_path, "YTDLP_PATH", "yt-dlp")

    @property
    def ffmpeg(self) -> str:
        return resolve_binary(self.ffmpeg_path, "FFMPEG_PATH", "ffmpeg")


class TimeoutsConfig(BaseConfigSection):
    """Operation timeout configuration (seconds, 0 disables)"""

    metadata: int = 30
    download: int = 300
    transcode: int = 600
    http: int = 60

    model_config = SettingsConfigDict(env_prefix="APP_TIMEOUTS_")

    @field_validator("metadata", "download", "transcode", "http")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("timeouts must be zero or positive")
        return v


class RetriesConfig(BaseConfigSection):
    """Retry policy for external command execution"""

    attempts: int = 3
    backoff: List[int] = Field(default_factory=lambda: [2, 4, 8])

    model_config = SettingsConfigDict(env_prefix="APP_RETRIES_")

    @field_validator("attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempts must be at least 1")
        return v


class StagingConfig(BaseConfigSection):
    """Per-request temporary directory configuration"""

    root_dir: str = Field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "tiktok-downloads")
    )
    prefix: str = "req-"
    stale_age_minutes: int = 60

    model_config = SettingsConfigDict(env_prefix="APP_STAGING_")


DEFAULT_URL_PATTERNS = [
    r"^https?://(?:www\.|m\.)?tiktok\.com/@[\w.\-]+/video/\d+",
    r"^https?://(?:vm|vt)\.tiktok\.com/[\w\-]+/?",
    r"^https?://(?:www\.)?tiktok\.com/t/[\w\-]+/?",
]


class ValidationConfig(BaseConfigSection):
    """URL shape validation"""

    url_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_URL_PATTERNS))

    model_config = SettingsConfigDict(env_prefix="APP_VALIDATION_")


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


class FallbacksConfig(BaseConfigSection):
    """Ordered retrieval strategies and scraping endpoints"""

    order: List[str] = Field(default_factory=lambda: ["ytdlp", "ssstik", "snaptik", "cdn_guess"])
    disabled: List[str] = Field(default_factory=list)
    ssstik_url: str = "https://ssstik.io/abc?url=dl"
    ssstik_token: str = "azW54a"
    snaptik_url: str = "https://snaptik.app/abc.php"
    cdn_url_template: str = "https://api16-normal-c-useast1a.tiktokv.com/aweme/v1/play/?video_id={video_id}"
    max_redirects: int = 5
    user_agent: str = DEFAULT_USER_AGENT

    model_config = SettingsConfigDict(env_prefix="APP_FALLBACKS_")


class TranscoderConfig(BaseConfigSection):
    """Enhancement transcode settings for watermark-free output"""

    enhance_enabled: bool = True
    video_filter: str = (
        "scale=1920:1080:flags=lanczos,"
        "unsharp=3:3:1.5:3:3:0.5,"
        "eq=contrast=1.1:brightness=0.05:saturation=1.2"
    )
    crf: int = 18
    preset: str = "medium"
    audio_bitrate: str = "192k"

    model_config = SettingsConfigDict(env_prefix="APP_TRANSCODER_")


class CacheConfig(BaseConfigSection):
    """Metadata cache configuration"""

    metadata_ttl: int = 600  # seconds
    metadata_maxsize: int = 256

    model_config = SettingsConfigDict(env_prefix="APP_CACHE_")


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

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    allow_degraded_start: bool = True

    model_config = SettingsConfigDict(env_prefix="APP_SECURITY_")


class MonitoringConfig(BaseConfigSection):
    """Monitoring configuration"""

    metrics_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="APP_MONITORING_")


class Config(BaseSettings):
    """Main application configuration"""

    server: ServerConfig = Field(default_factory=ServerConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    retries: RetriesConfig = Field(default_factory=RetriesConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    fallbacks: FallbacksConfig = Field(default_factory=FallbacksConfig)
    transcoder: TranscoderConfig = Field(default_factory=TranscoderConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="APP_")


SECTIONS: Dict[str, Type[BaseConfigSection]] = {
    "server": ServerConfig,
    "tools": ToolsConfig,
    "timeouts": TimeoutsConfig,
    "retries": RetriesConfig,
    "staging": StagingConfig,
    "validation": ValidationConfig,
    "fallbacks": FallbacksConfig,
    "transcoder": TranscoderConfig,
    "cache": CacheConfig,
    "logging": LoggingConfig,
    "security": SecurityConfig,
    "monitoring": MonitoringConfig,
}


class ConfigService:
    """Service for loading and managing configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.environ.get("APP_CONFIG_PATH", "config.yaml")
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from YAML file with environment variable overrides.

        Thanks to BaseConfigSection.settings_customise_sources(), environment variables
        automatically take precedence over YAML values, which in turn take precedence
        over defaults.
        """
        config_data: Dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
                if yaml_data:
                    config_data = yaml_data

        sections = {
            name: section_cls(**(config_data.get(name) or {}))
            for name, section_cls in SECTIONS.items()
        }
        self._config = Config(**sections)
        return self._config

    def validate(self) -> bool:
        """Validate the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")

        unknown = [
            name
            for name in self._config.fallbacks.order
            if name not in ("ytdlp", "ssstik", "snaptik", "cdn_guess")
        ]
        if unknown:
            raise ValueError(f"Unknown retrieval strategies in fallbacks.order: {unknown}")

        if not self._config.validation.url_patterns:
            raise ValueError("At least one URL pattern must be configured")

        return True

    @property
    def config(self) -> Config:
        """Get the loaded configuration"""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")
        return self._config
