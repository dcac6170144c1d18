import json
import logging
import os
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")


class RedisConfig(BaseModel):
    url: Optional[str] = Field(default=None, description="Redis connection URL (rate limiting is disabled without it)")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(default=5, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class DownloadConfig(BaseModel):
    info_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for metadata extraction")
    chunk_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Idle timeout between upstream chunks (unset uses server defaults)"
    )
    chunk_size: int = Field(default=256 * 1024, ge=1024, description="Max bytes read from upstream per chunk")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp")
    retries: int = Field(default=0, ge=0, description="Number of yt-dlp retries for failed requests")


class ResolverConfig(BaseModel):
    hosts: List[str] = Field(
        default=[
            "youtube.com",
            "www.youtube.com",
            "m.youtube.com",
            "music.youtube.com",
            "gaming.youtube.com",
        ],
        description="Canonical platform hosts",
    )
    short_hosts: List[str] = Field(default=["youtu.be"], description="Short-link hosts (video id in path)")


class YtDlpConfig(BaseModel):
    binary: str = Field(default="yt-dlp", description="yt-dlp executable")
    js_runtime: Optional[str] = Field(default=None, description="JS runtime path (e.g., deno:/usr/local/bin/deno)")
    enable_live_streams: bool = Field(default=False, description="Allow live stream downloads")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="[%(request_id)s] %(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: List[str] = Field(default=["en", "ja"], description="Supported locales")


class ApiConfig(BaseModel):
    title: str = Field(default="Media Download Proxy", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class Config(BaseSettings):
    """Main configuration model"""

    model_config = SettingsConfigDict(env_prefix="DOWNLOAD_PROXY_", env_nested_delimiter="__")

    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str = CONFIG_PATH) -> "Config":
        """Load configuration from a JSON file, falling back to env/defaults"""
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return cls(**config_data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {config_path}: {str(e)}")
            logger.info("Using environment/default configuration")
            return cls()


def load_config(config_path: str = CONFIG_PATH) -> Config:
    """Load configuration with priority: config file > env vars > defaults"""
    if os.path.exists(config_path):
        return Config.load_from_file(config_path)
    return Config()


config = load_config()
