import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class YouTubeConfig(BaseModel):
    api_key: Optional[str] = Field(default=None, description="YouTube Data API v3 key")
    api_base_url: str = Field(
        default="https://www.googleapis.com/youtube/v3",
        description="YouTube Data API base URL"
    )
    metadata_timeout: float = Field(default=10.0, gt=0, description="Metadata request timeout in seconds")


class DownloadConfig(BaseModel):
    use_external_binary: bool = Field(default=True, description="Try the yt-dlp binary before the library backend")
    attempt_timeout: float = Field(default=300.0, gt=0, description="Per-backend download attempt timeout in seconds")
    temp_dir: str = Field(
        default=os.path.join(tempfile.gettempdir(), "media_relay"),
        description="Root directory for per-request temp files"
    )
    chunk_size: int = Field(default=1024 * 1024, ge=1024, description="Relay chunk size in bytes")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp")
    retries: int = Field(default=3, ge=0, description="Number of retries inside yt-dlp")
    disconnect_poll_seconds: float = Field(default=1.0, gt=0, description="Client disconnect poll interval")


class YtDlpConfig(BaseModel):
    binary: str = Field(default="yt-dlp", description="yt-dlp executable name or path")
    js_runtime: Optional[str] = Field(default=None, description="JS runtime path (e.g., deno:/usr/local/bin/deno)")
    enable_live_streams: bool = Field(default=False, description="Allow live stream downloads")


class TikTokConfig(BaseModel):
    navigation_timeout: float = Field(default=30.0, gt=0, description="Page load timeout in seconds")
    max_redirects: int = Field(default=5, ge=0, description="Max redirects when resolving short links")
    redirect_timeout: float = Field(default=10.0, gt=0, description="Short link resolution timeout in seconds")
    headless: bool = Field(default=True, description="Run Chromium headless")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/122.0.0.0 Safari/537.36"
        ),
        description="User agent for page loads and CDN fetches"
    )


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "ja"], description="Supported locales")


class ApiConfig(BaseModel):
    title: str = Field(default="Media Relay API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class Config(BaseModel):
    """Main configuration model"""
    youtube: YouTubeConfig = Field(default_factory=YouTubeConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    tiktok: TikTokConfig = Field(default_factory=TikTokConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str = "config.json") -> "Config":
        """Load configuration from JSON file"""
        if os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
                logger.info(f"Configuration loaded from {config_path}")
                return cls(**config_data)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load config from {config_path}: {str(e)}")
                logger.info("Using default configuration")
        else:
            logger.warning(f"Config file {config_path} not found, using defaults")

        return cls()

    @classmethod
    def load_from_env(cls, env: Optional["Environment"] = None) -> "Config":
        """Load configuration from environment variables"""
        env = env or Environment()
        config_data: Dict[str, Any] = {}

        youtube = {}
        if env.yt_api_key:
            youtube["api_key"] = env.yt_api_key
        if youtube:
            config_data["youtube"] = youtube

        download = {}
        if env.use_yt_dlp is not None:
            download["use_external_binary"] = env.use_yt_dlp.lower() != "false"
        if env.download_timeout is not None:
            download["attempt_timeout"] = env.download_timeout
        if env.download_temp_dir:
            download["temp_dir"] = env.download_temp_dir
        if download:
            config_data["download"] = download

        ytdlp = {}
        if env.yt_dlp_binary:
            ytdlp["binary"] = env.yt_dlp_binary
        if env.yt_dlp_js_runtime:
            ytdlp["js_runtime"] = env.yt_dlp_js_runtime
        if ytdlp:
            config_data["ytdlp"] = ytdlp

        if env.tiktok_navigation_timeout is not None:
            config_data["tiktok"] = {"navigation_timeout": env.tiktok_navigation_timeout}

        if env.log_level:
            config_data["logging"] = {"level": env.log_level}

        if env.default_locale:
            config_data["i18n"] = {"default_locale": env.default_locale}

        return cls(**config_data) if config_data else cls()


class Environment(BaseSettings):
    """Environment variables understood by the service"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    config_path: str = "config.json"
    yt_api_key: Optional[str] = None
    use_yt_dlp: Optional[str] = None
    yt_dlp_binary: Optional[str] = None
    yt_dlp_js_runtime: Optional[str] = None
    download_timeout: Optional[float] = None
    download_temp_dir: Optional[str] = None
    tiktok_navigation_timeout: Optional[float] = None
    log_level: Optional[str] = None
    default_locale: Optional[str] = None


def load_config() -> Config:
    """Load configuration with priority: config.json > env vars > defaults"""
    env = Environment()

    if os.path.exists(env.config_path):
        return Config.load_from_file(env.config_path)

    logger.info(f"Config file not found at {env.config_path}, checking environment variables")
    return Config.load_from_env(env)
