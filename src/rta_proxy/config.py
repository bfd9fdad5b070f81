"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
Values from ``config.yaml`` act as defaults; environment variables override them.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PUB_IDS = ["NovaBeyond", "ByteMedia", "FlyFunAds", "PinkTomato"]


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config.yaml in common locations
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/rta_proxy
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class AuthSettings(BaseSettings):
    """Publisher allow-list configuration."""

    pub_ids_path: Path = Field(default=Path("config.json"), description="JSON document listing valid pub_ids")
    refresh_interval_seconds: float = Field(default=60, description="Seconds between allow-list reloads")
    default_pub_ids: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PUB_IDS),
        description="Allow list used when the document cannot be read at startup",
    )

    @field_validator("refresh_interval_seconds")
    def validate_interval(cls, v: float) -> float:
        """Reject intervals that would spin the reload loop."""
        if v <= 0:
            raise ValueError("refresh_interval_seconds must be positive")
        return v

    model_config = SettingsConfigDict(env_prefix="RTA_PROXY_AUTH_")


class UpstreamSettings(BaseSettings):
    """Upstream RTA endpoints."""

    network_url: str = Field(
        default="https://growth-rta.tiktokv-us.com/api/v1/rta/network",
        description="Target for /api/v1/rta/network",
    )
    report_url: str = Field(
        default="https://growth-rta.tiktokv-us.com/api/v1/rta/report",
        description="Target for /api/v1/rta/report",
    )
    timeout_seconds: Optional[float] = Field(
        default=None,
        description="Total upstream timeout; unset keeps the HTTP client default",
    )

    @property
    def routes(self) -> Dict[str, str]:
        """Endpoint name to upstream URL."""
        return {
            "network": self.network_url,
            "report": self.report_url,
        }

    model_config = SettingsConfigDict(env_prefix="RTA_PROXY_UPSTREAM_")


class AuditSettings(BaseSettings):
    """Audit log sink configuration."""

    enabled: bool = Field(default=True, description="Write audit records to the log file")
    log_file: Path = Field(default=Path("./logs/api.log"), description="Active audit log file")
    max_bytes: int = Field(default=1000 * 1024 * 1024, description="Rotate after this many bytes (1000MB)")
    backup_count: int = Field(default=4000, description="Rotated files to keep")
    compress: bool = Field(default=True, description="Gzip rotated files")
    trust_forwarded_headers: bool = Field(
        default=True,
        description="Take client_ip from X-Forwarded-For / X-Real-IP when present",
    )
    exempt_paths: List[str] = Field(
        default_factory=lambda: ["/hc", "/metrics"],
        description="Paths never written to the audit log",
    )

    model_config = SettingsConfigDict(env_prefix="RTA_PROXY_AUDIT_")


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Component settings
    auth: AuthSettings = Field(default_factory=AuthSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    model_config = SettingsConfigDict(env_prefix="RTA_PROXY_", case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    # Load config file data
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "RTA_PROXY_HOST",
        ("server", "port"): "RTA_PROXY_PORT",
        ("server", "debug"): "RTA_PROXY_DEBUG",
        ("server", "log_level"): "RTA_PROXY_LOG_LEVEL",
        ("auth", "pub_ids_path"): "RTA_PROXY_AUTH_PUB_IDS_PATH",
        ("auth", "refresh_interval_seconds"): "RTA_PROXY_AUTH_REFRESH_INTERVAL_SECONDS",
        ("upstream", "network_url"): "RTA_PROXY_UPSTREAM_NETWORK_URL",
        ("upstream", "report_url"): "RTA_PROXY_UPSTREAM_REPORT_URL",
        ("upstream", "timeout_seconds"): "RTA_PROXY_UPSTREAM_TIMEOUT_SECONDS",
        ("audit", "enabled"): "RTA_PROXY_AUDIT_ENABLED",
        ("audit", "log_file"): "RTA_PROXY_AUDIT_LOG_FILE",
        ("audit", "max_bytes"): "RTA_PROXY_AUDIT_MAX_BYTES",
        ("audit", "backup_count"): "RTA_PROXY_AUDIT_BACKUP_COUNT",
        ("audit", "compress"): "RTA_PROXY_AUDIT_COMPRESS",
        ("audit", "trust_forwarded_headers"): "RTA_PROXY_AUDIT_TRUST_FORWARDED_HEADERS",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)

    # List values are passed to pydantic-settings as JSON
    list_mappings = {
        ("auth", "default_pub_ids"): "RTA_PROXY_AUTH_DEFAULT_PUB_IDS",
        ("audit", "exempt_paths"): "RTA_PROXY_AUDIT_EXEMPT_PATHS",
    }
    for (section, key), env_var in list_mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value:
                os.environ[env_var] = json.dumps(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
