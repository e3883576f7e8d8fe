"""
Configuration management for SeedStream
"""

import os
import yaml
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class TorrentConfig(BaseModel):
    download_directory: str = "./torrent_data"
    listen_interfaces: str = "0.0.0.0:6881"
    enable_utp: bool = False  # uTP resets are noisy and not needed
    enable_dht: bool = True
    poll_interval: float = 0.5  # Seconds between libtorrent status polls
    piece_deadline_ms: int = 2000  # Deadline requested for pieces a reader waits on


class TranscodingConfig(BaseModel):
    ffmpeg_path: str = "auto"
    work_directory: str = "./hls-output"


class PipelineConfig(BaseModel):
    max_concurrent_files: int = 1  # Files transcoded at once within one job


class StorageConfig(BaseModel):
    endpoint_url: str = "http://127.0.0.1:9000"
    public_base_url: Optional[str] = None  # Defaults to endpoint_url
    bucket: str = "hls"
    region: str = "us-east-1"
    access_key: str = Field(default_factory=lambda: os.getenv("MINIO_ROOT_USER", "admin"))
    secret_key: str = Field(default_factory=lambda: os.getenv("MINIO_ROOT_PASSWORD", "password"))
    upload_workers: int = 4

    @property
    def base_url(self) -> str:
        return (self.public_base_url or self.endpoint_url).rstrip("/")


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    file: Optional[str] = None


class SeedStreamConfig(BaseSettings):
    """Root configuration. YAML values win over SEEDSTREAM_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SEEDSTREAM_",
        env_nested_delimiter="__",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    torrent: TorrentConfig = Field(default_factory=TorrentConfig)
    transcoding: TranscodingConfig = Field(default_factory=TranscodingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_config_file() -> Optional[Path]:
    """Find the configuration file in standard locations."""
    search_paths = [
        Path.cwd() / "seedstream.yaml",
        Path.cwd() / "seedstream.yml",
        Path.cwd() / "config" / "seedstream.yaml",
        Path.home() / ".config" / "seedstream" / "seedstream.yaml",
        Path("/etc/seedstream/seedstream.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config(config_path: Optional[str] = None) -> SeedStreamConfig:
    """Load configuration from YAML file or use defaults."""
    config_file = Path(config_path) if config_path else find_config_file()

    if config_file and config_file.exists():
        with open(config_file, "r") as f:
            yaml_data = yaml.safe_load(f) or {}
        return SeedStreamConfig(**yaml_data)

    return SeedStreamConfig()


# Global config instance
_config: Optional[SeedStreamConfig] = None


def get_config() -> SeedStreamConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: SeedStreamConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
