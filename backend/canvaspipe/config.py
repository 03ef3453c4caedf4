"""canvaspipe settings.

Values come from CANVASPIPE_* environment variables, then config.yaml in the
working directory, then the defaults below.
"""

from pathlib import Path
from typing import ClassVar, Literal, Optional

import yaml
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Reads the whole of config.yaml as one mapping."""

    def get_field_value(self, field, field_name: str):
        return None, field_name, False

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class StorageConfig(BaseModel):
    """Durable storage configuration."""

    database_url: str = "sqlite+aiosqlite:///canvaspipe.db"
    media_dir: Path = Path("tmp/media")
    snapshot_key: str = "app-state"

    @field_validator("media_dir", mode="before")
    @classmethod
    def convert_media_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class RetentionConfig(BaseModel):
    """Retention limits applied at creation time and by storage optimization."""

    max_canvases: int = 20
    max_steps: int = 50
    max_gallery_images: int = 100
    empty_canvas_max_age_seconds: int = 600


class MigrationConfig(BaseModel):
    """Expired asset migration."""

    cooldown_seconds: float = 30.0
    expiring_hosts: list[str] = ["replicate.delivery"]


class MaskConfig(BaseModel):
    """Mask normalization defaults and quality thresholds."""

    padding: int = 12
    feather_radius: float = 3.0
    edit_threshold: int = 8
    min_valid_coverage: float = 0.0001
    max_valid_coverage: float = 0.8
    small_coverage_warning: float = 0.001
    large_coverage_warning: float = 0.7
    min_area_pixels: int = 100


class ProvidersConfig(BaseModel):
    """Provider adapter credentials and polling parameters."""

    replicate_api_token: Optional[str] = None
    replicate_base_url: str = "https://api.replicate.com/v1"
    poll_interval: float = 1.0
    poll_max_attempts: int = 60
    default_generate_provider: str = "replicate.flux-schnell"


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseSettings):
    """Root settings. Nested sections use `__` in env names,
    e.g. CANVASPIPE_RETENTION__MAX_STEPS=100.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="CANVASPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["production", "development"] = "production"
    storage: StorageConfig = StorageConfig()
    retention: RetentionConfig = RetentionConfig()
    migration: MigrationConfig = MigrationConfig()
    mask: MaskConfig = MaskConfig()
    providers: ProvidersConfig = ProvidersConfig()
    server: ServerConfig = ServerConfig()

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        # explicit kwargs > env > .env > config.yaml
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


settings = Settings()
