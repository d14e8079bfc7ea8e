"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nightfall.services.rail.config import RailConfig

logger = logging.getLogger(__name__)

PLATFORM_FEE_WALLET = "GH7dc4Wihg79nWFCCJH4NUcE368zXkWhgsDTEbWup7Eb"


class SettlementConfig(BaseModel):
    """Payout and fee parameters."""

    fee_wallet: str = PLATFORM_FEE_WALLET
    default_playing_fee: str = "0.0001"  # SOL, charged to the winner only
    network_fee: str = "0.000005"  # SOL per signature


class GamesConfig(BaseModel):
    """Game lifecycle parameters."""

    cancel_cooldown_seconds: int = Field(default=300, ge=0)
    default_min_players: int = Field(default=2, ge=1)
    default_max_players: int = Field(default=2, ge=1)


class ServerConfig(BaseModel):
    """HTTP server parameters."""

    host: str = "0.0.0.0"
    port: int = 5000
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Storage
    storage_backend: Literal["memory", "yaml"] = "memory"

    # Observability
    logfire_token: str = ""

    # Nested configuration sections
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    games: GamesConfig = Field(default_factory=GamesConfig)
    rail: RailConfig = Field(default_factory=RailConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m nightfall init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["settlement", "games", "rail", "server"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name] or {}

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            if "storage_backend" in yaml_config:
                self.storage_backend = yaml_config["storage_backend"]

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
