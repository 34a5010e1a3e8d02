"""API configuration settings."""
import logging
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _split(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Settings(BaseSettings):
    """API configuration settings.

    This class manages settings with support for environment variables.
    Environment variables are prefixed with BLOCKER_ and can be:
    - Simple values: BLOCKER_FLAVOR=safari
    - Comma-separated lists: BLOCKER_RULESET_IDS=default,annoyances
    """
    # API Settings
    api_title: str = "Blocker Agent API"
    api_version: str = "0.1.0"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8090
    cors_origins_input: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
        alias="cors_origins",
    )

    # Storage Settings
    storage_backend: str = Field(
        default="memory",
        description="Where the policy is kept: memory, file or database"
    )
    storage_path: str = Field(
        default="./data/blocker_storage.json",
        description="Storage file for the file backend (.json or .yaml)"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/blocker.db",
        description="SQLAlchemy URL for the database backend"
    )

    # Agent Settings
    flavor: str = "chromium"
    origin: str = "chrome-extension://blocker"
    app_version: str = "2025.1010.1200"
    reload_delay: float = 0.437
    first_run_level: str = "optimal"

    # In-memory host
    max_enabled_rulesets: int = 50
    ruleset_ids: str = Field(
        default="default,annoyances,privacy,regions",
        description="Comma-separated rule set ids known to the in-memory engine"
    )
    default_ruleset_ids: str = Field(
        default="default",
        description="Comma-separated rule set ids enabled by default"
    )

    model_config = SettingsConfigDict(
        env_prefix="BLOCKER_",
        validate_default=True,
        case_sensitive=False,
        populate_by_name=True,
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return _split(self.cors_origins_input) or ["http://localhost:3000"]

    @property
    def rulesets(self) -> List[str]:
        return _split(self.ruleset_ids)

    @property
    def default_rulesets(self) -> List[str]:
        return _split(self.default_ruleset_ids)

    def agent_config_dict(self) -> dict:
        return {
            "flavor": self.flavor,
            "origin": self.origin,
            "appVersion": self.app_version,
            "reloadDelay": self.reload_delay,
            "firstRunLevel": self.first_run_level,
        }
