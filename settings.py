from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="OPD_", case_sensitive=False)

    app_name: str = "OPD Token Allocation Engine"
    env: Literal["local", "dev", "prod"] = "local"

    host: str = "0.0.0.0"
    port: int = 8000

    # Overrides the env-derived default (DEBUG locally, INFO elsewhere)
    log_level: Optional[str] = None

    seed_on_startup: bool = True
    slot_duration_minutes: int = 60

    @field_validator("slot_duration_minutes")
    @classmethod
    def _positive_duration(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("slot_duration_minutes must be positive")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
