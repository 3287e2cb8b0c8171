from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_config() -> Config:
    return Config()


class Config(BaseSettings):
    api_key: str | None = Field(
        None,
        validation_alias=AliasChoices("termagent_api_key", "xai_api_key"),
    )
    base_url: str = "https://api.x.ai/v1"
    model_name: str = "grok-4-1-fast-reasoning"

    policy_file_path: str = (Path.cwd() / "termagent.config.json").expanduser().resolve().absolute().as_posix()

    command_timeout_seconds: int = 300
    search_timeout_seconds: int = 30

    log_level: str = "INFO"
    log_file: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="termagent_", case_sensitive=False, frozen=True, populate_by_name=True
    )

    def get_policy_path(self) -> Path:
        if not self.policy_file_path:
            raise ValueError("Policy file path is not configured")
        return Path(self.policy_file_path).expanduser().resolve().absolute()
