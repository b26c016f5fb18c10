"""Configuration settings for taskpilot."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from ``TASKPILOT_*`` environment variables or overrides."""

    model_config = SettingsConfigDict(
        env_prefix="TASKPILOT_", case_sensitive=False, populate_by_name=True, extra="ignore"
    )

    agent_api_base: str = Field(default="https://genai-inference-app.stackspot.com")
    idm_base: str = Field(default="https://idm.stackspot.com")
    agent_id: str | None = Field(default=None)
    agent_key: str = Field(default="developer_agent")
    realm: str | None = Field(default=None)

    workspace_dir: str = Field(default=".")
    plan_path: str = Field(default="tech-spec.md")
    state_dir: str = Field(default=".taskpilot")
    credentials_path: str | None = Field(default=None)
    context_path: str | None = Field(default=None)

    request_timeout_seconds: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delays: list[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0])
    refresh_lead_seconds: int = Field(default=60, ge=0)

    command_timeout_seconds: float = Field(default=300.0, gt=0)
    read_max_bytes: int = Field(default=100 * 1024, ge=1)
    search_max_results: int = Field(default=50, ge=1)
    validation_enabled: bool = Field(default=True)
    validation_rules_path: str | None = Field(default=None)
    max_turns: int = Field(default=50, ge=1)

    use_knowledge: bool = Field(default=False)
    return_knowledge_sources: bool = Field(default=False)

    log_level: str = Field(default="WARNING")
    debug_log_path: str | None = Field(default=None)
