"""Configuration for the status sync engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

To avoid collisions with other tools that may also use `GITHUB_TOKEN`, this
project uses a dedicated token variable: `STATUS_SYNC_GITHUB_TOKEN`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from project_status_sync.sync.workflow import PRE_WORK_STATUSES, TERMINAL_STATUSES

DEFAULT_STATUS_TO_DATE_MAPPING: dict[str, str] = {
    "Planning": "Planning At",
    "Spec Review": "Spec Review At",
    "In Progress": "Started At",
    "Review": "Review At",
    "Done": "Completed At",
}


class MetricsConfig(BaseModel):
    """Lifecycle timestamp settings used for cycle-time metrics.

    Entries in `status_to_date_mapping` are merged over the defaults, so a
    project only needs to list the Status values it maps differently.
    """

    enabled: bool = Field(
        default=False,
        description="Write lifecycle date fields on Status changes and check them",
    )
    status_to_date_mapping: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_STATUS_TO_DATE_MAPPING),
        description="Status value -> Text field name stamped when entering it",
    )
    stale_threshold_days: int = Field(
        default=14,
        ge=0,
        description="Days before an In Progress issue is reported as stale",
    )

    @field_validator("status_to_date_mapping", mode="after")
    @classmethod
    def _merge_defaults(cls, value: dict[str, str]) -> dict[str, str]:
        return {**DEFAULT_STATUS_TO_DATE_MAPPING, **value}

    def date_field_for(self, status_value: str) -> str | None:
        name = self.status_to_date_mapping.get(status_value)
        return name or None


class SyncSettings(BaseSettings):
    """Settings for the status sync CLI.

    Environment variables:
    - STATUS_SYNC_GITHUB_TOKEN
    - GITHUB_BASE_URL            (optional)
    - LOG_LEVEL                  (optional)
    - STATUS_SYNC_PROJECT_NAME   (optional, defaults to the repository name)
    - STATUS_SYNC_ISSUE_LIMIT    (optional)
    - STATUS_SYNC_METRICS__ENABLED, STATUS_SYNC_METRICS__STALE_THRESHOLD_DAYS,
      STATUS_SYNC_METRICS__STATUS_TO_DATE_MAPPING (JSON object)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `SyncSettings(_env_file=path_to_env)`.
    """

    github_token: str = Field(
        default="",
        validation_alias="STATUS_SYNC_GITHUB_TOKEN",
        description="GitHub token with the `project` and `repo` scopes",
    )
    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    project_name: str | None = Field(
        default=None,
        description="Project title to use instead of the repository name",
    )
    issue_limit: int = Field(
        default=100,
        gt=0,
        description="Maximum number of issues fetched by `check`",
    )

    terminal_statuses: list[str] = Field(
        default_factory=lambda: list(TERMINAL_STATUSES),
        description="Status values that mark work as complete",
    )
    pre_work_statuses: list[str] = Field(
        default_factory=lambda: list(PRE_WORK_STATUSES),
        description="Status values that mean work never started",
    )

    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    model_config = SettingsConfigDict(
        env_prefix="STATUS_SYNC_",
        env_file=".env",
        env_nested_delimiter="__",
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_github_auth(self) -> SyncSettings:
        if not self.github_token.strip():
            raise ValueError("STATUS_SYNC_GITHUB_TOKEN is required")
        return self
