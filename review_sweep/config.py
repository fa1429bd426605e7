"""Configuration management for review-sweep."""

from dataclasses import dataclass

import pydantic as pyd
from pydantic_settings import BaseSettings, SettingsConfigDict

from review_sweep.resolution import Platform


class Settings(BaseSettings):
    """Configuration settings for review-sweep."""

    # Target platform
    platform: Platform = pyd.Field(
        default=Platform.GITHUB,
        alias="RSW_PLATFORM",
        description="Code review platform (github or ado)",
    )

    # Throttling
    max_concurrency: int = pyd.Field(
        default=4,
        alias="RSW_MAX_CONCURRENCY",
        description="Maximum comment operations in flight",
    )

    min_call_interval_ms: int = pyd.Field(
        default=100,
        alias="RSW_MIN_CALL_INTERVAL_MS",
        description="Minimum delay between two platform calls",
    )

    # Rendering
    group_tolerance_lines: int = pyd.Field(
        default=3,
        alias="RSW_GROUP_TOLERANCE_LINES",
        description="Line distance used to group findings into one comment",
    )

    # Pull request
    pr_number: int | None = pyd.Field(
        default=None,
        alias="RSW_PR_NUMBER",
        description="Pull request number",
    )

    # GitHub target
    github_owner: str | None = pyd.Field(
        default=None,
        alias="RSW_GITHUB_OWNER",
        description="Repository owner on GitHub",
    )

    github_repo: str | None = pyd.Field(
        default=None,
        alias="RSW_GITHUB_REPO",
        description="Repository name on GitHub",
    )

    # Azure DevOps target
    ado_organization: str | None = pyd.Field(
        default=None,
        alias="RSW_ADO_ORGANIZATION",
        description="Azure DevOps organization",
    )

    ado_project: str | None = pyd.Field(
        default=None,
        alias="RSW_ADO_PROJECT",
        description="Azure DevOps project",
    )

    ado_repository: str | None = pyd.Field(
        default=None,
        alias="RSW_ADO_REPOSITORY",
        description="Azure DevOps repository name or id",
    )

    ado_token: str | None = pyd.Field(
        default=None,
        alias="RSW_ADO_TOKEN",
        description="Azure DevOps personal access token",
    )

    # Run mode
    dry_run: bool = pyd.Field(
        default=False,
        alias="RSW_DRY_RUN",
        description="Compute decisions without calling the platform",
    )

    debug: bool = pyd.Field(
        default=False,
        alias="RSW_DEBUG",
        description="Enable verbose logging",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RSW_",
        extra="allow",
        populate_by_name=True,
    )

    @property
    def min_call_interval_seconds(self) -> float:
        """Minimum delay between two platform calls, in seconds."""
        return self.min_call_interval_ms / 1000

    def validate_limits(self) -> None:
        """Validate the numeric limits."""
        if self.max_concurrency <= 0:
            message = (
                f"Invalid configuration: RSW_MAX_CONCURRENCY must be a positive integer "
                f"(got '{self.max_concurrency}')"
            )
            raise ValueError(message)
        if self.min_call_interval_ms < 0:
            message = (
                f"Invalid configuration: RSW_MIN_CALL_INTERVAL_MS must not be negative "
                f"(got '{self.min_call_interval_ms}')"
            )
            raise ValueError(message)
        if self.group_tolerance_lines < 0:
            message = (
                f"Invalid configuration: RSW_GROUP_TOLERANCE_LINES must not be negative "
                f"(got '{self.group_tolerance_lines}')"
            )
            raise ValueError(message)

    def missing_target_fields(self) -> list[str]:
        """Return the environment names of target fields still unset."""
        required = {"RSW_PR_NUMBER": self.pr_number}
        if self.platform is Platform.GITHUB:
            required |= {
                "RSW_GITHUB_OWNER": self.github_owner,
                "RSW_GITHUB_REPO": self.github_repo,
            }
        else:
            required |= {
                "RSW_ADO_ORGANIZATION": self.ado_organization,
                "RSW_ADO_PROJECT": self.ado_project,
                "RSW_ADO_REPOSITORY": self.ado_repository,
                "RSW_ADO_TOKEN": self.ado_token,
            }
        return [name for name, value in required.items() if value in (None, "")]

    def validate_target(self) -> None:
        """Validate that the pull request target is fully configured."""
        missing = self.missing_target_fields()
        if missing:
            message = (
                f"Invalid configuration: {self.platform} target is incomplete "
                f"(missing {', '.join(missing)})"
            )
            raise ValueError(message)


@dataclass(frozen=True)
class CliOptions:
    """CLI override options for Settings.

    Groups all CLI-provided overrides into a single object to avoid
    function parameter count violations (PLR0913) in internal logic.
    """

    platform: Platform | None = None
    pr_number: int | None = None
    max_concurrency: int | None = None
    dry_run: bool = False
    debug: bool = False


def get_settings(options: CliOptions | None = None) -> Settings:
    """Create Settings instance from command line args and environment.

    Args:
        options: CLI override options grouped into a dataclass

    Returns:
        Settings instance

    """
    settings = Settings()

    if options is not None:
        _apply_cli_options(settings, options)

    settings.validate_limits()
    settings.validate_target()

    return settings


def _apply_cli_options(settings: Settings, options: CliOptions) -> None:
    """Apply CLI options to Settings instance.

    Args:
        settings: Settings instance to modify
        options: CLI options to apply

    """
    if options.platform is not None:
        settings.platform = options.platform
    if options.pr_number is not None:
        settings.pr_number = options.pr_number
    if options.max_concurrency is not None:
        settings.max_concurrency = options.max_concurrency
    if options.dry_run:
        settings.dry_run = True
    if options.debug:
        settings.debug = True
