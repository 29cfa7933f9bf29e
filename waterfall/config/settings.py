"""
Configuration Management for Waterfall

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The resolvers themselves take plain arguments; only the flows and
storage adapters read settings.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AllocationSettings(BaseSettings):
    """Tunables for the allocation engine."""

    model_config = SettingsConfigDict(
        env_prefix="WATERFALL_",
        extra="ignore"
    )

    due_soon_lookahead_days: int = Field(
        default=14,
        ge=1,
        le=90,
        description="Lookahead window for due-soon funding when no next pay date is known"
    )
    unallocated_label: str = Field(
        default="Unallocated",
        min_length=1,
        description="Display name used for results that leave money unallocated"
    )
    warn_on_unallocated: bool = Field(
        default=True,
        description="Emit an audit warning when a distribution leaves money behind"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    rules_sheet_name: str = Field(
        default="Rules",
        description="Name of the sheet for allocation, distribution and split rules"
    )
    templates_sheet_name: str = Field(
        default="Templates",
        description="Name of the sheet for income category templates"
    )
    targets_sheet_name: str = Field(
        default="Targets",
        description="Name of the sheet for accounts, categories and goals"
    )
    charges_sheet_name: str = Field(
        default="Charges",
        description="Name of the sheet for recurring charges"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for income transaction records"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def allocation(self) -> AllocationSettings:
        return AllocationSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failures.
    Useful for startup checks.
    """
    results: dict[str, bool | str] = {}
    settings = get_settings()

    for name in ("allocation", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
