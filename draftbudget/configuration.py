"""Mini README: Centralised configuration for DraftBudget.

Structure:
    * DraftBudgetSettings - Pydantic settings model for runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Budget trees read level names, rounding precision and the fallback
    currency from these settings. Values can be overridden through
    ``DRAFTBUDGET_*`` environment variables or a ``.env`` file; list values
    such as ``DRAFTBUDGET_LEVEL_NAMES`` are given as JSON arrays.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings

DEFAULT_LEVEL_NAMES = ["Budget", "Heading", "Sub-heading", "Activity", "Sub-activity"]


class DraftBudgetSettings(BaseSettings):
    """Runtime configuration for budget trees and the services around them."""

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    data_directory: Path = Field(
        Path("data"),
        description="Directory where saved budgets are written.",
    )
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the JSON API to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Default port the JSON API exposes.",
        ge=1,
        le=65535,
    )
    default_currency: str = Field(
        "USD",
        description="Currency used when a line has no valid currency of its own.",
    )
    level_names: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LEVEL_NAMES),
        description="Display name per tree level; its length bounds the tree depth.",
    )
    round_decimals: int = Field(2, ge=0, description="Decimal places for observed amounts.")
    show_decimals: int = Field(2, ge=0, description="Decimal places for formatted amounts.")
    fx_cache_ttl_hours: float = Field(
        24.0,
        gt=0,
        description="Hours after which a base currency's rates are considered stale.",
    )
    budget_filename: str = Field("budget.json", description="File name of the saved budget.")
    autosave_debounce_seconds: float = Field(
        0.5,
        ge=0,
        description="Minimum delay between two automatic saves of the same budget.",
    )

    class Config:
        env_prefix = "DRAFTBUDGET_"
        env_file = ".env"
        case_sensitive = False

    @validator("data_directory", pre=True)
    def _expand_path(cls, value: Optional[str | Path]) -> Path:
        """Ensure configured paths expand user directories and exist."""

        path = Path(value).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @validator("default_currency")
    def _normalise_currency(cls, value: str) -> str:
        """Upper-case the fallback currency and require a 3-letter code."""

        code = value.strip().upper()
        if len(code) != 3:
            raise ValueError(f"Default currency must be a 3-letter code, got '{value}'")
        return code

    @validator("level_names")
    def _require_levels(cls, value: List[str]) -> List[str]:
        """Refuse an empty level list; the root needs a name."""

        if not value:
            raise ValueError("At least one level name is required.")
        return value

    @property
    def max_level(self) -> int:
        """Deepest level a line may occupy; lines at this level cannot gain children."""

        return len(self.level_names) - 1

    @property
    def budget_path(self) -> Path:
        """Location of the saved budget file."""

        return self.data_directory / self.budget_filename


@lru_cache()
def get_settings() -> DraftBudgetSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return DraftBudgetSettings()
