"""Flow configuration.

Options can be passed explicitly or picked up from ``FLOWMANAGER_*``
environment variables (e.g. ``FLOWMANAGER_TIMEOUT=5000``).
"""

from __future__ import annotations

from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowOptions(BaseSettings):
    """Execution options shared by every task of a flow."""

    model_config = SettingsConfigDict(env_prefix="FLOWMANAGER_", extra="forbid", frozen=True)

    timeout: PositiveInt = 30_000
    """Per-task deadline in milliseconds, measured from dispatch."""

    debug: bool = False
    """Emit DEBUG trace records for dispatch, resolution and completion events."""

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000
