"""Settings for the analytics core and the price reconciler.

Values come from an optional TOML file, then ``EDGE_*`` environment
variables (nested with ``__``, e.g. ``EDGE_RECONCILER__ENABLED=false``),
validated by pydantic-settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class AnalyticsConfig(BaseModel):
    starting_balance: float = 0.0  # Equity curve baseline
    cross_tab_min_samples: int = 3  # Agent x signal type rows below this are noise
    risk_free_rate: float = 0.0  # Per-trade, same unit as pnl_percent


class ReconcilerConfig(BaseModel):
    enabled: bool = True  # Administrative pause for all background polling
    simulated_interval: float = 2.0  # seconds
    live_agent_interval: float = 3.0
    fallback_interval: float = 5.0
    fallback_batch_size: int = 5  # Distinct token addresses per fallback cycle
    request_timeout: float = 4.0
    max_backoff: float = 60.0
    quote_window: float = 15.0  # Seconds a higher-priority quote shadows lower ones
    market_data_url: str = "https://api.dexscreener.com/latest/dex"


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "EDGE_", "env_nested_delimiter": "__"}

    def validate_intervals(self) -> None:
        """Reject polling settings that would spin or never run."""
        from .errors import ConfigError

        rc = self.reconciler
        for name in ("simulated_interval", "live_agent_interval", "fallback_interval"):
            if getattr(rc, name) <= 0:
                raise ConfigError(f"reconciler.{name} must be positive")
        if rc.fallback_batch_size < 1:
            raise ConfigError("reconciler.fallback_batch_size must be >= 1")
        if rc.request_timeout <= 0:
            raise ConfigError("reconciler.request_timeout must be positive")


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Build validated settings.

    A missing ``config_path`` is not an error; defaults and environment
    variables still apply.  ``overrides`` replace whole top-level
    sections.  Raises :class:`ConfigError` for unusable polling values.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    settings = Settings(**data)
    settings.validate_intervals()
    return settings
