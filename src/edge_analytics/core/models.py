"""Core domain models shared by the statistics engine and the reconciler.

These are the canonical normalized records.  Upstream collaborators
(CSV import, storage sync) hand over dicts in either snake_case or the
camelCase wire naming; both validate into the same ``TradeRecord``.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import AgentKind, Side, TradeMode, TradeStatus
from .errors import ClosedTradeError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_finite_float(value: Any) -> float:
    """Coerce an upstream numeric to a finite float, 0.0 when unusable."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Trade record
# ---------------------------------------------------------------------------

class TradeRecord(BaseModel):
    """One executed (or still open) trade produced by a trading agent.

    Absent or malformed numeric fields validate to ``0.0`` so that every
    downstream computation is total over the minimal record shape.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    # Identity
    id: str
    agent_id: str = ""
    mode: TradeMode = TradeMode.LIVE

    # Execution facts
    token: str = ""
    token_address: str = ""
    entry_price: float = 0.0
    exit_price: float = 0.0  # 0 while open
    quantity: float = 0.0
    side: Side = Side.BUY

    # Outcome
    pnl_usd: float = 0.0
    pnl_percent: float = 0.0
    status: TradeStatus = TradeStatus.CLOSED

    # Signal context
    signal_type: str | None = None
    signal_strength: int | None = None
    signal_id: str | None = None

    # Timing
    timestamp: datetime = Field(default=_EPOCH)
    entry_time: datetime | None = None
    exit_time: datetime | None = None

    # Derived (OPEN trades only)
    current_price: float | None = None

    # ------------------------------------------------------------------ #
    # Input coercion                                                       #
    # ------------------------------------------------------------------ #

    @field_validator(
        "entry_price", "exit_price", "quantity", "pnl_usd", "pnl_percent",
        mode="before",
    )
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float:
        return _as_finite_float(value)

    @field_validator("agent_id", "token", "token_address", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value in ("sim", "demo", "paper"):
                return TradeMode.SIMULATION
        return value

    @field_validator("side", mode="before")
    @classmethod
    def _coerce_side(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "long":
                return Side.BUY
            if value == "short":
                return Side.SELL
        return value

    @field_validator("signal_strength", mode="before")
    @classmethod
    def _coerce_strength(cls, value: Any) -> int | None:
        if value is None or value == "":
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @field_validator("signal_type", "signal_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _default_timestamp(cls, value: Any) -> Any:
        return _EPOCH if value is None or value == "" else value

    @field_validator("timestamp", "entry_time", "exit_time", mode="after")
    @classmethod
    def _tz_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    # ------------------------------------------------------------------ #
    # Computed properties                                                  #
    # ------------------------------------------------------------------ #

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED

    @property
    def event_time(self) -> datetime:
        """Best available ordering instant: exit time, else execution time."""
        return self.exit_time or self.timestamp

    @property
    def hold_seconds(self) -> float | None:
        """Seconds between entry and exit, when both are known."""
        if self.entry_time is None or self.exit_time is None:
            return None
        return (self.exit_time - self.entry_time).total_seconds()

    # ------------------------------------------------------------------ #
    # Mark-to-market                                                       #
    # ------------------------------------------------------------------ #

    def unrealized_at(self, price: float) -> tuple[float, float]:
        """Return ``(pnl_usd, pnl_percent)`` if the trade were marked at ``price``."""
        direction = 1.0 if self.side == Side.BUY else -1.0
        move = price - self.entry_price
        pnl_usd = move * self.quantity * direction
        if self.entry_price > 0:
            pnl_pct = move / self.entry_price * 100.0 * direction
        else:
            pnl_pct = 0.0
        return pnl_usd, pnl_pct

    def with_mark(self, price: float) -> TradeRecord:
        """Copy of this open trade re-marked at ``price``.

        Raises :class:`ClosedTradeError` for trades that are not OPEN.
        """
        if not self.is_open:
            raise ClosedTradeError(self.id)
        pnl_usd, pnl_pct = self.unrealized_at(price)
        return self.model_copy(
            update={
                "current_price": price,
                "pnl_usd": pnl_usd,
                "pnl_percent": pnl_pct,
            }
        )


# ---------------------------------------------------------------------------
# Agent profile
# ---------------------------------------------------------------------------

class AgentProfile(BaseModel):
    """The agent whose open positions the reconciler is tracking."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    agent_id: str
    kind: AgentKind = AgentKind.SIMULATED
    api_endpoint: str = ""
    name: str = ""

    @property
    def positions_url(self) -> str:
        """Positions endpoint derived from the agent's API base URL.

        Empty when the agent has no endpoint configured.
        """
        base = self.api_endpoint.strip().rstrip("/")
        if not base:
            return ""
        if base.endswith("/api/v1"):
            base = base[: -len("/api/v1")]
        return f"{base}/api/v1/positions"
