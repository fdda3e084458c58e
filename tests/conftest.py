"""Shared fixtures for the edge-analytics test suite."""

from __future__ import annotations

import itertools
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import structlog

from edge_analytics.core.clock import SimClock
from edge_analytics.core.enums import TradeStatus
from edge_analytics.core.models import TradeRecord

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def sim_clock() -> SimClock:
    return SimClock(BASE_TIME)


@pytest.fixture
def make_trade() -> Callable[..., TradeRecord]:
    """Factory for closed trades, one minute apart unless told otherwise.

    ``make_trade(100, 20)`` is a $100 / +20% winner.
    """
    counter = itertools.count()

    def factory(
        pnl_usd: float = 0.0,
        pnl_percent: float | None = None,
        *,
        minutes: int | None = None,
        status: TradeStatus = TradeStatus.CLOSED,
        **fields: Any,
    ) -> TradeRecord:
        i = next(counter)
        if pnl_percent is None:
            pnl_percent = pnl_usd / 10.0
        offset = timedelta(minutes=i if minutes is None else minutes)
        data: dict[str, Any] = {
            "id": f"t{i}",
            "agent_id": "alpha",
            "token": "BONK",
            "token_address": "addr-bonk",
            "entry_price": 1.0,
            "quantity": 100.0,
            "pnl_usd": pnl_usd,
            "pnl_percent": pnl_percent,
            "status": status,
            "timestamp": BASE_TIME + offset,
        }
        data.update(fields)
        return TradeRecord(**data)

    return factory


@pytest.fixture
def make_open_trade(make_trade) -> Callable[..., TradeRecord]:
    """Factory for OPEN trades (no realized P&L)."""

    def factory(**fields: Any) -> TradeRecord:
        return make_trade(0.0, 0.0, status=TradeStatus.OPEN, **fields)

    return factory


@pytest.fixture
def reset_logging():
    """Remove handlers installed by ``setup_logging`` after the test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)
    root.setLevel(level)
