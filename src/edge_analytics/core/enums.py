"""Enumerations used across the analytics core."""

from enum import Enum


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


class TradeMode(str, Enum):
    LIVE = "live"
    SIMULATION = "simulation"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class AgentKind(str, Enum):
    """How an agent's open positions can be priced."""

    SIMULATED = "simulated"  # In-process market simulator
    LIVE = "live"            # External agent with a positions endpoint
    API = "api"              # Same wire contract as LIVE


class SourceRank(int, Enum):
    """Price source priority.  Lower value wins."""

    SIMULATED_MARKET = 1
    LIVE_AGENT = 2
    MARKET_DATA = 3
