"""Custom exception hierarchy for the analytics core."""


class EdgeAnalyticsError(Exception):
    """Base exception for all analytics errors."""


# --- Configuration ---
class ConfigError(EdgeAnalyticsError):
    """Invalid or missing configuration."""


# --- Data ---
class DataError(EdgeAnalyticsError):
    """Trade data error."""


class ClosedTradeError(DataError):
    """Attempted to overwrite derived fields of a closed trade."""

    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(f"Trade {trade_id} is closed and cannot be re-marked")


# --- Price sources ---
class PriceSourceError(EdgeAnalyticsError):
    """Price source communication error."""


class PriceSourceTimeout(PriceSourceError):
    """Price source did not answer within the request timeout."""


class MalformedResponseError(PriceSourceError):
    """Price source answered with a payload we cannot interpret."""
