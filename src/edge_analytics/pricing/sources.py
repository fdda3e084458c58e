"""Price sources for marking open trades to market.

Each source implements one capability, :meth:`PriceSource.try_fetch`,
returning a partial ``trade_id -> price`` map for the trades it can
price.  The reconciler owns ordering, timing, cancellation and
priority; sources only know how to talk to their upstream.

Sources, in priority order
--------------------------
SimulatedMarketSource   In-process market simulator of a simulated agent
LiveAgentSource         ``/api/v1/positions`` endpoint of a live agent
MarketDataSource        Public DEX market-data API, by token address

Usage::

    async with MarketDataSource(base_url=cfg.market_data_url) as source:
        prices = await source.try_fetch(open_trades, ctx)
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from edge_analytics.core.enums import AgentKind, SourceRank
from edge_analytics.core.errors import (
    MalformedResponseError,
    PriceSourceError,
    PriceSourceTimeout,
)
from edge_analytics.core.models import AgentProfile, TradeRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileContext:
    """Preconditions a source checks before it is allowed to poll."""

    agent: AgentProfile | None = None
    enabled: bool = True


def positive_price(value: Any) -> float | None:
    """Parse an upstream price; ``None`` unless finite and > 0."""
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if price != price or price in (float("inf"), float("-inf")) or price <= 0:
        return None
    return price


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class PriceSource(abc.ABC):
    """One upstream able to price some open trades.

    Attributes
    ----------
    name:
        Identifier used in logs and health reports.
    rank:
        Priority; lower wins.
    interval:
        Seconds between polling cycles.
    fallback_only:
        When ``True`` the reconciler only offers this source trades that
        no other source has priced yet.
    """

    name: str = "source"
    rank: int = SourceRank.MARKET_DATA
    fallback_only: bool = False

    def __init__(self, *, interval: float) -> None:
        self.interval = interval

    def is_active(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> bool:
        """Whether a cycle should issue any request at all."""
        return bool(trades) and ctx.enabled

    @abc.abstractmethod
    async def try_fetch(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> dict[str, float]:
        """Return prices for whichever of ``trades`` this source can price.

        May raise :class:`PriceSourceError`; the reconciler handles it.
        """

    def watch(
        self, ctx: ReconcileContext, trigger: Callable[[], None]
    ) -> Callable[[], None] | None:
        """Hook an upstream push event to ``trigger``.

        Returns an unsubscribe callable, or ``None`` when the source is
        poll-only.
        """
        return None

    async def aclose(self) -> None:
        """Release network resources."""


class _HttpPriceSource(PriceSource):
    """Shared httpx client handling for HTTP-backed sources."""

    def __init__(
        self,
        *,
        interval: float,
        timeout: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(interval=interval)
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def _get_json(self, url: str) -> Any:
        try:
            response = await self._http().get(url)
        except httpx.TimeoutException as exc:
            raise PriceSourceTimeout(f"{self.name}: timeout fetching {url}") from exc
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"{self.name}: {exc}") from exc

        if response.status_code >= 400:
            raise PriceSourceError(
                f"{self.name}: HTTP {response.status_code} from {url}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{self.name}: invalid JSON from {url}") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# 1. Simulated market
# ---------------------------------------------------------------------------

class MarketSimulator(Protocol):
    """What the reconciler needs from an in-process market simulator."""

    def current_price(self, token: str) -> float | None:
        """Latest simulated price for ``token``, if the token is simulated."""
        ...

    def on_scan(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` after every market scan; returns unsubscribe."""
        ...


class SimulatedMarketSource(PriceSource):
    """Reads prices straight from the selected simulated agent's market.

    Parameters
    ----------
    simulators:
        Simulator per simulated agent id.
    """

    name = "simulated_market"
    rank = SourceRank.SIMULATED_MARKET

    def __init__(
        self,
        simulators: Mapping[str, MarketSimulator],
        *,
        interval: float = 2.0,
    ) -> None:
        super().__init__(interval=interval)
        self._simulators = simulators

    def _simulator(self, ctx: ReconcileContext) -> MarketSimulator | None:
        if ctx.agent is None or ctx.agent.kind != AgentKind.SIMULATED:
            return None
        return self._simulators.get(ctx.agent.agent_id)

    def is_active(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> bool:
        return super().is_active(trades, ctx) and self._simulator(ctx) is not None

    async def try_fetch(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> dict[str, float]:
        simulator = self._simulator(ctx)
        if simulator is None:
            return {}
        prices: dict[str, float] = {}
        for trade in trades:
            if not trade.token:
                continue
            price = positive_price(simulator.current_price(trade.token))
            if price is not None:
                prices[trade.id] = price
        return prices

    def watch(
        self, ctx: ReconcileContext, trigger: Callable[[], None]
    ) -> Callable[[], None] | None:
        simulator = self._simulator(ctx)
        if simulator is None:
            return None
        return simulator.on_scan(trigger)


# ---------------------------------------------------------------------------
# 2. Live agent positions endpoint
# ---------------------------------------------------------------------------

def _extract_positions(payload: Any) -> list[dict[str, Any]]:
    """Accept ``{"data": {"positions": [...]}}`` or ``{"positions": [...]}``."""
    if not isinstance(payload, dict):
        raise MalformedResponseError("positions payload is not an object")
    data = payload.get("data")
    positions = data.get("positions") if isinstance(data, dict) else None
    if positions is None:
        positions = payload.get("positions", [])
    if not isinstance(positions, list):
        raise MalformedResponseError("positions is not a list")
    return [p for p in positions if isinstance(p, dict)]


def match_positions(
    trades: Sequence[TradeRecord], positions: Sequence[dict[str, Any]]
) -> dict[str, float]:
    """Map agent-reported positions onto open trades.

    A position matches a trade by token address first, then by trade id.
    """
    by_address: dict[str, dict[str, Any]] = {}
    by_id: dict[str, dict[str, Any]] = {}
    for pos in positions:
        address = pos.get("tokenAddress") or pos.get("token_address")
        if address:
            by_address.setdefault(str(address), pos)
        if pos.get("id") is not None:
            by_id.setdefault(str(pos["id"]), pos)

    prices: dict[str, float] = {}
    for trade in trades:
        pos = None
        if trade.token_address:
            pos = by_address.get(trade.token_address)
        if pos is None:
            pos = by_id.get(trade.id)
        if pos is None:
            continue
        price = positive_price(pos.get("currentPrice", pos.get("current_price")))
        if price is not None:
            prices[trade.id] = price
    return prices


class LiveAgentSource(_HttpPriceSource):
    """Polls the selected live agent's own positions endpoint."""

    name = "live_agent"
    rank = SourceRank.LIVE_AGENT

    def __init__(
        self,
        *,
        interval: float = 3.0,
        timeout: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(interval=interval, timeout=timeout, client=client)

    def is_active(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> bool:
        agent = ctx.agent
        return (
            super().is_active(trades, ctx)
            and agent is not None
            and agent.kind in (AgentKind.LIVE, AgentKind.API)
            and bool(agent.positions_url)
        )

    async def try_fetch(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> dict[str, float]:
        if ctx.agent is None or not ctx.agent.positions_url:
            return {}
        payload = await self._get_json(ctx.agent.positions_url)
        return match_positions(trades, _extract_positions(payload))


# ---------------------------------------------------------------------------
# 3. Public market data fallback
# ---------------------------------------------------------------------------

def best_pair_price(payload: Any) -> float | None:
    """Price of the highest-liquidity pair in a DEX token lookup."""
    if not isinstance(payload, dict):
        raise MalformedResponseError("token payload is not an object")
    pairs = payload.get("pairs") or []
    if not isinstance(pairs, list):
        raise MalformedResponseError("pairs is not a list")

    def liquidity(pair: dict[str, Any]) -> float:
        liq = pair.get("liquidity")
        usd = liq.get("usd") if isinstance(liq, dict) else None
        try:
            return float(usd or 0.0)
        except (TypeError, ValueError):
            return 0.0

    candidates = [p for p in pairs if isinstance(p, dict)]
    if not candidates:
        return None
    best = max(candidates, key=liquidity)
    return positive_price(best.get("priceUsd"))


class MarketDataSource(_HttpPriceSource):
    """Direct token-address lookup against a public market-data API.

    Only offered trades that are still unpriced.  At most ``batch_size``
    distinct token addresses are queried per cycle to stay inside the
    upstream's rate limit.
    """

    name = "market_data"
    rank = SourceRank.MARKET_DATA
    fallback_only = True

    def __init__(
        self,
        *,
        base_url: str = "https://api.dexscreener.com/latest/dex",
        batch_size: int = 5,
        interval: float = 5.0,
        timeout: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(interval=interval, timeout=timeout, client=client)
        self._base_url = base_url.rstrip("/")
        self._batch_size = max(1, batch_size)

    def is_active(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> bool:
        return super().is_active(trades, ctx) and any(t.token_address for t in trades)

    def batch_addresses(self, trades: Sequence[TradeRecord]) -> list[str]:
        """Distinct token addresses in first-seen order, capped per cycle."""
        seen: dict[str, None] = {}
        for trade in trades:
            if trade.token_address:
                seen.setdefault(trade.token_address, None)
        return list(seen)[: self._batch_size]

    async def try_fetch(
        self, trades: Sequence[TradeRecord], ctx: ReconcileContext
    ) -> dict[str, float]:
        prices: dict[str, float] = {}
        addresses = self.batch_addresses(trades)
        failures = 0
        for address in addresses:
            try:
                payload = await self._get_json(f"{self._base_url}/tokens/{address}")
                price = best_pair_price(payload)
            except PriceSourceError as exc:
                failures += 1
                logger.warning("Market data lookup failed for %s: %s", address, exc)
                continue
            if price is None:
                continue
            for trade in trades:
                if trade.token_address == address:
                    prices[trade.id] = price

        if addresses and failures == len(addresses):
            raise PriceSourceError(
                f"{self.name}: all {failures} token lookups failed"
            )
        return prices
