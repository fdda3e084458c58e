"""Live price reconciler: keeps open trades marked to market.

Runs one asyncio background loop per :class:`PriceSource` (cooperative,
timer-driven polling, in the manner of a periodic agent) and writes every
accepted price into a shared :class:`PriceStore`.

Discipline
----------
* **Priority** is enforced by eligibility: a ``fallback_only`` source is
  offered only trades that have no price in the store yet.  The store
  additionally refuses lower-priority quotes while a fresher
  higher-priority quote exists.  A fallback loop waits one interval
  before its first cycle.
* **Cancellation** uses a generation counter plus per-source in-flight
  tasks.  A new cycle of a source cancels that source's previous
  in-flight fetch; changing the tracked trade set, the selected agent or
  pausing cancels every in-flight fetch.  A result whose generation or
  cycle is no longer current is dropped, never merged.
* **Resource discipline**: no request is issued while paused, while
  there is nothing to price, or when the source's own precondition
  (e.g. no agent selected) is false.
* **Failures** (network errors, timeouts, malformed payloads, a source
  raising from its own precondition check) are logged
  and counted per source, and stretch that source's polling interval
  with exponential backoff.  Nothing but ``CancelledError`` escapes.

Usage::

    store = PriceStore(window_seconds=cfg.quote_window)
    reconciler = LivePriceReconciler(store, [sim, live, fallback])
    reconciler.select_agent(agent)
    reconciler.track(trades)
    await reconciler.start()
    ...
    price = reconciler.get_current_price(trade_id)
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from edge_analytics.core.clock import IClock, WallClock
from edge_analytics.core.config import ReconcilerConfig
from edge_analytics.core.errors import PriceSourceError
from edge_analytics.core.models import AgentProfile, TradeRecord
from edge_analytics.journal.record import dedupe_trades, open_trades
from edge_analytics.observability.logger import log_context

from .sources import (
    LiveAgentSource,
    MarketDataSource,
    MarketSimulator,
    PriceSource,
    ReconcileContext,
    SimulatedMarketSource,
    positive_price,
)
from .store import PriceListener, PriceStore

logger = logging.getLogger(__name__)


@dataclass
class SourceHealth:
    """Running counters for one price source."""

    name: str
    cycles: int = 0
    skipped: int = 0
    error_count: int = 0
    consecutive_failures: int = 0
    discarded: int = 0
    last_success_at: datetime | None = None
    last_error: str | None = None


class LivePriceReconciler:
    """Maintains ``trade_id -> current price`` for the open trade set.

    Parameters
    ----------
    store:
        Price store this reconciler is the sole writer of.
    sources:
        Price sources in priority order.  New sources can be appended
        without touching reconciliation logic.
    clock:
        Time source for health timestamps.
    request_timeout:
        Seconds after which an in-flight fetch counts as failed.
    max_backoff:
        Upper bound for a failing source's stretched polling interval.
    enabled:
        Initial administrative state; see :meth:`pause` / :meth:`resume`.
    """

    def __init__(
        self,
        store: PriceStore,
        sources: Sequence[PriceSource],
        *,
        clock: IClock | None = None,
        request_timeout: float = 4.0,
        max_backoff: float = 60.0,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._sources = sorted(sources, key=lambda s: int(s.rank))
        self._clock = clock or WallClock()
        self._timeout = request_timeout
        self._max_backoff = max_backoff
        self._enabled = enabled

        self._trades: dict[str, TradeRecord] = {}
        self._agent: AgentProfile | None = None
        self._generation = 0
        self._cycle_ids = itertools.count(1)
        self._current_cycle: dict[str, int] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._loops: list[asyncio.Task] = []
        self._triggered: set[asyncio.Task] = set()
        self._unwatch: list[Callable[[], None]] = []
        self._health = {s.name: SourceHealth(name=s.name) for s in self._sources}
        self._running = False

    @classmethod
    def from_config(
        cls,
        config: ReconcilerConfig,
        *,
        store: PriceStore | None = None,
        simulators: dict[str, MarketSimulator] | None = None,
        clock: IClock | None = None,
    ) -> LivePriceReconciler:
        """Build the standard three-source cascade from settings."""
        sources: list[PriceSource] = [
            SimulatedMarketSource(
                simulators or {}, interval=config.simulated_interval
            ),
            LiveAgentSource(
                interval=config.live_agent_interval, timeout=config.request_timeout
            ),
            MarketDataSource(
                base_url=config.market_data_url,
                batch_size=config.fallback_batch_size,
                interval=config.fallback_interval,
                timeout=config.request_timeout,
            ),
        ]
        return cls(
            store or PriceStore(clock, window_seconds=config.quote_window),
            sources,
            clock=clock,
            request_timeout=config.request_timeout,
            max_backoff=config.max_backoff,
            enabled=config.enabled,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def store(self) -> PriceStore:
        return self._store

    @property
    def sources(self) -> list[PriceSource]:
        return list(self._sources)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def tracked_ids(self) -> set[str]:
        return set(self._trades)

    def get_current_price(self, trade_id: str) -> float | None:
        """Best-known price, or ``None`` (callers fall back to entry price)."""
        return self._store.get(trade_id)

    def subscribe(self, listener: PriceListener) -> Callable[[], None]:
        """Register a callback for accepted price updates."""
        return self._store.subscribe(listener)

    def health(self) -> dict[str, SourceHealth]:
        return dict(self._health)

    # ------------------------------------------------------------------
    # Scope changes
    # ------------------------------------------------------------------

    def track(self, trades: Iterable[TradeRecord]) -> None:
        """Replace the tracked set with the OPEN subset of ``trades``.

        When the set of ids changes, in-flight fetches for the old set are
        cancelled and quotes for trades no longer open are dropped.
        """
        current = {t.id: t for t in open_trades(dedupe_trades(trades))}
        changed = current.keys() != self._trades.keys()
        self._trades = current
        if changed:
            self._invalidate("open trade set changed")
            dropped = self._store.retain(current)
            if dropped:
                logger.debug("Dropped %d quotes for closed trades", len(dropped))

    def select_agent(self, agent: AgentProfile | None) -> None:
        """Switch the agent whose positions are being reconciled."""
        if agent == self._agent:
            return
        self._agent = agent
        self._invalidate("agent changed")
        if self._running:
            self._rewatch()

    def pause(self) -> None:
        """Stop issuing requests until :meth:`resume`."""
        if not self._enabled:
            return
        self._enabled = False
        self._invalidate("paused")
        logger.info("LivePriceReconciler paused")

    def resume(self) -> None:
        if self._enabled:
            return
        self._enabled = True
        logger.info("LivePriceReconciler resumed")

    def _invalidate(self, reason: str) -> None:
        self._generation += 1
        cancelled = 0
        for task in self._inflight.values():
            if not task.done():
                task.cancel()
                cancelled += 1
        self._inflight.clear()
        if cancelled:
            logger.debug(
                "Cancelled %d in-flight fetches (%s, generation=%d)",
                cancelled,
                reason,
                self._generation,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start one polling loop per source."""
        if self._running:
            logger.warning("LivePriceReconciler is already running")
            return
        self._running = True
        for source in self._sources:
            self._loops.append(
                asyncio.create_task(
                    self._loop(source), name=f"price-source-{source.name}"
                )
            )
        self._rewatch()
        logger.info(
            "LivePriceReconciler started (sources=%s, enabled=%s)",
            ",".join(s.name for s in self._sources),
            self._enabled,
        )

    async def stop(self) -> None:
        """Cancel loops and in-flight fetches."""
        self._running = False
        self._unwire()
        self._invalidate("stopped")
        tasks = [*self._loops, *self._triggered]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._loops.clear()
        self._triggered.clear()
        logger.info("LivePriceReconciler stopped")

    async def aclose(self) -> None:
        """Stop and release every source's network resources."""
        await self.stop()
        for source in self._sources:
            await source.aclose()

    async def __aenter__(self) -> LivePriceReconciler:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Push triggers
    # ------------------------------------------------------------------

    def _rewatch(self) -> None:
        self._unwire()
        ctx = self._context()
        for source in self._sources:
            unsubscribe = source.watch(ctx, self._trigger_for(source))
            if unsubscribe is not None:
                self._unwatch.append(unsubscribe)

    def _unwire(self) -> None:
        for unsubscribe in self._unwatch:
            try:
                unsubscribe()
            except Exception:
                logger.exception("Failed to detach source watcher")
        self._unwatch.clear()

    def _trigger_for(self, source: PriceSource) -> Callable[[], None]:
        def trigger() -> None:
            if not self._running:
                return
            task = asyncio.get_running_loop().create_task(self.refresh(source))
            self._triggered.add(task)
            task.add_done_callback(self._triggered.discard)

        return trigger

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _loop(self, source: PriceSource) -> None:
        if source.fallback_only:
            # Give the primary sources one interval to price the set first.
            await asyncio.sleep(source.interval)
        while self._running:
            await self.refresh(source)
            await asyncio.sleep(self.next_delay(source))

    def next_delay(self, source: PriceSource) -> float:
        """Polling interval, doubled per consecutive failure up to the cap."""
        failures = self._health[source.name].consecutive_failures
        if failures == 0:
            return source.interval
        cap = max(self._max_backoff, source.interval)
        return min(source.interval * (2 ** failures), cap)

    def _context(self) -> ReconcileContext:
        return ReconcileContext(agent=self._agent, enabled=self._enabled)

    def _candidates(self, source: PriceSource) -> list[TradeRecord]:
        trades = list(self._trades.values())
        if source.fallback_only:
            trades = [t for t in trades if t.id not in self._store]
        return trades

    async def refresh(self, source: PriceSource) -> dict[str, float]:
        """Run one cycle of ``source`` now; return the prices accepted.

        Never raises except ``CancelledError`` of the caller itself.
        """
        try:
            return await self._cycle(source)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._record_failure(
                self._health[source.name],
                str(exc) or type(exc).__name__,
                unexpected=True,
                exc_info=exc,
            )
            return {}

    async def _cycle(self, source: PriceSource) -> dict[str, float]:
        health = self._health[source.name]
        ctx = self._context()
        candidates = self._candidates(source)
        if not ctx.enabled or not candidates or not source.is_active(candidates, ctx):
            health.skipped += 1
            return {}

        # A newer cycle of the same source supersedes this one.
        previous = self._inflight.pop(source.name, None)
        if previous is not None and not previous.done():
            previous.cancel()

        generation = self._generation
        cycle = next(self._cycle_ids)
        self._current_cycle[source.name] = cycle
        health.cycles += 1

        with log_context(source=source.name, generation=generation, cycle=cycle):
            fetch = asyncio.ensure_future(source.try_fetch(candidates, ctx))
            self._inflight[source.name] = fetch
            try:
                done, _ = await asyncio.wait({fetch}, timeout=self._timeout)
            except asyncio.CancelledError:
                fetch.cancel()
                raise
            finally:
                if self._inflight.get(source.name) is fetch:
                    del self._inflight[source.name]

            if not done:
                fetch.cancel()
                self._record_failure(
                    health, f"timed out after {self._timeout:.1f}s"
                )
                return {}
            if fetch.cancelled():
                health.discarded += 1
                logger.debug("Fetch cancelled, result discarded")
                return {}
            exc = fetch.exception()
            if exc is not None:
                self._record_failure(
                    health,
                    str(exc) or type(exc).__name__,
                    unexpected=not isinstance(exc, PriceSourceError),
                )
                return {}

            prices = fetch.result()
            if (
                generation != self._generation
                or self._current_cycle.get(source.name) != cycle
            ):
                health.discarded += 1
                logger.debug("Stale result discarded")
                return {}
            if not isinstance(prices, Mapping):
                self._record_failure(
                    health, f"returned {type(prices).__name__}, expected a price map"
                )
                return {}

            health.consecutive_failures = 0
            health.last_success_at = self._clock.now()
            return self._accept(source, prices)

    def _accept(
        self, source: PriceSource, prices: Mapping[str, object]
    ) -> dict[str, float]:
        in_scope: dict[str, float] = {}
        rejected = 0
        for tid, raw in prices.items():
            if tid not in self._trades:
                continue
            if source.fallback_only and tid in self._store:
                continue
            numeric = isinstance(raw, (int, float)) and not isinstance(raw, bool)
            price = positive_price(raw) if numeric else None
            if price is None:
                rejected += 1
                continue
            in_scope[tid] = price
        if rejected:
            logger.warning(
                "Price source %s returned %d unusable prices", source.name, rejected
            )
        accepted = self._store.apply(in_scope, int(source.rank))
        logger.debug(
            "Cycle complete: %d prices returned, %d accepted",
            len(prices),
            len(accepted),
        )
        return accepted

    def _record_failure(
        self,
        health: SourceHealth,
        message: str,
        *,
        unexpected: bool = False,
        exc_info: BaseException | None = None,
    ) -> None:
        health.error_count += 1
        health.consecutive_failures += 1
        health.last_error = message
        if unexpected:
            logger.error(
                "Price source %s raised unexpectedly: %s",
                health.name,
                message,
                exc_info=exc_info,
            )
        else:
            logger.warning(
                "Price source %s failed (consecutive=%d): %s",
                health.name,
                health.consecutive_failures,
                message,
            )
