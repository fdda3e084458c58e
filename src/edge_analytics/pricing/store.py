"""Owned store for the ``trade_id -> current price`` map.

The store is the only shared mutable state between the reconciler
(sole writer) and summary recomputation (readers).  It keeps at most one
:class:`PriceQuote` per open trade, always the most recently accepted
one, and notifies subscribers after every accepted write.

Priority rule: a quote from a lower-priority source (higher
``source_rank``) is rejected while a higher-priority quote for the same
trade is younger than ``window_seconds``.  Equal or better ranks always
replace.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from edge_analytics.core.clock import IClock, WallClock, seconds_since

logger = logging.getLogger(__name__)

PriceListener = Callable[[dict[str, float]], None]


@dataclass(frozen=True)
class PriceQuote:
    """An accepted price for one open trade."""

    trade_id: str
    price: float
    source_rank: int
    fetched_at: datetime


class PriceStore:
    """Single-writer price map with priority gating and change callbacks.

    Parameters
    ----------
    clock:
        Time source used for quote ageing.  Defaults to wall-clock time.
    window_seconds:
        How long a quote shadows quotes from lower-priority sources.
    """

    def __init__(
        self,
        clock: IClock | None = None,
        *,
        window_seconds: float = 15.0,
    ) -> None:
        self._clock = clock or WallClock()
        self._window = window_seconds
        self._quotes: dict[str, PriceQuote] = {}
        self._listeners: list[PriceListener] = []

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def get(self, trade_id: str) -> float | None:
        """Current price for ``trade_id``, or ``None`` if never priced."""
        quote = self._quotes.get(trade_id)
        return quote.price if quote else None

    def get_quote(self, trade_id: str) -> PriceQuote | None:
        return self._quotes.get(trade_id)

    def snapshot(self) -> dict[str, float]:
        """Copy of the full price map."""
        return {tid: q.price for tid, q in self._quotes.items()}

    def __contains__(self, trade_id: object) -> bool:
        return trade_id in self._quotes

    def __len__(self) -> int:
        return len(self._quotes)

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def set_if_higher_priority(self, quote: PriceQuote) -> bool:
        """Accept ``quote`` unless a fresher, higher-priority one exists.

        Returns ``True`` if the quote was stored.  Listeners are not
        called from here; use :meth:`apply` for batched writes.
        """
        current = self._quotes.get(quote.trade_id)
        if current is not None and current.source_rank < quote.source_rank:
            if seconds_since(self._clock, current.fetched_at) < self._window:
                return False
        self._quotes[quote.trade_id] = quote
        return True

    def apply(self, prices: dict[str, float], source_rank: int) -> dict[str, float]:
        """Write a batch from one source and notify listeners once.

        Returns the subset of ``prices`` that was accepted.
        """
        now = self._clock.now()
        accepted: dict[str, float] = {}
        for trade_id, price in prices.items():
            quote = PriceQuote(
                trade_id=trade_id,
                price=price,
                source_rank=source_rank,
                fetched_at=now,
            )
            if self.set_if_higher_priority(quote):
                accepted[trade_id] = price
        if accepted:
            self._notify(accepted)
        return accepted

    def retain(self, trade_ids: Iterable[str]) -> list[str]:
        """Drop quotes for trades outside ``trade_ids``; return dropped ids."""
        keep = set(trade_ids)
        dropped = [tid for tid in self._quotes if tid not in keep]
        for tid in dropped:
            del self._quotes[tid]
        return dropped

    def clear(self) -> None:
        self._quotes.clear()

    # ------------------------------------------------------------------ #
    # Subscriptions                                                        #
    # ------------------------------------------------------------------ #

    def subscribe(self, listener: PriceListener) -> Callable[[], None]:
        """Register ``listener(changed_prices)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changed: dict[str, float]) -> None:
        for listener in list(self._listeners):
            try:
                listener(dict(changed))
            except Exception:
                logger.exception("Price listener failed")
