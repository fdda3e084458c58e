"""CLI entry point for the analytics core.

Every command reads a JSON array of normalized trade records and prints
JSON to stdout.  Logs go to stderr.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click

from .core.config import Settings, load_settings
from .core.models import TradeRecord
from .journal.record import closed_trades, coerce_trades, open_trades
from .journal.segments import KEY_FUNCTIONS, aggregate_by, aggregate_by_signal_strength
from .journal.statistics import compute_summary
from .journal.equity import build_agent_curves, equity_report
from .observability.logger import new_trace_id, setup_logging

logger = logging.getLogger(__name__)


def _load_trades(path: str) -> list[TradeRecord]:
    raw = json.loads(Path(path).read_text())
    if isinstance(raw, dict):
        raw = raw.get("trades", [])
    if not isinstance(raw, list):
        raise click.BadParameter("expected a JSON array of trades", param_hint="FILE")
    trades = coerce_trades(raw)
    logger.info("Loaded %d trades from %s", len(trades), path)
    return trades


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.option("--config", default=None, help="TOML config file path")
@click.option("--log-level", default=None, help="Override log level")
@click.pass_context
def main(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """Agent trade performance analytics."""
    settings = load_settings(config)
    obs = settings.observability
    setup_logging(level=log_level or obs.log_level, format=obs.log_format)
    new_trace_id()
    ctx.obj = settings


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--by",
    "group_by",
    type=click.Choice(sorted(KEY_FUNCTIONS)),
    default=None,
    help="Break the summary down by this dimension",
)
@click.option("--min-samples", default=1, type=int, help="Drop smaller segments")
@click.option("--sort-by", default="expectancy", help="Summary metric to rank segments by")
@click.option("--include-open", is_flag=True, help="Count open trades too")
def summary(
    file: str,
    group_by: str | None,
    min_samples: int,
    sort_by: str,
    include_open: bool,
) -> None:
    """Summary statistics, optionally per segment."""
    trades = _load_trades(file)
    if not include_open:
        trades = closed_trades(trades)

    out: dict[str, Any] = {"total": compute_summary(trades).to_dict()}
    if group_by:
        try:
            segments = aggregate_by(
                trades,
                KEY_FUNCTIONS[group_by],
                min_samples=min_samples,
                sort_by=sort_by,
            )
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--sort-by") from exc
        out["segments"] = [s.to_dict() for s in segments]
    _emit(out)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--min-samples", default=1, type=int)
def strength(file: str, min_samples: int) -> None:
    """Risk:reward by signal strength."""
    trades = closed_trades(_load_trades(file))
    buckets = aggregate_by_signal_strength(trades, min_samples=min_samples)
    _emit([b.to_dict() for b in buckets])


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--baseline", default=None, type=float, help="Starting balance")
@click.option("--agent", "agents", multiple=True, help="Per-agent curves for these ids")
@click.pass_obj
def equity(
    settings: Settings, file: str, baseline: float | None, agents: tuple[str, ...]
) -> None:
    """Equity curve, drawdown, streaks and Sharpe ratio."""
    trades = _load_trades(file)
    analytics = settings.analytics
    start = analytics.starting_balance if baseline is None else baseline

    report = equity_report(
        trades, baseline=start, risk_free_rate=analytics.risk_free_rate
    )
    out: dict[str, Any] = report.to_dict()
    if agents:
        curves = build_agent_curves(trades, agents, baseline=start)
        out["agents"] = {
            aid: [p.to_dict() for p in curve] for aid, curve in curves.items()
        }
    _emit(out)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--cycles", default=1, type=click.IntRange(min=1), help="Cascade passes to run")
@click.pass_obj
def prices(settings: Settings, file: str, cycles: int) -> None:
    """Mark the open trades in FILE by running the source cascade."""
    import asyncio

    from .pricing.reconciler import LivePriceReconciler
    from .pricing.marks import mark_open_trades

    trades = _load_trades(file)

    async def run() -> dict[str, Any]:
        reconciler = LivePriceReconciler.from_config(settings.reconciler)
        reconciler.track(trades)
        try:
            for _ in range(cycles):
                for source in reconciler.sources:
                    await reconciler.refresh(source)
        finally:
            await reconciler.aclose()
        marked = mark_open_trades(open_trades(trades), reconciler.store)
        return {
            "prices": reconciler.store.snapshot(),
            "unrealized": compute_summary(marked).to_dict(),
            "health": {
                name: {"errors": h.error_count, "last_error": h.last_error}
                for name, h in reconciler.health().items()
            },
        }

    _emit(asyncio.run(run()))


if __name__ == "__main__":
    main()
