"""Edge analytics: decision-grade performance statistics for trading agents.

Converts normalized trade records into summaries, segment breakdowns and
equity curves, and keeps open positions marked to market from a
prioritised cascade of price sources.
"""

__version__ = "0.1.0"
