"""
Aggregate statistics over a closed-trade ledger
"""
from collections import Counter
from typing import Iterable

from orb_engine.core.models import BacktestResult, ClosedTrade

PROFIT_FACTOR_INFINITE = float('inf')


def profit_factor(returns: Iterable[float]) -> float:
    """Sum of winning returns over |sum of losing returns|; 0 when nothing was won"""
    returns = list(returns)
    gross_win = sum(r for r in returns if r > 0)
    gross_loss = abs(sum(r for r in returns if r < 0))
    if gross_loss > 0:
        return gross_win / gross_loss
    return PROFIT_FACTOR_INFINITE if gross_win > 0 else 0.0


def aggregate_results(trades: Iterable[ClosedTrade]) -> BacktestResult:
    """Recompute all statistics from scratch; compounding follows ledger order"""
    trades = tuple(trades)
    if not trades:
        return BacktestResult()

    returns = [t.return_percent for t in trades]
    wins = [r for r in returns if r > 0]
    losses = [r for r in returns if r <= 0]

    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = abs(sum(losses) / len(losses)) if losses else 0.0

    cumulative = 100.0
    peak = 100.0
    max_drawdown = 0.0
    for r in returns:
        cumulative *= 1 + r / 100
        peak = max(peak, cumulative)
        max_drawdown = max(max_drawdown, (peak - cumulative) / peak * 100)

    exit_reasons = Counter(t.exit_reason.value for t in trades)

    return BacktestResult(
        total_trades=len(trades),
        wins=len(wins),
        losses=len(losses),
        win_rate=len(wins) / len(trades) * 100,
        avg_win_percent=avg_win,
        avg_loss_percent=avg_loss,
        profit_factor=profit_factor(returns),
        total_return=cumulative - 100,
        max_drawdown=max_drawdown,
        exit_reasons=dict(exit_reasons),
        trades=trades,
    )
