#!/usr/bin/env python3
"""
Backtest and simulation reporting
Plain-text summaries, JSON-safe dicts, CSV trade export and equity charts
"""

import logging
import math
import os
from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from orb_engine.core.models import BacktestResult, ClosedTrade

logger = logging.getLogger(__name__)


def _format_profit_factor(value: float) -> str:
    return "∞" if math.isinf(value) else f"{value:.2f}"


def format_summary(result: BacktestResult, title: str = "ORB BACKTEST RESULTS") -> List[str]:
    """Text lines summarizing a result"""
    lines = [
        "=" * 65,
        f"🏆 {title}",
        "=" * 65,
    ]

    if result.total_trades == 0:
        lines.append("📭 No trades (no candidates)")
        return lines

    lines.extend([
        "📊 TRADING STATISTICS:",
        f"   Total Trades: {result.total_trades}",
        f"   Wins / Losses: {result.wins} / {result.losses}",
        f"   Win Rate: {result.win_rate:.1f}%",
        f"   Avg Win: {result.avg_win_percent:+.2f}%",
        f"   Avg Loss: -{result.avg_loss_percent:.2f}%",
        f"   Profit Factor: {_format_profit_factor(result.profit_factor)}",
        "",
        "💰 PERFORMANCE:",
        f"   Total Return (compounded): {result.total_return:+.2f}%",
        f"   Max Drawdown: {result.max_drawdown:.2f}%",
        "",
        "🚪 Exit Distribution:",
    ])
    for reason, count in sorted(result.exit_reasons.items(), key=lambda kv: -kv[1]):
        pct = count / result.total_trades * 100
        lines.append(f"   {reason}: {count} ({pct:.1f}%)")
    return lines


def print_backtest_results(result: BacktestResult, title: str = "ORB BACKTEST RESULTS"):
    print("\n" + "\n".join(format_summary(result, title)))


def result_to_dict(result: BacktestResult, include_trades: bool = False) -> Dict:
    """JSON-serializable view of a result; an infinite profit factor becomes "inf" """
    pf = result.profit_factor
    data = {
        'total_trades': result.total_trades,
        'wins': result.wins,
        'losses': result.losses,
        'win_rate': round(result.win_rate, 4),
        'avg_win_percent': round(result.avg_win_percent, 4),
        'avg_loss_percent': round(result.avg_loss_percent, 4),
        'profit_factor': "inf" if math.isinf(pf) else round(pf, 4),
        'total_return': round(result.total_return, 4),
        'max_drawdown': round(result.max_drawdown, 4),
        'exit_reasons': dict(result.exit_reasons),
    }
    if include_trades:
        data['trades'] = [t.to_dict() for t in result.trades]
    return data


def trades_frame(trades: Sequence[ClosedTrade]) -> pd.DataFrame:
    columns = ['symbol', 'side', 'entry_time', 'exit_time', 'entry_price', 'exit_price',
               'pnl', 'return_percent', 'exit_reason', 'quantity']
    df = pd.DataFrame([t.to_dict() for t in trades], columns=columns)
    if not df.empty:
        df['dollar_pnl'] = df['pnl'] * df['quantity']
    return df


def export_trades(trades: Sequence[ClosedTrade], path: str) -> str:
    """Write the trade ledger to CSV"""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    trades_frame(trades).to_csv(path, index=False)
    logger.info(f"📄 Trades exported to {path}")
    return path


def compounded_curve(result: BacktestResult) -> pd.DataFrame:
    """Cumulative index (base 100) and running drawdown after each trade"""
    cumulative = 100.0
    peak = 100.0
    rows = []
    for trade in result.trades:
        cumulative *= 1 + trade.return_percent / 100
        peak = max(peak, cumulative)
        rows.append({
            'exit_time': trade.exit_time,
            'cumulative': cumulative,
            'drawdown': -(peak - cumulative) / peak * 100,
        })
    return pd.DataFrame(rows, columns=['exit_time', 'cumulative', 'drawdown'])


def plot_equity_curve(result: BacktestResult, path: str, title: str = "ORB",
                      equity_curve: Optional[Sequence[Tuple]] = None) -> Optional[str]:
    """Save a two-panel equity/drawdown chart; returns None when there is nothing to plot"""
    if equity_curve:
        df = pd.DataFrame(list(equity_curve), columns=['time', 'equity'])
        df['peak'] = df['equity'].cummax()
        df['drawdown'] = (df['equity'] - df['peak']) / df['peak'] * 100
        x, y, dd, base = df['time'], df['equity'], df['drawdown'], df['equity'].iloc[0]
        ylabel = 'Equity ($)'
    else:
        df = compounded_curve(result)
        if df.empty:
            logger.info("📭 No trades to plot")
            return None
        x, y, dd, base = df['exit_time'], df['cumulative'], df['drawdown'], 100.0
        ylabel = 'Index (base 100)'

    plt.figure(figsize=(14, 8))

    plt.subplot(2, 1, 1)
    plt.plot(x, y, linewidth=2, color='blue', label=title)
    plt.axhline(y=base, color='gray', linestyle='--', alpha=0.7, label='Start')
    plt.title(f'📈 {title} equity ({result.total_return:+.1f}% compounded)')
    plt.ylabel(ylabel)
    plt.legend()
    plt.grid(True, alpha=0.3)

    plt.subplot(2, 1, 2)
    plt.fill_between(x, dd, 0, color='red', alpha=0.3, label='Drawdown')
    plt.axhline(y=-result.max_drawdown, color='red', linestyle='--',
                label=f'Max DD: {result.max_drawdown:.1f}%')
    plt.title('📉 Drawdown')
    plt.ylabel('Drawdown (%)')
    plt.legend()
    plt.grid(True, alpha=0.3)

    plt.tight_layout()

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    plt.savefig(path, dpi=150, bbox_inches='tight')
    plt.close()
    logger.info(f"📊 Chart saved: {path}")
    return path
