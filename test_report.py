"""
Text summaries, JSON view, CSV export and charts
"""
import json
from datetime import datetime, timedelta

import pandas as pd

from orb_engine.backtest.metrics import aggregate_results
from orb_engine.backtest.report import (
    compounded_curve, export_trades, format_summary, plot_equity_curve, result_to_dict,
)
from orb_engine.core.models import BacktestResult, ClosedTrade, ExitReason, Side

START = datetime(2024, 1, 2, 10, 0)


def _trade(i, return_percent, reason=ExitReason.TRAIL_STOP):
    return ClosedTrade("TEST", Side.LONG, START + timedelta(days=i), START + timedelta(days=i, hours=2),
                       100.0, 100.0 + return_percent, return_percent, return_percent, reason, 10)


def test_summary_without_trades():
    lines = format_summary(BacktestResult())
    assert "📭 No trades (no candidates)" in lines


def test_summary_lines():
    text = "\n".join(format_summary(aggregate_results([_trade(0, 2.0), _trade(1, 1.0)])))
    assert "Total Trades: 2" in text
    assert "Profit Factor: ∞" in text
    assert "TRAIL_STOP: 2 (100.0%)" in text


def test_infinite_profit_factor_is_json_safe():
    data = result_to_dict(aggregate_results([_trade(0, 2.0)]), include_trades=True)
    assert data['profit_factor'] == "inf"
    assert json.loads(json.dumps(data))['trades'][0]['exit_reason'] == "TRAIL_STOP"


def test_export_trades(tmp_path):
    path = export_trades([_trade(0, 2.0), _trade(1, -1.0, ExitReason.STOP)], str(tmp_path / "out" / "trades.csv"))

    df = pd.read_csv(path)
    assert list(df['exit_reason']) == ["TRAIL_STOP", "STOP"]
    assert list(df['dollar_pnl']) == [20.0, -10.0]


def test_compounded_curve():
    df = compounded_curve(aggregate_results([_trade(0, 10.0), _trade(1, -10.0)]))
    assert list(df['cumulative'].round(6)) == [110.0, 99.0]
    assert round(df['drawdown'].iloc[-1], 6) == -10.0


def test_plot_equity_curve(tmp_path):
    result = aggregate_results([_trade(0, 2.0), _trade(1, -1.0)])
    path = plot_equity_curve(result, str(tmp_path / "equity.png"))
    assert path is not None
    assert (tmp_path / "equity.png").stat().st_size > 0

    curve = [(START + timedelta(minutes=i), 1000.0 + i) for i in range(5)]
    assert plot_equity_curve(result, str(tmp_path / "sim.png"), equity_curve=curve)


def test_nothing_to_plot(tmp_path):
    assert plot_equity_curve(BacktestResult(), str(tmp_path / "empty.png")) is None
    assert not (tmp_path / "empty.png").exists()
