#!/usr/bin/env python3
"""
Configuration for ORB (Opening Range Breakout) Strategy
One parameterized config shared by the live bot, the inverse bot,
the backtester and the market simulator
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
import os
import json
import logging
from pathlib import Path
from dotenv import load_dotenv

from orb_engine.core.errors import ConfigError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '../../configs/orb_config.json')


class TieBreakPolicy(Enum):
    """Which exit wins when one bar touches both target and stop"""
    TARGET_FIRST = "target_first"
    STOP_FIRST = "stop_first"


@dataclass
class ORBConfig:
    """ORB Strategy Configuration"""

    # Universe (ordered; supplied by the config file or the command line)
    symbols: Tuple[str, ...] = ()
    session_timezone: str = "America/New_York"

    # Opening range
    opening_range_size: int = 30  # candles (30 x 1m = 30 minutes)
    entry_slippage: float = 0.0  # added to range high for longs, subtracted from range low for shorts
    exit_slippage: float = 0.0  # stop and trail-stop fills land this much past the stop

    # Signal filters
    min_price: float = 5.0
    gap_threshold: float = 0.002  # |open - prior close| / prior close
    range_percent_min: float = 0.005
    range_percent_max: float = 0.12
    volume_multiple: Optional[float] = 1.2  # None disables the volume gate

    # Position management
    scale_out_fraction: float = 0.5  # realized at 1R
    tie_break: TieBreakPolicy = TieBreakPolicy.TARGET_FIRST
    max_hold_minutes: Optional[int] = None  # live variants only

    # Simulation
    top_k: int = 5  # new positions admitted per tick
    amount_per_trade: float = 50000.0
    starting_capital: float = 100000.0

    # Live bot
    live_range: str = "5d"
    live_interval: str = "5m"
    position_fraction: float = 0.24  # fraction of available cash per trade
    min_cash_reserve: float = 0.0
    max_new_positions: Optional[int] = None
    auto_execute: bool = False
    inverted: bool = False

    # Data fetching
    fetch_batch_size: int = 5
    fetch_timeout_seconds: float = 20.0

    # Persistence
    state_file: str = os.getenv("ORB_STATE_FILE", "bot_state.json")

    # IBKR Configuration
    ibkr_host: str = os.getenv("IBKR_HOST", "127.0.0.1")
    ibkr_port: int = int(os.getenv("IBKR_PORT", "7497"))  # TWS paper trading port
    ibkr_client_id: int = int(os.getenv("IBKR_CLIENT_ID", "5"))

    # Logging and Monitoring
    log_level: str = os.getenv("ORB_LOG_LEVEL", "INFO")
    send_notifications: bool = False
    webhook_url: Optional[str] = field(default_factory=lambda: os.getenv("ORB_WEBHOOK_URL"))

    # --- Profiles -------------------------------------------------------

    @classmethod
    def live_profile(cls, **overrides) -> 'ORBConfig':
        """5-minute bars, 30-minute range, strict gap/range filters, 2h max hold"""
        params = dict(
            opening_range_size=6,
            gap_threshold=0.005,
            range_percent_min=0.005,
            range_percent_max=0.04,
            volume_multiple=1.2,
            max_hold_minutes=120,
            position_fraction=0.24,
            fetch_batch_size=5,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def inverse_profile(cls, **overrides) -> 'ORBConfig':
        """Relaxed filters, no volume gate, buy-only side mapping"""
        params = dict(
            opening_range_size=6,
            gap_threshold=0.002,
            range_percent_min=0.005,
            range_percent_max=0.12,
            volume_multiple=None,
            position_fraction=0.25,
            min_cash_reserve=1000.0,
            fetch_batch_size=10,
            inverted=True,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def backtest_profile(cls, **overrides) -> 'ORBConfig':
        """1-minute bars, 30-minute range"""
        params = dict(opening_range_size=30)
        params.update(overrides)
        return cls(**params)

    @classmethod
    def simulation_profile(cls, **overrides) -> 'ORBConfig':
        """1-minute bars, top-5 admission per tick, $50k per trade, capital for a full top-K tick"""
        params = dict(
            opening_range_size=30,
            top_k=5,
            amount_per_trade=50000.0,
            entry_slippage=0.05,
            exit_slippage=0.05,
            fetch_batch_size=10,
        )
        params.update(overrides)
        params.setdefault('starting_capital', params['top_k'] * params['amount_per_trade'])
        return cls(**params)

    # --- Validation -----------------------------------------------------

    def validate(self, strict: bool = False) -> bool:
        """Validate configuration"""
        errors = []

        if not self.symbols:
            errors.append("Universe must contain at least one symbol")

        if self.opening_range_size <= 0:
            errors.append("Opening range size must be positive")

        if self.range_percent_min < 0 or self.range_percent_max <= self.range_percent_min:
            errors.append("Range percent band must satisfy 0 <= min < max")

        if self.gap_threshold < 0:
            errors.append("Gap threshold must not be negative")

        if self.entry_slippage < 0 or self.exit_slippage < 0:
            errors.append("Slippage must not be negative")

        if self.volume_multiple is not None and self.volume_multiple <= 0:
            errors.append("Volume multiple must be positive (or None to disable)")

        if not 0 < self.scale_out_fraction < 1:
            errors.append("Scale-out fraction must be between 0 and 1")

        if self.max_hold_minutes is not None and self.max_hold_minutes <= 0:
            errors.append("Max hold minutes must be positive")

        if self.top_k <= 0:
            errors.append("Top-K must be positive")

        if not 0 < self.position_fraction <= 1:
            errors.append("Position fraction must be in (0, 1]")

        if errors:
            for error in errors:
                logger.error(f"❌ Config Error: {error}")
            if strict:
                raise ConfigError("; ".join(errors))
            return False

        return True

    def display_strategy_summary(self):
        """Display strategy configuration summary"""
        print("\n" + "="*60)
        print("🎯 ORB STRATEGY CONFIGURATION")
        print("="*60)
        print(f"Universe: {len(self.symbols)} symbols ({', '.join(self.symbols[:5])}{'...' if len(self.symbols) > 5 else ''})")
        print(f"Opening Range: First {self.opening_range_size} candles")
        print(f"Entry: Breach of range high/low (slippage ${self.entry_slippage:.2f})")
        print(f"Stop Loss: Opposite side of range (1R, fill slippage ${self.exit_slippage:.2f})")
        print(f"Scale Out: {self.scale_out_fraction*100:.0f}% at 1R, stop to breakeven")
        print(f"Tie Break: {self.tie_break.value}")
        print(f"Min Price: ${self.min_price:.2f}")
        print(f"Gap Threshold: {self.gap_threshold*100:.2f}%")
        print(f"Range Band: {self.range_percent_min*100:.1f}% - {self.range_percent_max*100:.1f}%")
        if self.volume_multiple is None:
            print("Volume Filter: Disabled")
        else:
            print(f"Volume Multiplier: {self.volume_multiple:.1f}x opening average")
        print(f"Max Hold: {f'{self.max_hold_minutes} min' if self.max_hold_minutes else 'EOD'}")
        print(f"Top-K per tick: {self.top_k}")
        print(f"Mode: {'INVERTED (buy-only)' if self.inverted else 'NORMAL'}")
        print(f"Auto Execute: {'Enabled' if self.auto_execute else 'Disabled'}")
        print("="*60)

    # --- File I/O -------------------------------------------------------

    @classmethod
    def load_from_file(cls, config_path: str = None) -> 'ORBConfig':
        """Load configuration from JSON file"""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path = Path(config_path)
        if not config_path.exists():
            logger.warning(f"⚠️ Config file not found: {config_path}")
            return cls()

        with open(config_path, 'r') as f:
            config_data = json.load(f)

        profile = config_data.get('profile')
        factories = {
            'live': cls.live_profile,
            'inverse': cls.inverse_profile,
            'backtest': cls.backtest_profile,
            'simulation': cls.simulation_profile,
        }
        config = factories[profile]() if profile in factories else cls()

        # Universe
        universe = config_data.get('universe', {})
        if universe.get('symbols'):
            config.symbols = tuple(universe['symbols'])
        config.session_timezone = universe.get('session_timezone', config.session_timezone)

        # Trading parameters
        trading = config_data.get('trading', {})
        config.opening_range_size = trading.get('opening_range_size', config.opening_range_size)
        config.entry_slippage = trading.get('entry_slippage', config.entry_slippage)
        config.exit_slippage = trading.get('exit_slippage', config.exit_slippage)
        config.scale_out_fraction = trading.get('scale_out_fraction', config.scale_out_fraction)
        config.max_hold_minutes = trading.get('max_hold_minutes', config.max_hold_minutes)
        if 'tie_break' in trading:
            config.tie_break = TieBreakPolicy(trading['tie_break'])

        # Signal filters
        filters = config_data.get('filters', {})
        config.min_price = filters.get('min_price', config.min_price)
        config.gap_threshold = filters.get('gap_threshold', config.gap_threshold)
        config.range_percent_min = filters.get('range_percent_min', config.range_percent_min)
        config.range_percent_max = filters.get('range_percent_max', config.range_percent_max)
        config.volume_multiple = filters.get('volume_multiple', config.volume_multiple)

        # Risk management
        risk = config_data.get('risk_management', {})
        config.position_fraction = risk.get('position_fraction', config.position_fraction)
        config.min_cash_reserve = risk.get('min_cash_reserve', config.min_cash_reserve)
        config.max_new_positions = risk.get('max_new_positions', config.max_new_positions)

        # Simulation
        simulation = config_data.get('simulation', {})
        config.top_k = simulation.get('top_k', config.top_k)
        config.amount_per_trade = simulation.get('amount_per_trade', config.amount_per_trade)
        config.starting_capital = simulation.get('starting_capital', config.starting_capital)

        # Execution settings
        execution = config_data.get('execution', {})
        config.auto_execute = execution.get('auto_execute', config.auto_execute)
        config.inverted = execution.get('inverted', config.inverted)
        config.live_range = execution.get('live_range', config.live_range)
        config.live_interval = execution.get('live_interval', config.live_interval)
        config.fetch_batch_size = execution.get('fetch_batch_size', config.fetch_batch_size)
        config.fetch_timeout_seconds = execution.get('fetch_timeout_seconds', config.fetch_timeout_seconds)
        config.state_file = execution.get('state_file', config.state_file)

        # Connection settings
        connection = config_data.get('connection', {})
        config.ibkr_host = connection.get('host', config.ibkr_host)
        config.ibkr_port = connection.get('port', config.ibkr_port)
        config.ibkr_client_id = connection.get('client_id', config.ibkr_client_id)

        # Logging
        logging_section = config_data.get('logging', {})
        config.log_level = logging_section.get('level', config.log_level)
        config.send_notifications = logging_section.get('send_notifications', config.send_notifications)
        config.webhook_url = logging_section.get('webhook_url', config.webhook_url)

        return config

    def save_to_file(self, config_path: str = None):
        """Save current configuration to JSON file"""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_data = {
            "universe": {
                "symbols": list(self.symbols),
                "session_timezone": self.session_timezone
            },
            "trading": {
                "opening_range_size": self.opening_range_size,
                "entry_slippage": self.entry_slippage,
                "exit_slippage": self.exit_slippage,
                "scale_out_fraction": self.scale_out_fraction,
                "max_hold_minutes": self.max_hold_minutes,
                "tie_break": self.tie_break.value
            },
            "filters": {
                "min_price": self.min_price,
                "gap_threshold": self.gap_threshold,
                "range_percent_min": self.range_percent_min,
                "range_percent_max": self.range_percent_max,
                "volume_multiple": self.volume_multiple
            },
            "risk_management": {
                "position_fraction": self.position_fraction,
                "min_cash_reserve": self.min_cash_reserve,
                "max_new_positions": self.max_new_positions
            },
            "simulation": {
                "top_k": self.top_k,
                "amount_per_trade": self.amount_per_trade,
                "starting_capital": self.starting_capital
            },
            "execution": {
                "auto_execute": self.auto_execute,
                "inverted": self.inverted,
                "live_range": self.live_range,
                "live_interval": self.live_interval,
                "fetch_batch_size": self.fetch_batch_size,
                "fetch_timeout_seconds": self.fetch_timeout_seconds,
                "state_file": self.state_file
            },
            "connection": {
                "host": self.ibkr_host,
                "port": self.ibkr_port,
                "client_id": self.ibkr_client_id
            },
            "logging": {
                "level": self.log_level,
                "send_notifications": self.send_notifications
            }
        }

        with open(config_path, 'w') as f:
            json.dump(config_data, f, indent=2)

        logger.info(f"✅ Configuration saved to {config_path}")
