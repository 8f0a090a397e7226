"""
Strategy configuration profiles, validation and JSON persistence
"""
import json

import pytest

from orb_engine.core.errors import ConfigError
from orb_engine.core.orb_config import DEFAULT_CONFIG_PATH, ORBConfig, TieBreakPolicy


def test_profiles():
    live = ORBConfig.live_profile()
    assert live.opening_range_size == 6
    assert live.max_hold_minutes == 120
    assert live.volume_multiple == 1.2

    inverse = ORBConfig.inverse_profile()
    assert inverse.inverted
    assert inverse.volume_multiple is None
    assert inverse.min_cash_reserve == 1000.0

    assert ORBConfig.backtest_profile().max_hold_minutes is None
    assert ORBConfig.simulation_profile(top_k=3).top_k == 3


@pytest.mark.parametrize("overrides", [
    {"symbols": ()},
    {"opening_range_size": 0},
    {"range_percent_min": 0.05, "range_percent_max": 0.01},
    {"scale_out_fraction": 1.0},
    {"top_k": 0},
    {"volume_multiple": -1.0},
])
def test_invalid_config(overrides):
    config = ORBConfig(**overrides)
    assert config.validate() is False
    with pytest.raises(ConfigError):
        config.validate(strict=True)


def test_valid_profiles_pass():
    for profile in (ORBConfig.live_profile, ORBConfig.inverse_profile,
                    ORBConfig.backtest_profile, ORBConfig.simulation_profile):
        assert profile(symbols=("NVDA",)).validate(strict=True)


def test_universe_comes_from_config_not_defaults():
    assert ORBConfig().symbols == ()
    assert ORBConfig().validate() is False
    assert "NVDA" in ORBConfig.load_from_file(DEFAULT_CONFIG_PATH).symbols


def test_simulation_capital_covers_top_k():
    assert ORBConfig.simulation_profile().starting_capital == 250000.0
    assert ORBConfig.simulation_profile(top_k=2, amount_per_trade=1000.0).starting_capital == 2000.0
    assert ORBConfig.simulation_profile(starting_capital=5000.0).starting_capital == 5000.0


def test_save_and_load(tmp_path):
    path = tmp_path / "orb.json"
    original = ORBConfig.live_profile(symbols=("NVDA", "AMD"), tie_break=TieBreakPolicy.STOP_FIRST,
                                      volume_multiple=None, max_new_positions=3)
    original.save_to_file(str(path))

    loaded = ORBConfig.load_from_file(str(path))

    assert loaded.symbols == ("NVDA", "AMD")
    assert loaded.tie_break == TieBreakPolicy.STOP_FIRST
    assert loaded.volume_multiple is None
    assert loaded.opening_range_size == 6
    assert loaded.max_hold_minutes == 120
    assert loaded.max_new_positions == 3
    assert loaded.gap_threshold == original.gap_threshold


def test_profile_key_selects_base(tmp_path):
    path = tmp_path / "inverse.json"
    path.write_text(json.dumps({"profile": "inverse", "risk_management": {"min_cash_reserve": 250.0}}))

    config = ORBConfig.load_from_file(str(path))
    assert config.inverted
    assert config.min_cash_reserve == 250.0


def test_missing_file_gives_defaults(tmp_path):
    assert ORBConfig.load_from_file(str(tmp_path / "nope.json")) == ORBConfig()


def test_shipped_config_loads():
    config = ORBConfig.load_from_file(DEFAULT_CONFIG_PATH)
    assert config.validate(strict=True)
