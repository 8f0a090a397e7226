"""
Logging configuration and formatters
"""
import json
import logging
import sys

from orb_engine.core.advanced_logger import (
    ContextFormatter, PerformanceLogger, StructuredJsonFormatter, build_logging_config,
)


def _record(msg="📥 Fetching NVDA", **extra):
    record = logging.LogRecord("orb_engine.test", logging.INFO, "/tmp/market_data.py", 42, msg, (), None,
                               func="fetch_candles")
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_logging_config_layout(tmp_path):
    config = build_logging_config(tmp_path, level="DEBUG", console_level="WARNING")

    handlers = config['handlers']
    assert set(handlers) == {'console', 'main_file', 'main_json', 'performance', 'errors'}
    assert handlers['console']['level'] == "WARNING"
    assert handlers['main_file']['level'] == "DEBUG"
    assert handlers['errors']['filename'].startswith(str(tmp_path / "errors"))
    assert config['loggers']['performance']['propagate'] is False


def test_context_formatter():
    formatter = ContextFormatter('%(context)s | %(message)s')
    assert formatter.format(_record()) == "market_data.py:fetch_candles:42 | 📥 Fetching NVDA"


def test_json_formatter_keeps_extra_fields():
    line = StructuredJsonFormatter().format(_record(symbol="NVDA", details={"rows": (1, 2)}, when=object()))
    data = json.loads(line)

    assert data['level'] == "INFO"
    assert data['message'] == "📥 Fetching NVDA"
    assert data['context'] == "market_data.py:fetch_candles:42"
    assert data['symbol'] == "NVDA"
    assert data['details'] == {"rows": [1, 2]}
    assert isinstance(data['when'], str)


def test_json_formatter_includes_stack_trace():
    try:
        raise ValueError("bad candle")
    except ValueError:
        record = logging.LogRecord("orb", logging.ERROR, "x.py", 1, "failed", (), sys.exc_info())
    assert "ValueError: bad candle" in json.loads(StructuredJsonFormatter().format(record))['stack_trace']


def test_performance_timer(caplog):
    perf = PerformanceLogger("orb_engine.test.performance")
    with caplog.at_level(logging.INFO, logger="orb_engine.test.performance"):
        timer_id = perf.start_timer("fetch_many[3]")
        duration = perf.end_timer(timer_id, {'loaded': 2})

    assert duration >= 0
    assert "fetch_many[3] completed" in caplog.text
    assert caplog.records[-1].details == {'loaded': 2}
    assert perf.end_timer("unknown") == 0.0
