#!/usr/bin/env python3
"""
Logging setup for the ORB engine

📂 Log Structure:
logs/
├── main/
│   ├── orb_YYYY-MM-DD.log
│   ├── orb_YYYY-MM-DD.json
├── performance/
│   ├── metrics_YYYY-MM-DD.log
└── errors/
    ├── errors_YYYY-MM-DD.log
"""

import logging
import logging.config
import json
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module',
    'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName', 'created', 'msecs',
    'relativeCreated', 'thread', 'threadName', 'processName', 'process', 'taskName',
    'message', 'context', 'asctime',
}


class ContextFormatter(logging.Formatter):
    """Formatter that adds a file:function:line context field"""

    def format(self, record):
        if not hasattr(record, 'context'):
            record.context = f"{record.filename}:{record.funcName}:{record.lineno}"
        return super().format(record)


class StructuredJsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def _make_json_safe(self, obj):
        """Recursively make an object JSON serializable"""
        if isinstance(obj, (str, int, float, bool, type(None))):
            return obj
        elif isinstance(obj, dict):
            return {str(k): self._make_json_safe(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._make_json_safe(item) for item in obj]
        else:
            return str(obj)

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
            'context': getattr(record, 'context', f"{record.filename}:{record.funcName}:{record.lineno}"),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = self._make_json_safe(value)

        if record.exc_info:
            log_data['stack_trace'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def build_logging_config(base_dir: Path, level: str = "INFO", console_level: str = "INFO") -> Dict:
    """dictConfig layout: console, daily text/json logs, performance log, errors log"""
    today = datetime.now().strftime("%Y-%m-%d")

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'detailed': {
                '()': ContextFormatter,
                'format': '%(asctime)s | %(levelname)-8s | %(context)-40s | %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'simple': {
                'format': '%(asctime)s | %(levelname)-8s | %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'json': {
                '()': StructuredJsonFormatter
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': console_level,
                'formatter': 'simple',
                'stream': 'ext://sys.stdout'
            },
            'main_file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': level,
                'formatter': 'detailed',
                'filename': str(base_dir / "main" / f"orb_{today}.log"),
                'maxBytes': 10485760,  # 10MB
                'backupCount': 5,
                'encoding': 'utf-8'
            },
            'main_json': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': 'DEBUG',
                'formatter': 'json',
                'filename': str(base_dir / "main" / f"orb_{today}.json"),
                'maxBytes': 10485760,
                'backupCount': 5,
                'encoding': 'utf-8'
            },
            'performance': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': 'INFO',
                'formatter': 'detailed',
                'filename': str(base_dir / "performance" / f"metrics_{today}.log"),
                'maxBytes': 10485760,
                'backupCount': 5,
                'encoding': 'utf-8'
            },
            'errors': {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': 'ERROR',
                'formatter': 'detailed',
                'filename': str(base_dir / "errors" / f"errors_{today}.log"),
                'maxBytes': 10485760,
                'backupCount': 5,
                'encoding': 'utf-8'
            }
        },
        'loggers': {
            '': {  # Root logger
                'handlers': ['console', 'main_file', 'main_json', 'errors'],
                'level': 'DEBUG',
            },
            'performance': {
                'handlers': ['performance', 'main_json'],
                'level': 'DEBUG',
                'propagate': False
            }
        }
    }


def setup_logging(base_dir: Union[str, Path] = "logs", level: str = "INFO",
                  console_level: str = "INFO") -> Path:
    """Create the log directory tree and install the logging configuration"""
    base_dir = Path(base_dir)
    for directory in (base_dir / "main", base_dir / "performance", base_dir / "errors"):
        directory.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(build_logging_config(base_dir, level.upper(), console_level.upper()))
    logging.getLogger(__name__).debug(f"📝 Logging initialized in {base_dir}")
    return base_dir


class PerformanceLogger:
    """Performance metrics logging"""

    def __init__(self, name: str = 'performance'):
        self.logger = logging.getLogger(name)
        self._timers: Dict[str, Dict] = {}

    def start_timer(self, operation: str) -> str:
        """Start performance timer"""
        timer_id = f"{operation}_{time.perf_counter_ns()}"
        self._timers[timer_id] = {
            'operation': operation,
            'start_time': time.perf_counter(),
        }
        return timer_id

    def end_timer(self, timer_id: str, details: Optional[Dict] = None) -> float:
        """End performance timer and log duration"""
        timer_data = self._timers.pop(timer_id, None)
        if timer_data is None:
            return 0.0

        duration = time.perf_counter() - timer_data['start_time']
        self.logger.info(f"PERFORMANCE: {timer_data['operation']} completed in {duration:.3f}s", extra={
            'operation': timer_data['operation'],
            'duration_ms': int(duration * 1000),
            'details': details or {}
        })
        return duration
