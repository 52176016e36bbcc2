"""
Utility modules for the crawler.
"""

from .config import Config, ConfigManager, ConfigError, load_config, get_config
from .reporting import (
    VisitEvent, Reporter, PlainReporter, JsonLinesReporter,
    CollectingReporter, CallbackReporter, MultiReporter
)

__all__ = [
    'Config', 'ConfigManager', 'ConfigError', 'load_config', 'get_config',
    'VisitEvent', 'Reporter', 'PlainReporter', 'JsonLinesReporter',
    'CollectingReporter', 'CallbackReporter', 'MultiReporter'
]
