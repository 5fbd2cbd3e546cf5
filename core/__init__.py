"""
Core package - Contains main business logic.
"""

from core.clock import SystemClock
from core.state_table import StateTable
from core.detector import ChangeDetector
from core.notifier import Notifier
from core.registry import RepositoryRegistry, ConfigError

__all__ = [
    'SystemClock',
    'StateTable',
    'ChangeDetector',
    'Notifier',
    'RepositoryRegistry',
    'ConfigError'
]
