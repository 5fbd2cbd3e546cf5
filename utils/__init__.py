"""
Utils package - Shared utility functions.
"""

from utils.logger import setup_logging, KeyValueFormatter

__all__ = ['setup_logging', 'KeyValueFormatter']
