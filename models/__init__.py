"""
Models package - Data classes for the application.
"""

from models.repository import RepositoryIdentifier, RepositoryState, Tag
from models.check_result import CheckResult

__all__ = ['RepositoryIdentifier', 'RepositoryState', 'Tag', 'CheckResult']
