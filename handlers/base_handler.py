"""
Abstract base handler for remote repository queries.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
import logging

from models.repository import RepositoryIdentifier, RepositoryState


class QueryError(Exception):
    """Base class for every failure of a single repository query."""

    def __init__(self, message: str, identifier: Optional[RepositoryIdentifier] = None):
        super().__init__(message)
        self.identifier = identifier


class TransientQueryError(QueryError):
    """Network, HTTP or remote-side failure. Retried on the next cycle."""


class QueryTimeoutError(TransientQueryError):
    """The query did not complete within its timeout."""


class RateLimitedError(TransientQueryError):
    """The remote service refused the query because of rate limiting."""


class RepositoryNotFoundError(TransientQueryError):
    """The remote service returned no repository for the identifier."""


class NoTagFoundError(QueryError):
    """The repository exists but has no tags."""


class UnexpectedShapeError(QueryError):
    """The response payload does not match the expected schema."""


class BaseQueryHandler(ABC):
    """Abstract base class for remote query handlers."""

    def __init__(self, settings: Dict[str, Any] = None):
        """
        Initialize handler with its settings section.

        Args:
            settings: Handler settings dictionary
        """
        self.settings = settings or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def query(self, identifier: RepositoryIdentifier, timeout: float) -> RepositoryState:
        """
        Fetch the current state of one repository.

        Args:
            identifier: Repository to query
            timeout: Seconds the whole call may take

        Returns:
            RepositoryState carrying the newest tag

        Raises:
            QueryError: On any failure, including timeouts and missing tags
        """

    @abstractmethod
    def get_method_name(self) -> str:
        """
        Get the name of the remote query method.

        Returns:
            String identifier for this handler
        """
