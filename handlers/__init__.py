"""
Handlers package - Remote query implementations.
"""

from handlers.base_handler import (
    BaseQueryHandler,
    QueryError,
    TransientQueryError,
    QueryTimeoutError,
    RateLimitedError,
    RepositoryNotFoundError,
    NoTagFoundError,
    UnexpectedShapeError,
)
from handlers.graphql_handler import GitHubGraphQLHandler

__all__ = [
    'BaseQueryHandler',
    'QueryError',
    'TransientQueryError',
    'QueryTimeoutError',
    'RateLimitedError',
    'RepositoryNotFoundError',
    'NoTagFoundError',
    'UnexpectedShapeError',
    'GitHubGraphQLHandler'
]
