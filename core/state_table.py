"""
State Table - In-memory record of the last observed state per repository.
"""

from typing import Dict, Optional
from threading import Lock

from models.repository import RepositoryIdentifier, RepositoryState


class StateTable:
    """
    Maps each watched repository to its last successfully observed state.

    Entries are created on the first successful observation and replaced
    afterwards. They are never removed while the process runs.
    """

    def __init__(self):
        self._lock = Lock()
        self._state: Dict[RepositoryIdentifier, RepositoryState] = {}

    def get(self, identifier: RepositoryIdentifier) -> Optional[RepositoryState]:
        """
        Get the last observed state for a repository.

        Args:
            identifier: Repository identifier

        Returns:
            RepositoryState or None if never observed
        """
        with self._lock:
            return self._state.get(identifier)

    def put(self, identifier: RepositoryIdentifier, state: RepositoryState) -> None:
        """Store the latest observed state for a repository."""
        with self._lock:
            self._state[identifier] = state

    def __contains__(self, identifier: RepositoryIdentifier) -> bool:
        with self._lock:
            return identifier in self._state
