"""
Repository models - identifiers and observed repository state.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class RepositoryIdentifier:
    """Compound key for a watched repository, written as ``owner/name``."""

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> 'RepositoryIdentifier':
        """
        Parse an ``owner/name`` string.

        Args:
            value: Identifier as written in the configuration

        Returns:
            RepositoryIdentifier

        Raises:
            ValueError: If the value is not exactly two non-empty segments
        """
        if not isinstance(value, str):
            raise ValueError(f"Repository identifier must be a string: {value!r}")

        parts = value.strip().split('/')
        if len(parts) != 2 or not all(part.strip() for part in parts):
            raise ValueError(f"Expected 'owner/name', got: {value!r}")

        return cls(owner=parts[0].strip(), name=parts[1].strip())

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Tag:
    """A named marker in a repository's history."""

    id: str
    name: str

    def same_as(self, other: 'Tag') -> bool:
        """Two tags are the same iff their names match. IDs are ignored."""
        return other is not None and self.name == other.name


@dataclass(frozen=True)
class RepositoryState:
    """Observable facts about a repository at the time of one query."""

    id: str
    name: str
    owner: str
    description: str
    url: str
    tag: Tag

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}@{self.tag.name}"
