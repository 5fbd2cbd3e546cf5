"""
Check Result model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from models.repository import RepositoryIdentifier, RepositoryState

BASELINE = 'baseline'
UNCHANGED = 'unchanged'
CHANGED = 'changed'
FAILED = 'failed'


@dataclass
class CheckResult:
    """Represents the outcome of checking one repository in one cycle."""

    identifier: RepositoryIdentifier
    outcome: str
    current: Optional[RepositoryState] = None
    previous: Optional[RepositoryState] = None
    error: Optional[str] = None
    check_time: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        status = self.outcome.upper()
        if self.error:
            status = f"FAILED: {self.error}"

        current_tag = self.current.tag.name if self.current else None
        previous_tag = self.previous.tag.name if self.previous else None

        return (
            f"[{status}] {self.identifier}\n"
            f"  Current:  {current_tag}\n"
            f"  Previous: {previous_tag}"
        )

    @property
    def is_success(self) -> bool:
        """Check if the query succeeded."""
        return self.error is None

    @property
    def changed(self) -> bool:
        return self.outcome == CHANGED
