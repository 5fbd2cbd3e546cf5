"""
Change Detector - Polls watched repositories and publishes tag changes.
"""

import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Iterable, List, Optional, Union

from core.clock import SystemClock
from core.state_table import StateTable
from handlers.base_handler import BaseQueryHandler, QueryError
from models.check_result import CheckResult, BASELINE, UNCHANGED, CHANGED, FAILED
from models.repository import RepositoryIdentifier, RepositoryState

DEFAULT_TIMEOUT = 5.0


class ChangeDetector:
    """Owns per-repository state and turns query results into change events."""

    def __init__(
        self,
        handler: BaseQueryHandler,
        state: StateTable = None,
        clock=None,
        timeout: float = DEFAULT_TIMEOUT,
        workers: int = 1,
        publish_timeout: Optional[float] = None
    ):
        """
        Initialize the detector.

        Args:
            handler: Remote query handler
            state: State table, a fresh one is created when omitted
            clock: Object with sleep(), defaults to SystemClock
            timeout: Per-query timeout in seconds
            workers: Number of concurrent queries per cycle (1 = sequential)
            publish_timeout: Seconds to wait on a full event queue,
                None waits indefinitely
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")

        self.handler = handler
        self.state = state if state is not None else StateTable()
        self.clock = clock or SystemClock()
        self.timeout = timeout
        self.workers = workers
        self.publish_timeout = publish_timeout
        self.logger = logging.getLogger('ChangeDetector')
        self._executor = None

    def run(
        self,
        interval: float,
        identifiers: Iterable[Union[str, RepositoryIdentifier]],
        events: queue.Queue,
        max_cycles: Optional[int] = None
    ) -> None:
        """
        Poll all identifiers every ``interval`` seconds.

        Runs until the process stops unless ``max_cycles`` is given.

        Args:
            interval: Seconds to sleep between cycles
            identifiers: Repositories to watch, in polling order
            events: Queue receiving a RepositoryState for every tag change
            max_cycles: Stop after this many cycles
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        watched = normalize_identifiers(identifiers)
        self.logger.info(f"Watching {len(watched)} repositories every {interval}s")

        cycles = 0
        try:
            while True:
                self.run_cycle(watched, events)
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                self.clock.sleep(interval)
        finally:
            self.close()

    def run_cycle(
        self,
        identifiers: Iterable[Union[str, RepositoryIdentifier]],
        events: queue.Queue
    ) -> List[CheckResult]:
        """
        Query every identifier once and publish detected changes.

        Args:
            identifiers: Repositories to check, in order
            events: Queue receiving changed states

        Returns:
            One CheckResult per identifier, in the same order
        """
        watched = normalize_identifiers(identifiers)

        if self.workers > 1 and len(watched) > 1:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers,
                    thread_name_prefix='tagwatch-query'
                )
            futures = [
                self._executor.submit(self.handler.query, identifier, self.timeout)
                for identifier in watched
            ]
            fetches = [future.result for future in futures]
        else:
            fetches = [
                partial(self.handler.query, identifier, self.timeout)
                for identifier in watched
            ]

        return [
            self.check(identifier, fetch, events)
            for identifier, fetch in zip(watched, fetches)
        ]

    def check(
        self,
        identifier: RepositoryIdentifier,
        fetch: Callable[[], RepositoryState],
        events: queue.Queue
    ) -> CheckResult:
        """Fetch one repository and classify it against the stored state."""
        log_fields = {'owner': identifier.owner, 'repo_name': identifier.name}

        try:
            current = fetch()
        except QueryError as e:
            self.logger.warning(
                f"Failed to query the repository's tags for {identifier}: {e}",
                extra={**log_fields, 'err': e}
            )
            return CheckResult(identifier=identifier, outcome=FAILED, error=str(e),
                               previous=self.state.get(identifier))
        except Exception as e:
            self.logger.warning(
                f"Unexpected error querying {identifier}: {type(e).__name__}: {e}",
                extra={**log_fields, 'err': e},
                exc_info=True
            )
            return CheckResult(identifier=identifier, outcome=FAILED,
                               error=f"{type(e).__name__}: {e}",
                               previous=self.state.get(identifier))

        previous = self.state.get(identifier)

        # First observation only establishes the baseline.
        if previous is None:
            self.state.put(identifier, current)
            self.logger.info(
                f"Baseline for {identifier}: {current.tag.name}",
                extra={**log_fields, 'tag': current.tag.name}
            )
            return CheckResult(identifier=identifier, outcome=BASELINE, current=current)

        if current.tag.same_as(previous.tag):
            self.logger.debug(f"No new tag for {identifier}", extra=log_fields)
            return CheckResult(identifier=identifier, outcome=UNCHANGED,
                               current=current, previous=previous)

        if not self._publish(identifier, current, events):
            # State is not advanced so the change is published again next cycle.
            return CheckResult(identifier=identifier, outcome=FAILED, current=current,
                               previous=previous, error="event queue full")

        self.state.put(identifier, current)
        self.logger.info(
            f"New tag for {identifier}: {previous.tag.name} -> {current.tag.name}",
            extra={**log_fields, 'previous': previous.tag.name, 'current': current.tag.name}
        )
        return CheckResult(identifier=identifier, outcome=CHANGED,
                           current=current, previous=previous)

    def _publish(
        self,
        identifier: RepositoryIdentifier,
        current: RepositoryState,
        events: queue.Queue
    ) -> bool:
        try:
            events.put(current, block=True, timeout=self.publish_timeout)
        except queue.Full:
            self.logger.error(
                f"Event queue full, could not publish {current} "
                f"within {self.publish_timeout}s",
                extra={'owner': identifier.owner, 'repo_name': identifier.name}
            )
            return False
        return True

    def close(self) -> None:
        """Release the worker pool, if one was started."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


def normalize_identifiers(
    identifiers: Iterable[Union[str, RepositoryIdentifier]]
) -> List[RepositoryIdentifier]:
    """Convert ``owner/name`` strings to identifiers, keeping order."""
    return [
        item if isinstance(item, RepositoryIdentifier) else RepositoryIdentifier.parse(item)
        for item in identifiers
    ]
