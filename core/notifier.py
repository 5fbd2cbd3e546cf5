"""
Notifier - Consumes change events and delivers notifications.
"""

import logging
import queue
import threading
from typing import Optional, Dict, Any

import requests

from models.repository import RepositoryState

_STOP = object()


def format_message(state: RepositoryState) -> str:
    """Build the human readable notification text for a change."""
    message = f"{state.owner}/{state.name} has a new tag {state.tag.name}"
    if state.url:
        message += f" ({state.url})"
    return message


class Notifier:
    """Drains the event queue on a background thread."""

    def __init__(self, events: queue.Queue, settings: Dict[str, Any] = None):
        """
        Initialize notifier.

        Args:
            events: Queue of RepositoryState change events
            settings: The ``notifier`` settings section
        """
        self.events = events
        self.settings = settings or {}
        self.webhook_url: Optional[str] = self.settings.get('webhook_url')
        self.timeout = self.settings.get('timeout', 10)
        self.user_agent = self.settings.get('user_agent', 'Tagwatch/1.0')
        self.logger = logging.getLogger('Notifier')
        self.delivered = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start consuming events on a daemon thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._consume, name='tagwatch-notifier', daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop after the events already queued have been handled.

        If the queue stays full for ``timeout`` seconds the consumer is left
        running and an error is logged; ``stop`` may be called again.
        """
        if self._thread is None:
            return
        try:
            self.events.put(_STOP, timeout=timeout)
        except queue.Full:
            self.logger.error(f"Event queue is full, notifier not stopped after {timeout}s")
            return
        self._thread.join(timeout)
        self._thread = None

    def _consume(self) -> None:
        while True:
            state = self.events.get()
            try:
                if state is _STOP:
                    return
                self.handle(state)
            except Exception:
                self.logger.exception(f"Failed to handle change event {state}")
            finally:
                self.events.task_done()

    def handle(self, state: RepositoryState) -> bool:
        """
        Deliver one change notification.

        Args:
            state: The newly observed repository state

        Returns:
            True if the notification was delivered everywhere it was configured
        """
        message = format_message(state)
        self.logger.info(message)

        delivered = True
        if self.webhook_url:
            delivered = self._post_webhook(message, state)

        if delivered:
            self.delivered += 1
        return delivered

    def _post_webhook(self, message: str, state: RepositoryState) -> bool:
        payload = {'text': message, 'repository': state.to_dict()}
        try:
            response = requests.post(
                self.webhook_url,
                json=payload,
                headers={'User-Agent': self.user_agent},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Webhook delivery failed for {state}: {e}")
            return False
        return True
