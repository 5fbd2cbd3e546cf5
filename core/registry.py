"""
Repository Registry - Loads watched repositories and settings, builds handlers.
"""

import os
import logging
import yaml
from typing import Dict, Any, List, Type

from dotenv import load_dotenv

from handlers.base_handler import BaseQueryHandler
from handlers.graphql_handler import GitHubGraphQLHandler, DEFAULT_ENDPOINT
from models.repository import RepositoryIdentifier

DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    'polling': {
        'interval': 300,
        'timeout': 5,
        'workers': 1,
        'publish_timeout': None,
        'queue_size': 0,
    },
    'github': {
        'method': 'github_graphql',
        'endpoint': DEFAULT_ENDPOINT,
        'token_env': 'GITHUB_TOKEN',
        'user_agent': 'Tagwatch/1.0',
    },
    'notifier': {
        'webhook_url': None,
        'timeout': 10,
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
}


class ConfigError(Exception):
    """Raised when the configuration cannot be used."""


class RepositoryRegistry:
    """Registry that manages watched repositories, settings and handler instantiation."""

    # Map method names to handler classes
    HANDLER_MAP: Dict[str, Type[BaseQueryHandler]] = {
        'github_graphql': GitHubGraphQLHandler,
    }

    def __init__(self, config_path: str = None, settings_path: str = None):
        """
        Initialize the registry with configuration files.

        Args:
            config_path: Path to repositories.yaml
            settings_path: Path to settings.yaml
        """
        self.base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        self.logger = logging.getLogger('RepositoryRegistry')

        if config_path is None:
            config_path = os.path.join(self.base_dir, 'config', 'repositories.yaml')
        if settings_path is None:
            settings_path = os.path.join(self.base_dir, 'config', 'settings.yaml')

        self.repositories = self._load_config(config_path)
        self.settings = self._merge_defaults(self._load_config(settings_path))

    def _load_config(self, path: str) -> Dict[str, Any]:
        """Load YAML configuration file."""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            self.logger.warning(f"Config file not found: {path}")
            return {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing YAML file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping at the top of {path}")
        return data

    def _merge_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        merged = {}
        for section, defaults in DEFAULT_SETTINGS.items():
            values = settings.get(section) or {}
            if not isinstance(values, dict):
                raise ConfigError(f"Settings section '{section}' must be a mapping")
            merged[section] = {**defaults, **values}
        return merged

    def list_repositories(self) -> List[RepositoryIdentifier]:
        """
        List watched repositories in configured order.

        Returns:
            List of RepositoryIdentifier

        Raises:
            ConfigError: If an entry is not an ``owner/name`` string
        """
        entries = self.repositories.get('repositories') or []
        if not isinstance(entries, list):
            raise ConfigError("'repositories' must be a list of 'owner/name' strings")

        identifiers = []
        for entry in entries:
            try:
                identifier = RepositoryIdentifier.parse(entry)
            except ValueError as e:
                raise ConfigError(str(e)) from e

            if identifier in identifiers:
                self.logger.warning(f"Ignoring duplicate repository: {identifier}")
                continue
            identifiers.append(identifier)

        return identifiers

    def get_settings(self) -> Dict[str, Any]:
        """Get application settings."""
        return self.settings

    def get_polling_settings(self) -> Dict[str, Any]:
        """
        Get validated polling settings.

        Raises:
            ConfigError: If interval, timeout or workers are out of range
        """
        polling = self.settings['polling']

        for key in ('interval', 'timeout'):
            value = polling.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"polling.{key} must be a positive number, got {value!r}")

        workers = polling.get('workers')
        if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
            raise ConfigError(f"polling.workers must be a positive integer, got {workers!r}")

        queue_size = polling.get('queue_size')
        if not isinstance(queue_size, int) or isinstance(queue_size, bool) or queue_size < 0:
            raise ConfigError(f"polling.queue_size must be a non-negative integer, got {queue_size!r}")

        publish_timeout = polling.get('publish_timeout')
        if publish_timeout is not None and (
            isinstance(publish_timeout, bool)
            or not isinstance(publish_timeout, (int, float))
            or publish_timeout < 0
        ):
            raise ConfigError(
                f"polling.publish_timeout must be null or a non-negative number, got {publish_timeout!r}"
            )

        return polling

    def get_handler(self) -> BaseQueryHandler:
        """
        Get the remote query handler described by the ``github`` settings.

        The API token is read from the environment variable named by
        ``github.token_env``; a ``.env`` file is honoured.
        """
        load_dotenv()

        github_settings = dict(self.settings['github'])
        method = github_settings.get('method')

        handler_class = self.HANDLER_MAP.get(method)
        if not handler_class:
            raise ConfigError(f"Unknown query method '{method}'")

        token_env = github_settings.get('token_env', 'GITHUB_TOKEN')
        github_settings['token'] = os.getenv(token_env)
        if not github_settings['token']:
            self.logger.warning(f"{token_env} not set. Anonymous GraphQL queries will be rejected.")

        return handler_class(github_settings)
