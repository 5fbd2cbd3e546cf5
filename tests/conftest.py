"""
Pytest configuration and fixtures.
"""

import pytest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handlers.base_handler import BaseQueryHandler
from models.repository import RepositoryIdentifier, RepositoryState, Tag


def make_state(identifier: str, tag_name: str, tag_id: str = None) -> RepositoryState:
    """Build a RepositoryState for ``owner/name`` carrying ``tag_name``."""
    owner, name = identifier.split('/')
    return RepositoryState(
        id=f"R_{owner}_{name}",
        name=name,
        owner=owner,
        description=f"{name} repository",
        url=f"https://github.com/{owner}/{name}",
        tag=Tag(id=tag_id or f"T_{tag_name}", name=tag_name),
    )


class ScriptedHandler(BaseQueryHandler):
    """Handler returning pre-recorded answers, one per call and repository."""

    def __init__(self, script):
        super().__init__()
        self.script = {key: list(values) for key, values in script.items()}
        self.calls = []

    def get_method_name(self) -> str:
        return "scripted"

    def query(self, identifier: RepositoryIdentifier, timeout: float) -> RepositoryState:
        self.calls.append((str(identifier), timeout))
        answer = self.script[str(identifier)].pop(0)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, RepositoryState):
            return answer
        return make_state(str(identifier), answer)


class FakeClock:
    """Clock that records sleeps instead of sleeping."""

    def __init__(self):
        self.sleeps = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@pytest.fixture
def fake_clock():
    """A clock that never blocks."""
    return FakeClock()


@pytest.fixture
def scripted_handler():
    """Factory for handlers answering from a script."""
    return ScriptedHandler


@pytest.fixture
def graphql_response():
    """Body of a successful GitHub GraphQL latest-tag response."""
    return {
        'data': {
            'repository': {
                'id': 'MDEwOlJlcG9zaXRvcnkyMDU4MDQ5OA==',
                'name': 'kubernetes',
                'description': 'Production-Grade Container Scheduling and Management',
                'url': 'https://github.com/kubernetes/kubernetes',
                'refs': {
                    'edges': [
                        {'node': {'id': 'MDM6UmVmMjA1ODA0OTg6djEuMzIuMA==', 'name': 'v1.32.0'}}
                    ]
                }
            }
        }
    }


@pytest.fixture
def settings_files(tmp_path):
    """Write repositories.yaml and settings.yaml, return their paths."""
    config_path = tmp_path / 'repositories.yaml'
    config_path.write_text(
        "repositories:\n"
        "  - kubernetes/kubernetes\n"
        "  - grafana/grafana\n",
        encoding='utf-8'
    )
    settings_path = tmp_path / 'settings.yaml'
    settings_path.write_text(
        "polling:\n"
        "  interval: 60\n"
        "  timeout: 3\n"
        "github:\n"
        "  token_env: TAGWATCH_TEST_TOKEN\n",
        encoding='utf-8'
    )
    return str(config_path), str(settings_path)


@pytest.fixture
def state_factory():
    """Factory for RepositoryState values."""
    return make_state
