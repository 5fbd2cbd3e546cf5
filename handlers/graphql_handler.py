"""
GitHub GraphQL handler.
Fetches a repository and its newest tag in a single GraphQL v4 request.
"""

import json
import threading
import time
import requests
from typing import Optional, Dict, Any, List

from .base_handler import (
    BaseQueryHandler,
    NoTagFoundError,
    QueryTimeoutError,
    RateLimitedError,
    RepositoryNotFoundError,
    TransientQueryError,
    UnexpectedShapeError,
)
from models.repository import RepositoryIdentifier, RepositoryState, Tag

DEFAULT_ENDPOINT = 'https://api.github.com/graphql'
CHUNK_SIZE = 8192

# Tags ordered by commit date ascending; the last edge is the newest tag.
LATEST_TAG_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    id
    name
    description
    url
    refs(last: 1, refPrefix: "refs/tags/", orderBy: {direction: ASC, field: TAG_COMMIT_DATE}) {
      edges {
        node {
          id
          name
        }
      }
    }
  }
}
"""


class GitHubGraphQLHandler(BaseQueryHandler):
    """Handler that queries the GitHub GraphQL API for the latest tag."""

    def __init__(self, settings: Dict[str, Any] = None, session: requests.Session = None):
        super().__init__(settings)
        self.endpoint = self.settings.get('endpoint') or DEFAULT_ENDPOINT
        self.token = self.settings.get('token')
        self.user_agent = self.settings.get('user_agent', 'Tagwatch/1.0')
        self._session = session
        self._local = threading.local()

    def get_method_name(self) -> str:
        return "github_graphql"

    def get_session(self) -> requests.Session:
        """Get the HTTP session for the calling thread."""
        if self._session is not None:
            return self._session

        # Sessions are not shared between query worker threads.
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _read_body(
        self,
        identifier: RepositoryIdentifier,
        response: requests.Response,
        deadline: float,
        timeout: float
    ) -> bytes:
        """Read the streamed response body, failing once ``deadline`` has passed."""
        chunks = []
        if time.monotonic() > deadline:
            raise QueryTimeoutError(
                f"Query for {identifier} timed out after {timeout}s waiting for a response",
                identifier
            )

        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise QueryTimeoutError(
                    f"Query for {identifier} timed out after {timeout}s reading the response",
                    identifier
                )

        return b''.join(chunks)

    def _headers(self) -> Dict[str, str]:
        headers = {
            'User-Agent': self.user_agent,
            'Accept': 'application/json',
        }
        if self.token:
            headers['Authorization'] = f"bearer {self.token}"
        return headers

    def query(self, identifier: RepositoryIdentifier, timeout: float) -> RepositoryState:
        """
        Fetch the repository and its newest tag.

        The whole call, including reading the response body, must finish
        within ``timeout`` seconds.

        Args:
            identifier: Repository to query
            timeout: Seconds allowed for the whole call

        Returns:
            RepositoryState for the newest tag
        """
        payload = {
            'query': LATEST_TAG_QUERY,
            'variables': {'owner': identifier.owner, 'name': identifier.name},
        }

        self.logger.debug(f"Querying {self.endpoint} for {identifier}")
        deadline = time.monotonic() + timeout
        try:
            response = self.get_session().post(
                self.endpoint,
                json=payload,
                headers=self._headers(),
                timeout=timeout,
                stream=True
            )
            try:
                self._check_status(identifier, response)
                content = self._read_body(identifier, response, deadline, timeout)
            finally:
                response.close()
        except requests.exceptions.Timeout as e:
            raise QueryTimeoutError(
                f"Query for {identifier} timed out after {timeout}s: {e}", identifier
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransientQueryError(f"Request for {identifier} failed: {e}", identifier) from e

        try:
            body = json.loads(content)
        except ValueError as e:
            raise TransientQueryError(
                f"Malformed JSON response for {identifier}: {e}", identifier
            ) from e

        if not isinstance(body, dict):
            raise UnexpectedShapeError(
                f"Expected a JSON object for {identifier}, got {type(body).__name__}", identifier
            )

        self._check_errors(identifier, body.get('errors'))

        data = body.get('data')
        if not isinstance(data, dict):
            raise UnexpectedShapeError(f"Response for {identifier} has no 'data' object", identifier)

        repository = data.get('repository')
        if repository is None:
            raise RepositoryNotFoundError(f"Repository {identifier} not found", identifier)

        return decode_repository(identifier, repository)

    def _check_status(self, identifier: RepositoryIdentifier, response: requests.Response) -> None:
        """Map HTTP level failures onto the query error taxonomy."""
        if response.status_code == 429 or (
            response.status_code == 403
            and response.headers.get('X-RateLimit-Remaining') == '0'
        ):
            reset = response.headers.get('X-RateLimit-Reset', 'unknown')
            raise RateLimitedError(
                f"Rate limited while querying {identifier} (reset at {reset})", identifier
            )

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise TransientQueryError(f"HTTP error for {identifier}: {e}", identifier) from e

    def _check_errors(self, identifier: RepositoryIdentifier, errors: Optional[List[Any]]) -> None:
        """Raise for GraphQL level errors reported in the response body."""
        if not errors:
            return

        if not isinstance(errors, list):
            raise UnexpectedShapeError(
                f"Expected 'errors' to be a list for {identifier}: {errors!r}", identifier
            )

        types = {e.get('type') for e in errors if isinstance(e, dict)}
        messages = '; '.join(
            str(e.get('message', e)) if isinstance(e, dict) else str(e) for e in errors
        )

        if 'RATE_LIMITED' in types:
            raise RateLimitedError(f"Rate limited while querying {identifier}: {messages}", identifier)
        if 'NOT_FOUND' in types:
            raise RepositoryNotFoundError(f"Repository {identifier} not found: {messages}", identifier)
        raise TransientQueryError(f"GraphQL errors for {identifier}: {messages}", identifier)


def _require_string(identifier: RepositoryIdentifier, value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise UnexpectedShapeError(
            f"Can't convert {field} to string for {identifier}: {value!r}", identifier
        )
    return value


def select_latest_tag(identifier: RepositoryIdentifier, refs: Any) -> Dict[str, Any]:
    """
    Pick the newest tag node out of a ``refs`` connection.

    Edges arrive in ascending commit-date order so the newest tag is last.
    """
    if not isinstance(refs, dict) or not isinstance(refs.get('edges'), list):
        raise UnexpectedShapeError(f"Missing refs edges for {identifier}: {refs!r}", identifier)

    edges = refs['edges']
    if not edges:
        raise NoTagFoundError(f"Can't find any tags for {identifier}", identifier)

    node = edges[-1].get('node') if isinstance(edges[-1], dict) else None
    if not isinstance(node, dict):
        raise UnexpectedShapeError(f"Tag edge without node for {identifier}: {edges[-1]!r}", identifier)
    return node


def decode_repository(identifier: RepositoryIdentifier, repository: Any) -> RepositoryState:
    """
    Decode the ``repository`` member of a GraphQL response.

    Raises:
        NoTagFoundError: If the repository has no tags
        UnexpectedShapeError: If identifiers or fields have an unexpected type
    """
    if not isinstance(repository, dict):
        raise UnexpectedShapeError(
            f"Expected repository object for {identifier}: {repository!r}", identifier
        )

    repository_id = _require_string(identifier, repository.get('id'), 'repository id')
    node = select_latest_tag(identifier, repository.get('refs'))
    tag_id = _require_string(identifier, node.get('id'), 'tag id')

    return RepositoryState(
        id=repository_id,
        name=_require_string(identifier, repository.get('name'), 'repository name'),
        owner=identifier.owner,
        description=repository.get('description') or '',
        url=_require_string(identifier, repository.get('url'), 'repository url'),
        tag=Tag(
            id=tag_id,
            name=_require_string(identifier, node.get('name'), 'tag name'),
        ),
    )
