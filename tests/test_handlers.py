"""
Tests for the GitHub GraphQL handler.
"""

import json
import threading

import pytest
from unittest.mock import Mock, patch

import requests

from handlers.base_handler import (
    NoTagFoundError,
    QueryTimeoutError,
    RateLimitedError,
    RepositoryNotFoundError,
    TransientQueryError,
    UnexpectedShapeError,
)
from handlers.graphql_handler import (
    GitHubGraphQLHandler,
    DEFAULT_ENDPOINT,
    decode_repository,
    select_latest_tag,
)
from models.repository import RepositoryIdentifier

K8S = RepositoryIdentifier('kubernetes', 'kubernetes')


def make_response(body=None, status_code=200, headers=None, raw=None):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    content = raw if raw is not None else json.dumps(body).encode('utf-8')
    response.iter_content.return_value = [content]
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error"
        )
    else:
        response.raise_for_status = Mock()
    return response


def make_handler(response=None, error=None, settings=None):
    session = Mock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return GitHubGraphQLHandler(settings or {'token': 'secret'}, session=session), session


class TestGitHubGraphQLHandler:
    """Request building and response classification."""

    def test_get_method_name(self):
        handler, _ = make_handler(make_response({}))
        assert handler.get_method_name() == 'github_graphql'

    def test_query_success(self, graphql_response):
        handler, session = make_handler(make_response(graphql_response))

        state = handler.query(K8S, timeout=5)

        assert state.id == 'MDEwOlJlcG9zaXRvcnkyMDU4MDQ5OA=='
        assert state.owner == 'kubernetes'
        assert state.name == 'kubernetes'
        assert state.url == 'https://github.com/kubernetes/kubernetes'
        assert state.tag.name == 'v1.32.0'
        assert state.tag.id == 'MDM6UmVmMjA1ODA0OTg6djEuMzIuMA=='

    def test_query_sends_variables_token_and_timeout(self, graphql_response):
        handler, session = make_handler(make_response(graphql_response))

        handler.query(K8S, timeout=5)

        args, kwargs = session.post.call_args
        assert args[0] == DEFAULT_ENDPOINT
        assert kwargs['json']['variables'] == {'owner': 'kubernetes', 'name': 'kubernetes'}
        assert 'TAG_COMMIT_DATE' in kwargs['json']['query']
        assert kwargs['headers']['Authorization'] == 'bearer secret'
        assert kwargs['timeout'] == 5

    def test_custom_endpoint(self, graphql_response):
        handler, session = make_handler(
            make_response(graphql_response),
            settings={'endpoint': 'https://ghe.example.com/api/graphql'}
        )

        handler.query(K8S, timeout=5)

        assert session.post.call_args[0][0] == 'https://ghe.example.com/api/graphql'
        assert 'Authorization' not in session.post.call_args[1]['headers']

    def test_timeout(self):
        handler, _ = make_handler(error=requests.exceptions.ReadTimeout('read timed out'))
        with pytest.raises(QueryTimeoutError):
            handler.query(K8S, timeout=5)

    def test_connection_error(self):
        handler, _ = make_handler(error=requests.exceptions.ConnectionError('refused'))
        with pytest.raises(TransientQueryError):
            handler.query(K8S, timeout=5)

    def test_http_error(self):
        handler, _ = make_handler(make_response(status_code=502))
        with pytest.raises(TransientQueryError):
            handler.query(K8S, timeout=5)

    @pytest.mark.parametrize('status_code,headers', [
        (429, {}),
        (403, {'X-RateLimit-Remaining': '0', 'X-RateLimit-Reset': '1736937000'}),
    ])
    def test_rate_limited_status(self, status_code, headers):
        handler, _ = make_handler(make_response(status_code=status_code, headers=headers))
        with pytest.raises(RateLimitedError):
            handler.query(K8S, timeout=5)

    def test_rate_limited_graphql_error(self):
        body = {'errors': [{'type': 'RATE_LIMITED', 'message': 'API rate limit exceeded'}]}
        handler, _ = make_handler(make_response(body))
        with pytest.raises(RateLimitedError):
            handler.query(K8S, timeout=5)

    def test_not_found_graphql_error(self):
        body = {
            'data': {'repository': None},
            'errors': [{'type': 'NOT_FOUND', 'message': "Could not resolve to a Repository"}],
        }
        handler, _ = make_handler(make_response(body))
        with pytest.raises(RepositoryNotFoundError):
            handler.query(K8S, timeout=5)

    def test_null_repository(self):
        handler, _ = make_handler(make_response({'data': {'repository': None}}))
        with pytest.raises(RepositoryNotFoundError):
            handler.query(K8S, timeout=5)

    def test_other_graphql_error(self):
        body = {'errors': [{'message': 'Something went wrong'}]}
        handler, _ = make_handler(make_response(body))
        with pytest.raises(TransientQueryError, match='Something went wrong'):
            handler.query(K8S, timeout=5)

    def test_malformed_json_is_transient(self):
        handler, _ = make_handler(make_response(raw=b'<html>502 Bad Gateway</html>'))
        with pytest.raises(TransientQueryError):
            handler.query(K8S, timeout=5)

    def test_non_object_body_is_shape_error(self):
        handler, _ = make_handler(make_response(['unexpected']))
        with pytest.raises(UnexpectedShapeError):
            handler.query(K8S, timeout=5)

    def test_no_tags(self, graphql_response):
        graphql_response['data']['repository']['refs']['edges'] = []
        handler, _ = make_handler(make_response(graphql_response))
        with pytest.raises(NoTagFoundError):
            handler.query(K8S, timeout=5)


class TestQueryDeadline:
    """The timeout bounds the whole call, not each socket read."""

    def trickle(self, response, body, clock, step=0.4, size=20):
        content = json.dumps(body).encode('utf-8')

        def chunks(chunk_size):
            for start in range(0, len(content), size):
                clock['now'] += step
                yield content[start:start + size]

        response.iter_content.side_effect = chunks

    def test_slow_body_fails_at_deadline(self, graphql_response):
        clock = {'now': 0.0}
        response = make_response(graphql_response)
        self.trickle(response, graphql_response, clock)
        handler, session = make_handler(response)

        with patch('handlers.graphql_handler.time.monotonic', side_effect=lambda: clock['now']):
            with pytest.raises(QueryTimeoutError):
                handler.query(K8S, timeout=1.0)

        assert clock['now'] <= 1.5
        assert session.post.call_args[1]['stream'] is True
        response.close.assert_called_once()

    def test_slow_body_within_deadline_succeeds(self, graphql_response):
        clock = {'now': 0.0}
        response = make_response(graphql_response)
        self.trickle(response, graphql_response, clock, step=0.01)
        handler, _ = make_handler(response)

        with patch('handlers.graphql_handler.time.monotonic', side_effect=lambda: clock['now']):
            state = handler.query(K8S, timeout=1.0)

        assert state.tag.name == 'v1.32.0'

    def test_late_response_headers_fail(self, graphql_response):
        clock = {'now': 0.0}
        response = make_response(graphql_response)

        def slow_post(*args, **kwargs):
            clock['now'] += 2.0
            return response

        handler, session = make_handler(response)
        session.post.side_effect = slow_post

        with patch('handlers.graphql_handler.time.monotonic', side_effect=lambda: clock['now']):
            with pytest.raises(QueryTimeoutError):
                handler.query(K8S, timeout=1.0)

        response.iter_content.assert_not_called()


class TestSessions:
    """HTTP sessions used by concurrent query workers."""

    def test_each_thread_gets_its_own_session(self):
        handler = GitHubGraphQLHandler({})
        sessions = []

        worker = threading.Thread(target=lambda: sessions.append(handler.get_session()))
        worker.start()
        worker.join()

        assert handler.get_session() is handler.get_session()
        assert sessions[0] is not handler.get_session()

    def test_injected_session_is_used(self):
        session = Mock()
        handler = GitHubGraphQLHandler({}, session=session)
        assert handler.get_session() is session


class TestDecodeRepository:
    """Typed decoding of the repository payload."""

    def test_takes_last_edge(self):
        refs = {'edges': [
            {'node': {'id': 'a', 'name': 'v1.0'}},
            {'node': {'id': 'b', 'name': 'v1.1'}},
        ]}
        assert select_latest_tag(K8S, refs)['name'] == 'v1.1'

    def test_non_string_repository_id(self, graphql_response):
        repository = graphql_response['data']['repository']
        repository['id'] = 12345
        with pytest.raises(UnexpectedShapeError, match='repository id'):
            decode_repository(K8S, repository)

    def test_non_string_tag_id(self, graphql_response):
        repository = graphql_response['data']['repository']
        repository['refs']['edges'][0]['node']['id'] = {'oid': 1}
        with pytest.raises(UnexpectedShapeError, match='tag id'):
            decode_repository(K8S, repository)

    def test_missing_refs(self, graphql_response):
        repository = graphql_response['data']['repository']
        del repository['refs']
        with pytest.raises(UnexpectedShapeError):
            decode_repository(K8S, repository)

    def test_null_description_becomes_empty(self, graphql_response):
        repository = graphql_response['data']['repository']
        repository['description'] = None
        assert decode_repository(K8S, repository).description == ''

    def test_shape_error_carries_identifier(self, graphql_response):
        repository = graphql_response['data']['repository']
        repository['id'] = None
        with pytest.raises(UnexpectedShapeError) as exc_info:
            decode_repository(K8S, repository)
        assert exc_info.value.identifier == K8S
