#!/usr/bin/env python3
"""Tests for readiness checks."""

import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import requests

from readiness import (
    InstanceState,
    check_service_url,
    get_sql_instance_state,
    poll_until_ready,
    wait_for_sql_instance,
)


def _sequence(*states):
    """Query function returning states in order."""
    it = iter(states)
    calls = []

    def query():
        calls.append(1)
        return next(it)

    query.calls = calls
    return query


class TestInstanceState:
    """Test provider output parsing."""

    def test_known_state(self):
        assert InstanceState.parse('RUNNABLE\n') is InstanceState.RUNNABLE

    def test_lowercase(self):
        assert InstanceState.parse('pending_create') is InstanceState.PENDING_CREATE

    def test_empty_is_not_found(self):
        assert InstanceState.parse('') is InstanceState.NOT_FOUND

    def test_unrecognized_is_unknown(self):
        assert InstanceState.parse('REPAIRING') is InstanceState.UNKNOWN


class TestPollUntilReady:
    """Test the generic bounded retry helper."""

    def _ready(self, status):
        return status is InstanceState.RUNNABLE

    def _fatal(self, status):
        return status is InstanceState.NOT_FOUND

    def test_two_pending_then_ready_sleeps_twice(self):
        """PENDING_CREATE, PENDING_CREATE, RUNNABLE costs exactly two sleeps."""
        sleep = MagicMock()
        query = _sequence(InstanceState.PENDING_CREATE, InstanceState.PENDING_CREATE,
                          InstanceState.RUNNABLE)

        result = poll_until_ready(query, self._ready, self._fatal,
                                  attempts=15, interval=60, sleep=sleep)

        assert result.ready is True
        assert result.attempts == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(60)

    def test_never_ready_exhausts_budget(self):
        """15 not-ready answers fail after 15 queries."""
        sleep = MagicMock()
        query = _sequence(*([InstanceState.PENDING_CREATE] * 15))

        result = poll_until_ready(query, self._ready, self._fatal,
                                  attempts=15, interval=60, sleep=sleep)

        assert result.ready is False
        assert result.timed_out is True
        assert result.status is InstanceState.PENDING_CREATE
        assert len(query.calls) == 15
        assert sleep.call_count == 14

    def test_not_found_stops_immediately(self):
        """NOT_FOUND on the first query returns without sleeping."""
        sleep = MagicMock()
        query = _sequence(InstanceState.NOT_FOUND, InstanceState.RUNNABLE)

        result = poll_until_ready(query, self._ready, self._fatal,
                                  attempts=15, interval=60, sleep=sleep)

        assert result.ready is False
        assert result.fatal is True
        assert result.timed_out is False
        assert result.attempts == 1
        assert len(query.calls) == 1
        sleep.assert_not_called()

    def test_backoff_multiplies_interval(self):
        sleep = MagicMock()
        query = _sequence('wait', 'wait', 'wait', 'done')

        poll_until_ready(query, lambda s: s == 'done', attempts=5, interval=2,
                         backoff=2.0, sleep=sleep)

        assert [c.args[0] for c in sleep.call_args_list] == [2, 4, 8]

    def test_on_wait_called_before_each_sleep(self):
        on_wait = MagicMock()
        query = _sequence('wait', 'done')

        poll_until_ready(query, lambda s: s == 'done', attempts=3, interval=0,
                         sleep=lambda s: None, on_wait=on_wait)

        on_wait.assert_called_once_with(1, 'wait')

    def test_works_for_any_status_type(self):
        """The helper is not tied to Cloud SQL states."""
        query = _sequence({'phase': 'Pending'}, {'phase': 'Ready'})
        result = poll_until_ready(query, lambda s: s['phase'] == 'Ready',
                                  attempts=2, interval=0, sleep=lambda s: None)
        assert result.ready is True
        assert result.status == {'phase': 'Ready'}


class TestGetSqlInstanceState:
    """Test the gcloud state query."""

    def test_parses_state(self):
        with patch('readiness.run_command', return_value=(0, 'RUNNABLE\n', '')) as mock_cmd:
            state = get_sql_instance_state('p1', 'wiki-postgres-instance')

        assert state is InstanceState.RUNNABLE
        cmd = mock_cmd.call_args[0][0]
        assert cmd[:5] == ['gcloud', 'sql', 'instances', 'describe', 'wiki-postgres-instance']
        assert '--project=p1' in cmd
        assert '--format=value(state)' in cmd

    def test_error_is_not_found(self):
        with patch('readiness.run_command', return_value=(1, '', 'NOT_FOUND: instance')):
            assert get_sql_instance_state('p1', 'x') is InstanceState.NOT_FOUND


class TestWaitForSqlInstance:
    """Test the Cloud SQL binding of the poll helper."""

    def test_ready_after_pending(self):
        sleep = MagicMock()
        with patch('readiness.get_sql_instance_state',
                   side_effect=[InstanceState.PENDING_CREATE, InstanceState.RUNNABLE]):
            result = wait_for_sql_instance('p1', 'db', attempts=15, interval=60, sleep=sleep)

        assert result.ready is True
        sleep.assert_called_once_with(60)

    def test_not_found_is_fatal(self):
        sleep = MagicMock()
        with patch('readiness.get_sql_instance_state', return_value=InstanceState.NOT_FOUND) as mock_q:
            result = wait_for_sql_instance('p1', 'db', sleep=sleep)

        assert result.fatal is True
        assert mock_q.call_count == 1
        sleep.assert_not_called()


class TestCheckServiceUrl:
    """Test the HTTP check of the deployed service."""

    def test_ok_response(self):
        with patch('readiness.requests.get') as mock_get:
            mock_get.return_value.status_code = 200
            success, message = check_service_url('https://wiki-js-abc.a.run.app')

        assert success is True
        assert 'HTTP 200' in message

    def test_client_error_still_up(self):
        """A 4xx means the service answered."""
        with patch('readiness.requests.get') as mock_get:
            mock_get.return_value.status_code = 404
            success, _ = check_service_url('https://wiki-js-abc.a.run.app')

        assert success is True

    def test_server_error(self):
        with patch('readiness.requests.get') as mock_get:
            mock_get.return_value.status_code = 503
            success, message = check_service_url('https://wiki-js-abc.a.run.app')

        assert success is False
        assert '503' in message

    def test_connection_error(self):
        with patch('readiness.requests.get',
                   side_effect=requests.exceptions.ConnectionError('refused')):
            success, message = check_service_url('https://wiki-js-abc.a.run.app')

        assert success is False
        assert 'Cannot connect' in message

    def test_timeout(self):
        with patch('readiness.requests.get', side_effect=requests.exceptions.Timeout()):
            success, message = check_service_url('https://wiki-js-abc.a.run.app', timeout=1)

        assert success is False
        assert 'Timeout' in message
