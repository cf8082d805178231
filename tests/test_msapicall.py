#
# tests/test_msapicall.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Tests for armdeploy.msapicall
'''
import logging
from unittest import mock

import azure.core.exceptions
import pytest

from armdeploy.msapicall import (CALLPOLICY_NO_RETRY,
                                 CallPolicy,
                                 Caught,
                                 msapicall,
                                )

LOGGER = logging.getLogger('armdeploy.test.msapicall')

def _http_error(status_code, code=None, cls=azure.core.exceptions.HttpResponseError):
    exc = cls(message="status %d" % status_code)
    exc.status_code = status_code
    exc.error_code = code
    return exc

def test_caught_buckets():
    assert Caught(_http_error(429)).is_throttle()
    assert Caught(_http_error(409)).is_conflict()
    assert Caught(_http_error(404)).is_missing()
    assert Caught(_http_error(400, code='DeploymentNotFound')).is_missing()
    assert Caught(_http_error(503)).is_server_error()
    assert Caught(azure.core.exceptions.ServiceRequestError('no route')).is_connection()
    assert Caught(azure.core.exceptions.ClientAuthenticationError('nope')).is_server_rejected_auth()
    assert Caught(_http_error(400, code='invalidtemplate')).any_code_matches('InvalidTemplate')

@pytest.mark.parametrize('exc', [_http_error(400, code='InvalidTemplate'),
                                 _http_error(403),
                                 _http_error(404),
                                 azure.core.exceptions.ClientAuthenticationError('nope'),
                                 azure.core.exceptions.ResourceNotFoundError('gone'),
                                ])
def test_no_retry(exc):
    assert Caught(exc).retry_time() is None

@pytest.mark.parametrize('exc,lo,hi', [(_http_error(429), 28, 32),
                                       (_http_error(409), 28, 32),
                                       (_http_error(500), 1, 3),
                                       (azure.core.exceptions.ServiceResponseError('reset'), 5, 10),
                                      ])
def test_retry_time(exc, lo, hi):
    assert lo <= Caught(exc).retry_time() <= hi

def test_reason():
    assert Caught(_http_error(429)).reason() == 'is_throttle'
    assert Caught(_http_error(404)).reason() == 'is_missing'
    assert Caught(_http_error(418)).reason() is None

def test_msapicall_retries_then_succeeds():
    op = mock.Mock(side_effect=[_http_error(503), _http_error(429), 'done'])
    sleeps = list()
    assert msapicall(LOGGER, op, 'a', k=1, armdeploy_sleep=sleeps.append) == 'done'
    assert op.call_count == 3
    op.assert_called_with('a', k=1)
    assert len(sleeps) == 2

def test_msapicall_bounded():
    exc = _http_error(500)
    op = mock.Mock(side_effect=exc)
    sleeps = list()
    with pytest.raises(azure.core.exceptions.HttpResponseError):
        msapicall(LOGGER, op, armdeploy_callpolicy=CallPolicy(max_attempts_other=3), armdeploy_sleep=sleeps.append)
    assert op.call_count == 3
    assert len(sleeps) == 2

def test_msapicall_no_retry_policy():
    op = mock.Mock(side_effect=_http_error(503))
    with pytest.raises(azure.core.exceptions.HttpResponseError):
        msapicall(LOGGER, op, armdeploy_callpolicy=CALLPOLICY_NO_RETRY, armdeploy_sleep=mock.Mock())
    assert op.call_count == 1

def test_msapicall_not_retryable():
    op = mock.Mock(side_effect=_http_error(400, code='InvalidTemplate'))
    sleep = mock.Mock()
    with pytest.raises(azure.core.exceptions.HttpResponseError):
        msapicall(LOGGER, op, armdeploy_sleep=sleep)
    assert op.call_count == 1
    sleep.assert_not_called()

def test_msapicall_non_sdk_error_propagates():
    op = mock.Mock(side_effect=KeyError('k'))
    with pytest.raises(KeyError):
        msapicall(LOGGER, op, armdeploy_sleep=mock.Mock())
    assert op.call_count == 1
