#
# tests/test_azure_tool.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Tests for armdeploy.azure_tool using a mocked ResourceManagementClient
'''
import json
import threading
import time
import types
from unittest import mock

import azure.core.exceptions
from azure.mgmt.resource.resources.models import DeploymentMode
import pytest

from armdeploy.azure_tool import (Manager,
                                  operation_from_sdk,
                                 )
from armdeploy.deployment import (DeploymentRef,
                                  Operation,
                                 )
from armdeploy.exceptions import (DeploymentSubmissionFailed,
                                  FetchError,
                                  MonitorCancelled,
                                 )
from armdeploy.monitor import (DeploymentMonitor,
                               MonitorResult,
                              )
from armdeploy.msapicall import CALLPOLICY_NO_RETRY
from armdeploy.reporter import AccumulatingReporter

from conftest import (RecordingSleeper,
                      SUBSCRIPTION_ID,
                     )

TEMPLATE = {'$schema' : 'https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#',
            'contentVersion' : '1.0.0.0',
            'resources' : list(),
           }

def _http_error(status_code, code=None, cls=azure.core.exceptions.HttpResponseError):
    exc = cls(message="status %d" % status_code)
    exc.status_code = status_code
    exc.error_code = code
    return exc

def _sdk_op(name, rtype, state):
    target = types.SimpleNamespace(resource_name=name, resource_type=rtype) if name is not None else None
    return types.SimpleNamespace(properties=types.SimpleNamespace(target_resource=target, provisioning_state=state))

@pytest.fixture
def client():
    return mock.MagicMock()

@pytest.fixture
def manager(client):
    return Manager(subscription_id=SUBSCRIPTION_ID,
                   resource_group='rg1',
                   resource_client=client,
                   callpolicy=CALLPOLICY_NO_RETRY)

def test_deployment_submit(manager, client):
    name = manager.deployment_submit('rg2', TEMPLATE, parameters={'size' : {'value' : 'small'}}, deployment_name='dep1')
    assert name == 'dep1'
    client.deployments.begin_create_or_update.assert_called_once()
    args = client.deployments.begin_create_or_update.call_args[0]
    assert args[0] == 'rg2'
    assert args[1] == 'dep1'
    props = args[2].properties
    assert props.mode == DeploymentMode.INCREMENTAL
    assert props.template == TEMPLATE
    assert props.parameters == {'size' : {'value' : 'small'}}
    assert client.deployments.begin_create_or_update.call_args[1]['polling'] is False

def test_deployment_submit_generates_name(manager, client):
    name = manager.deployment_submit(None, TEMPLATE)
    assert name.isdigit()
    args = client.deployments.begin_create_or_update.call_args[0]
    assert args[0] == 'rg1'
    assert args[1] == name
    assert args[2].properties.parameters is None

def test_deployment_submit_wraps_errors(manager, client):
    cause = _http_error(400, code='InvalidTemplate')
    client.deployments.begin_create_or_update.side_effect = cause
    with pytest.raises(DeploymentSubmissionFailed) as exc_info:
        manager.deployment_submit('rg1', TEMPLATE, deployment_name='dep1')
    exc = exc_info.value
    assert exc.cause is cause
    assert exc.resource_group == 'rg1'
    assert exc.deployment_name == 'dep1'
    assert exc.__cause__ is cause

def test_deployment_submit_wraps_credential_errors(manager, client):
    client.deployments.begin_create_or_update.side_effect = azure.core.exceptions.ClientAuthenticationError('no token')
    with pytest.raises(DeploymentSubmissionFailed):
        manager.deployment_submit('rg1', TEMPLATE)
    assert client.deployments.begin_create_or_update.call_count == 1

def test_deployment_submit_bad_resource_group(manager, client):
    with pytest.raises(DeploymentSubmissionFailed):
        manager.deployment_submit('bad/rg', TEMPLATE)
    client.deployments.begin_create_or_update.assert_not_called()

def test_deployment_submit_retries_throttle(client):
    client.deployments.begin_create_or_update.side_effect = [_http_error(429), mock.MagicMock()]
    mgr = Manager(subscription_id=SUBSCRIPTION_ID, resource_group='rg1', resource_client=client)
    with mock.patch('armdeploy.msapicall.random.uniform', return_value=0.0):
        assert mgr.deployment_submit('rg1', TEMPLATE, deployment_name='d') == 'd'
    assert client.deployments.begin_create_or_update.call_count == 2

def test_deployment_operations_list(manager, client):
    client.deployment_operations.list.return_value = iter([_sdk_op('vm1', 'Microsoft.Compute/virtualMachines', 'Succeeded'),
                                                           _sdk_op('nic1', 'Microsoft.Network/networkInterfaces', 'Running'),
                                                           _sdk_op(None, None, 'Succeeded'),
                                                          ])
    ops = manager.deployment_operations_list('rg1', 'dep1')
    client.deployment_operations.list.assert_called_once_with('rg1', 'dep1')
    assert ops == [Operation('vm1', 'Microsoft.Compute/virtualMachines', 'Succeeded'),
                   Operation('nic1', 'Microsoft.Network/networkInterfaces', 'Running'),
                   Operation('', '', 'Succeeded'),
                  ]

def test_deployment_operations_list_error(manager, client):
    cause = _http_error(404, code='DeploymentNotFound')
    client.deployment_operations.list.side_effect = cause
    with pytest.raises(FetchError) as exc_info:
        manager.deployment_operations_list('rg1', 'dep1')
    assert exc_info.value.cause is cause
    assert str(exc_info.value.deployment_ref) == 'rg1/dep1'

def test_operation_from_sdk_without_properties():
    op = operation_from_sdk(types.SimpleNamespace(properties=None))
    assert op == Operation('', '', 'NotSpecified')

def test_deployment_get(manager, client):
    client.deployments.get.return_value = 'deployment'
    assert manager.deployment_get('dep1') == 'deployment'
    client.deployments.get.assert_called_once_with('rg1', 'dep1')
    client.deployments.get.side_effect = _http_error(404)
    assert manager.deployment_get('dep1') is None
    client.deployments.get.side_effect = _http_error(403)
    with pytest.raises(azure.core.exceptions.HttpResponseError):
        manager.deployment_get('dep1')

def test_deployment_log_summary(manager, client, caplog):
    error = types.SimpleNamespace(code='ResourceDeploymentFailure', message='vm1 failed')
    client.deployments.get.return_value = types.SimpleNamespace(properties=types.SimpleNamespace(provisioning_state='Failed', error=error))
    manager.deployment_log_summary('dep1')
    assert 'ResourceDeploymentFailure' in caplog.text
    client.deployments.get.side_effect = RuntimeError('unexpected')
    manager.deployment_log_summary('dep1')
    assert 'unexpected' in caplog.text

def test_template_load(manager, tmp_path):
    path = tmp_path / 'template.json'
    path.write_text(json.dumps(TEMPLATE))
    assert manager.template_load(str(path)) == TEMPLATE

@pytest.mark.parametrize('content', ['{not json', '[1, 2]', None])
def test_template_load_errors(manager, tmp_path, content):
    path = tmp_path / 'template.json'
    if content is not None:
        path.write_text(content)
    with pytest.raises(DeploymentSubmissionFailed):
        manager.template_load(str(path))

def test_parameters_load(manager, tmp_path):
    path = tmp_path / 'parameters.json'
    path.write_text(json.dumps({'$schema' : 'x', 'contentVersion' : '1.0.0.0', 'parameters' : {'size' : {'value' : 3}}}))
    assert manager.parameters_load(str(path)) == {'size' : {'value' : 3}}
    assert Manager.parameters_normalize({'parameters' : {'value' : {'a' : 1}}}) == {'parameters' : {'value' : {'a' : 1}}}
    assert Manager.parameters_normalize(dict()) is None

def test_client_generated_once():
    with mock.patch('azure.identity.DefaultAzureCredential') as cred_cls, \
         mock.patch('armdeploy.azure_tool.ResourceManagementClient') as client_cls:
        mgr = Manager(subscription_id=SUBSCRIPTION_ID, resource_group='rg1')
        first = mgr._az_resource_client # pylint: disable=protected-access
        second = mgr._az_resource_client # pylint: disable=protected-access
    assert first is second
    cred_cls.assert_called_once_with()
    client_cls.assert_called_once_with(cred_cls.return_value, SUBSCRIPTION_ID)

def test_manager_requires_subscription():
    with pytest.raises(ValueError):
        Manager(resource_group='rg1')

def test_fetch_callpolicy_bounds_throttle_retries(client):
    client.deployment_operations.list.side_effect = _http_error(429)
    mgr = Manager(subscription_id=SUBSCRIPTION_ID, resource_group='rg1', resource_client=client)
    assert mgr.fetch_callpolicy is Manager.CALLPOLICY_FETCH
    with mock.patch('armdeploy.msapicall.random.uniform', return_value=0.0):
        with pytest.raises(FetchError):
            mgr.deployment_operations_list('rg1', 'dep1')
    assert client.deployment_operations.list.call_count == Manager.CALLPOLICY_FETCH.max_attempts_throttle

def test_retry_sleep_stops_when_cancelled(client):
    client.deployments.begin_create_or_update.side_effect = _http_error(429)
    mgr = Manager(subscription_id=SUBSCRIPTION_ID, resource_group='rg1', resource_client=client)
    mgr.cancel_event.set()
    with pytest.raises(DeploymentSubmissionFailed) as exc_info:
        mgr.deployment_submit('rg1', TEMPLATE, deployment_name='d')
    assert isinstance(exc_info.value.cause, MonitorCancelled)
    assert client.deployments.begin_create_or_update.call_count == 1

def test_monitor_cancelled_while_fetch_is_throttled(client):
    '''
    Cancelling wakes a fetch sleeping between throttled retries,
    and the monitor reports cancellation rather than a fetch failure.
    '''
    cancel_event = threading.Event()
    client.deployment_operations.list.side_effect = _http_error(429)
    mgr = Manager(subscription_id=SUBSCRIPTION_ID,
                  resource_group='rg1',
                  resource_client=client,
                  cancel_event=cancel_event)
    reporter = AccumulatingReporter()
    mon = DeploymentMonitor(mgr, reporter, poll_interval=5, sleeper=RecordingSleeper(), cancel_event=cancel_event)
    timer = threading.Timer(0.2, cancel_event.set)
    t0 = time.monotonic()
    timer.start()
    try:
        with mock.patch('armdeploy.msapicall.random.uniform', return_value=30.0):
            result = mon.monitor_result(DeploymentRef('rg1', 'dep1'))
    finally:
        timer.cancel()
    assert time.monotonic() - t0 < 20
    assert result.reason == MonitorResult.REASON_CANCELLED
    assert result.polls == 1
    assert client.deployment_operations.list.call_count == 1
    assert reporter.error_lines == ['Monitoring cancelled']
