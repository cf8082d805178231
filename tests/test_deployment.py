#
# tests/test_deployment.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Tests for armdeploy.deployment and armdeploy.btypes
'''
import pytest

from armdeploy.btypes import (EmptyOperationsPolicy,
                              ProvisioningState,
                              ReadOnlyDict,
                              StateBucket,
                             )
from armdeploy.deployment import (DeploymentRef,
                                  FetchResult,
                                  Operation,
                                  deployment_name_generate,
                                 )
from armdeploy.exceptions import (ConfigError,
                                  FetchError,
                                  ResourceProvisioningFailed,
                                 )

@pytest.mark.parametrize('label,expect', [('Succeeded', StateBucket.SUCCEEDED),
                                          ('succeeded', StateBucket.SUCCEEDED),
                                          ('Failed', StateBucket.FAILED),
                                          ('Canceled', StateBucket.FAILED),
                                          ('NotSpecified', StateBucket.FAILED),
                                          ('', StateBucket.FAILED),
                                          (None, StateBucket.FAILED),
                                          ('Running', StateBucket.IN_PROGRESS),
                                          ('Accepted', StateBucket.IN_PROGRESS),
                                          ('Deleting', StateBucket.IN_PROGRESS),
                                          ('SomethingNew', StateBucket.IN_PROGRESS),
                                          (ProvisioningState.CANCELED, StateBucket.FAILED),
                                         ])
def test_provisioning_state_bucket(label, expect):
    assert ProvisioningState.bucket(label) is expect

def test_provisioning_state_lookup():
    assert ProvisioningState.lookup('RUNNING') is ProvisioningState.RUNNING
    assert ProvisioningState.lookup(None) is ProvisioningState.NOT_SPECIFIED
    assert ProvisioningState.lookup('Provisioning') is None

def test_empty_operations_policy_coerce():
    assert EmptyOperationsPolicy.coerce('wait') is EmptyOperationsPolicy.WAIT
    assert EmptyOperationsPolicy.values() == ['succeed', 'wait']
    with pytest.raises(ConfigError):
        EmptyOperationsPolicy.coerce('never', exc_value=ConfigError, prefix='x')

def test_read_only_dict():
    d = ReadOnlyDict({'a' : 1})
    with pytest.raises(TypeError):
        d['b'] = 2
    with pytest.raises(TypeError):
        d.update(b=2)
    with pytest.raises(KeyError):
        d['b'] # pylint: disable=pointless-statement
    d.default_value = 7
    assert d['b'] == 7

def test_deployment_ref():
    ref = DeploymentRef('My-RG', 'dep')
    assert str(ref) == 'My-RG/dep'
    assert ref == DeploymentRef('my-rg', 'dep')
    assert hash(ref) == hash(DeploymentRef('MY-RG', 'dep'))
    assert ref != DeploymentRef('My-RG', 'Dep')
    with pytest.raises(AttributeError):
        ref.deployment_name = 'other'
    assert len({ref, DeploymentRef('my-rg', 'dep')}) == 1

@pytest.mark.parametrize('rg,name', [('', 'dep'), ('bad/rg', 'dep'), ('rg', ''), (None, 'dep')])
def test_deployment_ref_invalid(rg, name):
    with pytest.raises(ValueError):
        DeploymentRef(rg, name)

def test_operation():
    op = Operation('vm1', 'Microsoft.Compute/virtualMachines', ProvisioningState.SUCCEEDED)
    assert op.provisioning_state == 'Succeeded'
    assert op.bucket is StateBucket.SUCCEEDED
    assert op.resource_desc == 'Microsoft.Compute/virtualMachines:vm1'
    assert op == Operation('vm1', 'Microsoft.Compute/virtualMachines', 'Succeeded')
    missing = Operation(None, None, None)
    assert missing.provisioning_state == 'NotSpecified'
    assert missing.resource_desc == ':'
    assert str(ResourceProvisioningFailed(missing)) == 'Failed(NotSpecified): :'

def test_fetch_result():
    fr = FetchResult.success(iter([Operation('a', 't', 'Running')]))
    assert fr.ok
    assert fr.operations == [Operation('a', 't', 'Running')]
    assert FetchResult.success([]).ok

    exc = FetchError(DeploymentRef('rg', 'd'), OSError('x'))
    fr = FetchResult.failure(exc)
    assert not fr.ok
    assert fr.operations is None
    assert fr.exc is exc

    with pytest.raises(ValueError):
        FetchResult()
    with pytest.raises(ValueError):
        FetchResult(operations=[], exc=exc)

def test_deployment_name_generate():
    assert deployment_name_generate(1700000000.1234) == '1700000000123'
    name = deployment_name_generate()
    assert name.isdigit()
    assert len(name) >= 13
