#
# armdeploy/deployment.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Data model for a deployment and the operations ARM reports for it.
'''
import time

from armdeploy.base_defaults import EXC_VALUE_DEFAULT
from armdeploy.btypes import (ProvisioningState,
                              StateBucket,
                             )
from armdeploy.util import RE_RESOURCE_GROUP_ABS

class DeploymentRef():
    '''
    Identity of one deployment: (resource_group, deployment_name).
    Immutable and hashable so it may key results.
    '''
    __slots__ = ('_resource_group', '_deployment_name')

    def __init__(self, resource_group, deployment_name, exc_value=EXC_VALUE_DEFAULT):
        if not (isinstance(resource_group, str) and RE_RESOURCE_GROUP_ABS.search(resource_group)):
            raise exc_value("invalid resource_group %r" % resource_group)
        if not (isinstance(deployment_name, str) and deployment_name):
            raise exc_value("invalid deployment_name %r" % deployment_name)
        object.__setattr__(self, '_resource_group', resource_group)
        object.__setattr__(self, '_deployment_name', deployment_name)

    def __setattr__(self, name, value):
        raise AttributeError("%s is immutable" % type(self).__name__)

    @property
    def resource_group(self):
        '''
        Getter
        '''
        return self._resource_group

    @property
    def deployment_name(self):
        '''
        Getter
        '''
        return self._deployment_name

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self._resource_group, self._deployment_name)

    def __str__(self):
        return "%s/%s" % (self._resource_group, self._deployment_name)

    def __eq__(self, other):
        if not isinstance(other, DeploymentRef):
            return False
        # Resource group names are case-insensitive in ARM
        return (self._resource_group.lower() == other.resource_group.lower()) and (self._deployment_name == other.deployment_name)

    def __hash__(self):
        return hash((self._resource_group.lower(), self._deployment_name))

class Operation():
    '''
    One deployment operation - the progress of a single resource.
    provisioning_state is the label as reported (str); use bucket
    to find out what it means for the deployment.
    '''
    def __init__(self, resource_name, resource_type, provisioning_state):
        self.resource_name = resource_name or ''
        self.resource_type = resource_type or ''
        if isinstance(provisioning_state, ProvisioningState):
            provisioning_state = provisioning_state.value
        self.provisioning_state = provisioning_state or ProvisioningState.NOT_SPECIFIED.value

    def __repr__(self):
        return "%s(%r, %r, %r)" % (type(self).__name__, self.resource_name, self.resource_type, self.provisioning_state)

    def __eq__(self, other):
        if not isinstance(other, Operation):
            return False
        return (self.resource_name, self.resource_type, self.provisioning_state) == (other.resource_name, other.resource_type, other.provisioning_state)

    def __hash__(self):
        return hash((self.resource_name, self.resource_type, self.provisioning_state))

    @property
    def bucket(self) -> StateBucket:
        '''
        Getter: StateBucket for provisioning_state
        '''
        return ProvisioningState.bucket(self.provisioning_state)

    @property
    def resource_desc(self):
        '''
        Getter: type:name as used in status lines
        '''
        return "%s:%s" % (self.resource_type, self.resource_name)

class FetchResult():
    '''
    Result of listing the operations of a deployment.
    Exactly one of operations, exc is not None.
    '''
    def __init__(self, operations=None, exc=None):
        if (operations is None) == (exc is None):
            raise ValueError("%s requires exactly one of operations, exc" % type(self).__name__)
        self.operations = list(operations) if operations is not None else None
        self.exc = exc

    def __repr__(self):
        if self.ok:
            return "%s(operations=%r)" % (type(self).__name__, self.operations)
        return "%s(exc=%r)" % (type(self).__name__, self.exc)

    @property
    def ok(self):
        '''
        Getter: whether the fetch succeeded
        '''
        return self.exc is None

    @classmethod
    def success(cls, operations):
        '''
        Construct a successful result
        '''
        return cls(operations=operations)

    @classmethod
    def failure(cls, exc):
        '''
        Construct a failed result
        '''
        return cls(exc=exc)

def deployment_name_generate(ts=None):
    '''
    Return a new deployment name. This is the current time in
    milliseconds since the epoch, which is unique enough for
    one submitter against one resource group.
    '''
    ts = ts if ts is not None else time.time()
    return str(int(ts * 1000))
