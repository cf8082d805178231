#
# armdeploy/exceptions.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Exception classes shared across armdeploy modules
'''

class ApplicationException(Exception):
    '''
    Base class for application exceptions
    '''

class ApplicationExit(ApplicationException):
    '''
    This is interpreted as SystemExit, but it inherits from ApplicationException
    and not SystemExit. That makes it part of the Exception hierarchy
    and not BaseException. The intent is to use this as a replacement
    for SystemExit to simplify multithreaded orchestration.
    '''
    def __init__(self, code):
        self.code = code
        super().__init__(str(self.code))

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.code)

    def __str__(self):
        return str(self.code)

class ConfigError(ValueError):
    '''
    A configuration value is missing or invalid
    '''
    # no specialization here

class DeploymentSubmissionFailed(ApplicationException):
    '''
    Submitting a template deployment failed. The underlying
    exception is available as cause (and is also chained).
    '''
    def __init__(self, resource_group, deployment_name, cause):
        self.resource_group = resource_group
        self.deployment_name = deployment_name
        self.cause = cause
        super().__init__("cannot deploy %r in resource_group %r: %s" % (deployment_name, resource_group, cause))

    def __repr__(self):
        return "%s(%r, %r, %r)" % (type(self).__name__, self.resource_group, self.deployment_name, self.cause)

class FetchError(ApplicationException):
    '''
    Listing the operations of a deployment failed
    '''
    def __init__(self, deployment_ref, cause):
        self.deployment_ref = deployment_ref
        self.cause = cause
        super().__init__("cannot get operations for %s: %s" % (deployment_ref, cause))

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self.deployment_ref, self.cause)

class ResourceProvisioningFailed(ApplicationException):
    '''
    A resource within a deployment reached a terminal failure state
    '''
    def __init__(self, operation):
        self.operation = operation
        super().__init__("Failed(%s): %s:%s" % (operation.provisioning_state, operation.resource_type, operation.resource_name))

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.operation)

class MonitorCancelled(ApplicationException):
    '''
    Monitoring was cancelled before the deployment reached a terminal state
    '''
    # no specialization here

class MonitorPollsExhausted(ApplicationException):
    '''
    The deployment did not complete within the permitted number of polls
    '''
    def __init__(self, polls):
        self.polls = polls
        super().__init__("Deployment not complete after %d polls" % polls)
