#!/usr/bin/env python3
#
# armdeploy/azure_tool.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Azure Resource Manager operations for template deployments:
submit a template and list the operations of a deployment.
'''
import functools
import json
import threading

import azure.identity
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import (Deployment,
                                                  DeploymentMode,
                                                  DeploymentProperties,
                                                 )

import armdeploy.common
from armdeploy.deployment import (DeploymentRef,
                                  Operation,
                                  deployment_name_generate,
                                 )
from armdeploy.exceptions import (DeploymentSubmissionFailed,
                                  FetchError,
                                  MonitorCancelled,
                                 )
import armdeploy.msapicall
from armdeploy.msapicall import (CallPolicy,
                                 msapicall,
                                )
from armdeploy.util import (getframe,
                            indent_exc,
                           )

def operation_from_sdk(op):
    '''
    Convert azure.mgmt.resource.resources.models.DeploymentOperation to Operation.
    The deployment-level entry that ARM reports has no target_resource;
    it is converted with empty type and name.
    '''
    props = getattr(op, 'properties', None)
    if props is None:
        return Operation('', '', None)
    target = getattr(props, 'target_resource', None)
    resource_name = getattr(target, 'resource_name', '') if target is not None else ''
    resource_type = getattr(target, 'resource_type', '') if target is not None else ''
    return Operation(resource_name, resource_type, getattr(props, 'provisioning_state', None))

class Manager(armdeploy.common.ApplicationWithResourceGroup):
    '''
    Provide a stable API for submitting and observing ARM deployments.
    An instance is both a deployment submitter (deployment_submit)
    and a deployment status source (deployment_operations_list)
    for armdeploy.monitor.DeploymentMonitor.
    '''
    def __init__(self,
                 callpolicy=None,
                 fetch_callpolicy=None,
                 cancel_event=None,
                 credential=None,
                 resource_client=None,
                 **kwargs):
        '''
        callpolicy: retry policy for SDK calls
        fetch_callpolicy: retry policy for deployment_operations_list;
          defaults to callpolicy when that is given, else CALLPOLICY_FETCH
        cancel_event: threading.Event; once set, SDK calls stop retrying
        '''
        super().__init__(**kwargs)
        self.callpolicy = callpolicy or CallPolicy()
        self.fetch_callpolicy = fetch_callpolicy or callpolicy or self.CALLPOLICY_FETCH
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._credential = credential
        self._az_client_gen_lock = threading.RLock()

        # Do not access this directly - access it as self._az_resource_client
        self._az_resource_cachedclient = resource_client

    def __repr__(self):
        return "<%s,subscription_id=%r>" % (type(self).__name__, self.subscription_id)

    ######################################################################
    # SDK client generation

    def azure_credential_generate(self):
        '''
        Return the credential used to construct SDK clients.
        '''
        with self._az_client_gen_lock:
            if self._credential is None:
                self._credential = azure.identity.DefaultAzureCredential()
            return self._credential

    @property
    def _az_resource_client(self) -> ResourceManagementClient:
        '''
        Getter: self._az_resource_client, generated on the first call and then cached
        ResourceManagementClient is for resource groups and deployments
        '''
        with self._az_client_gen_lock:
            if self._az_resource_cachedclient is None:
                self._az_resource_cachedclient = ResourceManagementClient(self.azure_credential_generate(), self.subscription_id)
            return self._az_resource_cachedclient

    # A monitor fetch fails rather than stalling the poll loop
    # behind a long run of throttled retries.
    CALLPOLICY_FETCH = CallPolicy(max_attempts_other=3, max_attempts_throttle=3)

    def _retry_sleep(self, secs):
        '''
        Sleep between SDK retries. Wakes early and raises
        MonitorCancelled when self.cancel_event is set.
        '''
        if self.cancel_event.wait(timeout=secs):
            raise MonitorCancelled("%s cancelled while retrying" % self.mth())

    def _call(self, op, *args, armdeploy_callpolicy=None, **kwargs):
        '''
        Invoke an SDK operation with retries per armdeploy_callpolicy
        (default self.callpolicy). Retry sleeps end on cancellation.
        '''
        return msapicall(self.logger, op, *args,
                         armdeploy_callpolicy=armdeploy_callpolicy or self.callpolicy,
                         armdeploy_sleep=self._retry_sleep,
                         **kwargs)

    ######################################################################
    # Deployments

    def _json_object_load(self, path, what):
        '''
        Load path as JSON and return the resulting dict.
        Raises DeploymentSubmissionFailed; nothing can be submitted without it.
        '''
        try:
            with open(path, 'r') as f:
                ret = json.load(f)
        except (OSError, ValueError) as exc:
            self.logger.error("%s cannot load %s %r: %r", getframe(1), what, path, exc)
            raise DeploymentSubmissionFailed(self.resource_group, '', exc) from exc
        if not isinstance(ret, dict):
            exc = ValueError("%s %r is %s, not a JSON object" % (what, path, type(ret).__name__))
            self.logger.error("%s %s", getframe(1), exc)
            raise DeploymentSubmissionFailed(self.resource_group, '', exc)
        return ret

    def template_load(self, path):
        '''
        Load a template document (JSON) from path and return it as a dict.
        The document is not validated or modified.
        '''
        return self._json_object_load(path, 'template')

    def parameters_load(self, path):
        '''
        Load a deployment parameters file (JSON) from path.
        '''
        return self.parameters_normalize(self._json_object_load(path, 'parameters'))

    @staticmethod
    def parameters_normalize(parameters):
        '''
        Accept either the contents of a deployment parameters file
        ({'$schema': ..., 'parameters': {...}}) or the inner dict.
        Return the inner dict or None.
        '''
        if not parameters:
            return None
        if (('$schema' in parameters) or ('contentVersion' in parameters)) and isinstance(parameters.get('parameters', None), dict):
            return parameters['parameters']
        return parameters

    def deployment_submit(self, resource_group, template, parameters=None, deployment_name=None):
        '''
        Submit template for incremental deployment into resource_group.
        Does not wait for the deployment to complete. The SDK poller is
        disabled; progress is observed with deployment_operations_list.
        Returns the deployment name. On any failure, raises DeploymentSubmissionFailed.
        '''
        deployment_name = deployment_name or deployment_name_generate()
        try:
            resource_group = self.resource_group_effective(resource_group, exc_value=ValueError)
        except ValueError as exc:
            self.logger.error("%s cannot deploy %r: %s", self.mth(), deployment_name, exc)
            raise DeploymentSubmissionFailed(resource_group, deployment_name, exc) from exc
        properties = DeploymentProperties(mode=DeploymentMode.INCREMENTAL,
                                          template=template,
                                          parameters=self.parameters_normalize(parameters))
        deployment = Deployment(properties=properties)
        self.logger.info("%s deploying %r in resource_group %r", self.mth(), deployment_name, resource_group)
        try:
            az_resource = self._az_resource_client
            self._call(az_resource.deployments.begin_create_or_update, resource_group, deployment_name, deployment, polling=False)
        except Exception as exc:
            self.logger.error("%s unable to deploy %r in resource_group %r: %r\n%s",
                              self.mth(), deployment_name, resource_group, exc, indent_exc())
            raise DeploymentSubmissionFailed(resource_group, deployment_name, exc) from exc
        return deployment_name

    def deployment_operations_list(self, resource_group, deployment_name):
        '''
        Return a list of Operation for the named deployment.
        On any failure, raises FetchError.
        '''
        deployment_ref = DeploymentRef(resource_group, deployment_name)
        try:
            az_resource = self._az_resource_client
            ops = self._call(functools.partial(self._deployment_operations_list, az_resource, resource_group, deployment_name),
                             armdeploy_callpolicy=self.fetch_callpolicy)
        except Exception as exc:
            caught = armdeploy.msapicall.Caught(exc)
            self.logger.info("%s failed getting deployment operations for %s [%s]: %r",
                             self.mth(), deployment_ref, caught.reason() or 'other', exc)
            raise FetchError(deployment_ref, exc) from exc
        return [operation_from_sdk(op) for op in ops]

    @staticmethod
    def _deployment_operations_list(az_resource, resource_group, deployment_name):
        '''
        Drain the pager so paging errors surface inside the retry wrapper
        '''
        return list(az_resource.deployment_operations.list(resource_group, deployment_name))

    def deployment_get(self, deployment_name, resource_group=None):
        '''
        Return azure.mgmt.resource.resources.models.DeploymentExtended or None if it does not exist
        '''
        resource_group = self.resource_group_effective(resource_group)
        try:
            return self._call(self._az_resource_client.deployments.get, resource_group, deployment_name)
        except Exception as exc:
            caught = armdeploy.msapicall.Caught(exc)
            if caught.is_missing():
                return None
            raise

    def deployment_log_summary(self, deployment_name, resource_group=None, logger=None):
        '''
        Log the overall provisioning state of a deployment and its error, if any.
        Log and swallow Exceptions; this is used on the way out of a failure.
        '''
        logger = logger if logger is not None else self.logger
        try:
            deployment = self.deployment_get(deployment_name, resource_group=resource_group)
        except Exception as exc:
            logger.warning("cannot retrieve deployment %r: %r", deployment_name, exc)
            return
        if deployment is None:
            logger.warning("deployment %r does not exist", deployment_name)
            return
        props = deployment.properties
        state = getattr(props, 'provisioning_state', None)
        error = getattr(props, 'error', None)
        if error is not None:
            logger.error("deployment %r provisioning_state=%s error=%s: %s",
                         deployment_name, state, getattr(error, 'code', None), getattr(error, 'message', None))
        else:
            logger.info("deployment %r provisioning_state=%s", deployment_name, state)
