#!/usr/bin/env python3
#
# armdeploy/deploy_template.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Submit an ARM template for incremental deployment into a resource
group and monitor it until every resource has finished provisioning.

Without --template, monitor an existing deployment named by --deployment_name.
'''
import sys

import armdeploy.azure_tool
from armdeploy.btypes import EmptyOperationsPolicy
from armdeploy.config import cfg
from armdeploy.deployment import DeploymentRef
from armdeploy.exceptions import (ApplicationExit,
                                  DeploymentSubmissionFailed,
                                 )
from armdeploy.monitor import DeploymentMonitor
from armdeploy.reporter import LoggerReporter

DEPLOY_DESCRIPTION = '''
Deploy an ARM template into a resource group and wait for the result.
Exits 0 if every resource provisioned successfully, 1 otherwise.
'''

class DeployTemplate(armdeploy.azure_tool.Manager):
    '''
    Deploy a template and/or monitor a deployment from the command line.
    '''
    def __init__(self,
                 template='',
                 parameters='',
                 deployment_name='',
                 no_monitor=False,
                 poll_interval=None,
                 max_polls=None,
                 empty_operations=None,
                 sleeper=None,
                 **kwargs):
        super().__init__(**kwargs)
        self.template = template
        self.parameters = parameters
        self.deployment_name = deployment_name
        self.no_monitor = no_monitor
        self.poll_interval = poll_interval if poll_interval is not None else cfg.get('poll_interval_secs', None)
        self.max_polls = max_polls if max_polls is not None else cfg.get('max_polls', None)
        self.empty_operations = empty_operations or cfg.get('empty_operations_policy', None)
        self.sleeper = sleeper

        if (not self.template) and (not self.deployment_name):
            raise self.exc_value("one of 'template' or 'deployment_name' must be specified")
        if self.no_monitor and (not self.template):
            raise self.exc_value("'no_monitor' without 'template' does nothing")
        if (self.poll_interval is not None) and (self.poll_interval < 0):
            raise self.exc_value("invalid poll_interval %r" % self.poll_interval)
        if (self.max_polls is not None) and (self.max_polls < 1):
            raise self.exc_value("invalid max_polls %r" % self.max_polls)
        if self.empty_operations:
            self.empty_operations = EmptyOperationsPolicy.coerce(self.empty_operations, exc_value=self.exc_value, prefix='empty_operations')

    LOGGER_NAME = 'deploy'

    RESOURCE_GROUP_HELP = 'resource group into which to deploy (default from config)'
    RESOURCE_GROUP_REQUIRED = True

    DESCRIPTION = DEPLOY_DESCRIPTION

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See armdeploy.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        group = ap_parser.get_argument_group('deployment')
        group.add_argument('--template', type=str, default='',
                           help='path to the ARM template (JSON) to deploy')
        group.add_argument('--parameters', type=str, default='',
                           help='path to an ARM deployment parameters file (JSON)')
        group.add_argument('--deployment_name', type=str, default='',
                           help='deployment name; with --template, defaults to a generated name; without --template, the deployment to monitor')
        group.add_argument('--no_monitor', action='store_true',
                           help='submit the deployment and exit without monitoring it')
        group = ap_parser.get_argument_group('monitor')
        group.add_argument('--poll_interval', type=float, default=None,
                           help='seconds between polls of deployment operations (default from config, else 30)')
        group.add_argument('--max_polls', type=int, default=None,
                           help='give up after this many polls (default from config, else unbounded)')
        group.add_argument('--empty_operations', type=str, default=None, choices=EmptyOperationsPolicy.values(),
                           help='how to treat a deployment that reports no operations (default from config, else succeed)')

    def monitor_generate(self):
        '''
        Return a DeploymentMonitor bound to this manager
        '''
        return DeploymentMonitor(self,
                                 LoggerReporter(self.logger),
                                 poll_interval=self.poll_interval,
                                 max_polls=self.max_polls,
                                 cancel_event=self.cancel_event,
                                 empty_operations_policy=self.empty_operations,
                                 sleeper=self.sleeper,
                                 logger=self.logger)

    def submit(self):
        '''
        Load and submit self.template. Returns the deployment name.
        '''
        template = self.template_load(self.template)
        parameters = self.parameters_load(self.parameters) if self.parameters else None
        return self.deployment_submit(self.resource_group, template, parameters=parameters, deployment_name=self.deployment_name or None)

    def main_execute(self):
        '''
        See armdeploy.common.Application.main_execute()
        '''
        if self.template:
            try:
                deployment_name = self.submit()
            except DeploymentSubmissionFailed as exc:
                raise ApplicationExit("deployment failed: %s" % exc) from exc
            self.logger.info("submitted deployment %r in resource_group %r", deployment_name, self.resource_group)
            if self.no_monitor:
                raise ApplicationExit(0)
        else:
            deployment_name = self.deployment_name

        deployment_ref = DeploymentRef(self.resource_group, deployment_name, exc_value=self.exc_value)
        result = self.monitor_generate().monitor_result(deployment_ref)
        if result.succeeded:
            self.logger.info("deployment %s succeeded", deployment_ref)
            raise ApplicationExit(0)
        self.logger.error("deployment %s did not succeed (%s)", deployment_ref, result.reason)
        if result.reason != result.REASON_CANCELLED:
            self.deployment_log_summary(deployment_name)
        raise ApplicationExit(1)

def main():
    '''
    Console entrypoint
    '''
    DeployTemplate.main_with_args(sys.argv[1:])

if __name__ == "__main__":
    DeployTemplate.main(__name__)
    raise SystemExit(1)
