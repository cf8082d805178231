#
# armdeploy/monitor.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Poll the operations of an ARM deployment until every resource
reaches a terminal provisioning state.

Each poll sleeps for a fixed interval, fetches the complete list
of operations, and reports one line per operation. The first
operation in a terminal-failure state ends monitoring with failure.
When every operation in a single snapshot has succeeded, monitoring
ends with success. A failed fetch ends monitoring with failure;
it is not retried here.
'''
import functools
import logging
import threading
import time

from armdeploy.base_defaults import (MAX_POLLS_DEFAULT,
                                     POLL_INTERVAL_SECS_DEFAULT,
                                    )
from armdeploy.btypes import (EMPTY_OPERATIONS_POLICY_DEFAULT,
                              EmptyOperationsPolicy,
                              StateBucket,
                             )
from armdeploy.deployment import FetchResult
from armdeploy.exceptions import (FetchError,
                                  MonitorCancelled,
                                  MonitorPollsExhausted,
                                  ResourceProvisioningFailed,
                                 )
from armdeploy.util import (Parallel,
                            elapsed,
                            getframe,
                           )

LOGGER_NAME_DEFAULT = 'armdeploy.monitor'

class MonitorResult():
    '''
    Detailed outcome of one DeploymentMonitor.monitor_result() call.
    reason is one of the REASON_* values.
    exc is the exception describing a failure, or None on success.
    '''
    REASON_SUCCEEDED = 'succeeded'
    REASON_RESOURCE_FAILED = 'resource_failed'
    REASON_FETCH_FAILED = 'fetch_failed'
    REASON_CANCELLED = 'cancelled'
    REASON_POLLS_EXHAUSTED = 'polls_exhausted'

    def __init__(self, deployment_ref, succeeded, polls, reason, failed_operation=None, exc=None):
        self.deployment_ref = deployment_ref
        self.succeeded = bool(succeeded)
        self.polls = polls
        self.reason = reason
        self.failed_operation = failed_operation
        self.exc = exc

    def __repr__(self):
        return "%s(%r, succeeded=%r, polls=%r, reason=%r)" % (type(self).__name__, self.deployment_ref, self.succeeded, self.polls, self.reason)

    def __bool__(self):
        return self.succeeded

class DeploymentMonitor():
    '''
    Monitor a single deployment.
    source: has deployment_operations_list(resource_group, deployment_name)
            returning an iterable of armdeploy.deployment.Operation
    reporter: armdeploy.reporter.StatusReporter or anything with log_status/log_error
    poll_interval: seconds to sleep before every fetch, including the first
    max_polls: give up after this many fetches; None polls forever
    cancel_event: threading.Event; setting it stops monitoring at the next check
    empty_operations_policy: EmptyOperationsPolicy for snapshots with no operations
    sleeper: callable(secs); defaults to waiting on cancel_event
    '''
    def __init__(self,
                 source,
                 reporter,
                 poll_interval=None,
                 max_polls=MAX_POLLS_DEFAULT,
                 cancel_event=None,
                 empty_operations_policy=None,
                 sleeper=None,
                 logger=None):
        self.source = source
        self.reporter = reporter
        self.poll_interval = float(poll_interval if poll_interval is not None else POLL_INTERVAL_SECS_DEFAULT)
        if self.poll_interval < 0:
            raise ValueError("invalid poll_interval %r" % poll_interval)
        if max_polls is not None:
            if isinstance(max_polls, bool) or (not isinstance(max_polls, int)) or (max_polls < 1):
                raise ValueError("invalid max_polls %r" % max_polls)
        self.max_polls = max_polls
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.empty_operations_policy = EmptyOperationsPolicy.coerce(empty_operations_policy if empty_operations_policy is not None else EMPTY_OPERATIONS_POLICY_DEFAULT,
                                                                    prefix='empty_operations_policy')
        self._sleeper = sleeper
        self.logger = logger if logger is not None else logging.getLogger(LOGGER_NAME_DEFAULT)

    def __repr__(self):
        return "<%s,poll_interval=%r,max_polls=%r>" % (type(self).__name__, self.poll_interval, self.max_polls)

    def cancel(self):
        '''
        Ask a running monitor to stop. Wakes a sleeping monitor.
        '''
        self.cancel_event.set()

    @property
    def cancelled(self):
        '''
        Getter
        '''
        return self.cancel_event.is_set()

    def sleep(self):
        '''
        Pause before the next fetch.
        '''
        if self._sleeper is not None:
            self._sleeper(self.poll_interval)
        else:
            self.cancel_event.wait(timeout=self.poll_interval)

    def fetch(self, deployment_ref):
        '''
        Fetch the current operations for deployment_ref.
        Returns FetchResult; does not raise for source errors.
        '''
        try:
            operations = self.source.deployment_operations_list(deployment_ref.resource_group, deployment_ref.deployment_name)
            return FetchResult.success(operations)
        except Exception as exc:
            if isinstance(exc, FetchError):
                return FetchResult.failure(exc)
            return FetchResult.failure(FetchError(deployment_ref, exc))

    def monitor(self, deployment_ref):
        '''
        Return True iff every operation of the deployment succeeded
        before any failure was observed.
        '''
        return self.monitor_result(deployment_ref).succeeded

    def _cancelled_result(self, deployment_ref, polls):
        '''
        Report and return the result for a cancelled monitor
        '''
        self.logger.info("%s monitoring cancelled for %s after %d poll(s)", getframe(1), deployment_ref, polls)
        self.reporter.log_error("Monitoring cancelled")
        return MonitorResult(deployment_ref, False, polls, MonitorResult.REASON_CANCELLED, exc=MonitorCancelled(str(deployment_ref)))

    def monitor_result(self, deployment_ref):
        '''
        Like monitor(), but return a MonitorResult.
        '''
        t0 = time.time()
        polls = 0
        while True:
            if self.cancelled:
                return self._cancelled_result(deployment_ref, polls)
            if (self.max_polls is not None) and (polls >= self.max_polls):
                exc = MonitorPollsExhausted(polls)
                self.logger.warning("%s: %s", deployment_ref, exc)
                self.reporter.log_error(str(exc))
                return MonitorResult(deployment_ref, False, polls, MonitorResult.REASON_POLLS_EXHAUSTED, exc=exc)

            self.sleep()
            if self.cancelled:
                return self._cancelled_result(deployment_ref, polls)

            fr = self.fetch(deployment_ref)
            polls += 1
            if (not fr.ok) and (self.cancelled or isinstance(fr.exc.cause, MonitorCancelled)):
                return self._cancelled_result(deployment_ref, polls)
            if not fr.ok:
                self.logger.warning("Failed getting deployment operations for %s: %r", deployment_ref, fr.exc.cause)
                self.reporter.log_error("Failed getting deployment operations: %s" % fr.exc.cause)
                return MonitorResult(deployment_ref, False, polls, MonitorResult.REASON_FETCH_FAILED, exc=fr.exc)

            ops = fr.operations
            completed = len(ops)
            for op in ops:
                bucket = op.bucket
                if bucket == StateBucket.FAILED:
                    exc = ResourceProvisioningFailed(op)
                    self.logger.info("Failed(%s): %s:%s", op.provisioning_state, op.resource_type, op.resource_name)
                    self.reporter.log_error(str(exc))
                    return MonitorResult(deployment_ref, False, polls, MonitorResult.REASON_RESOURCE_FAILED, failed_operation=op, exc=exc)
                if bucket == StateBucket.SUCCEEDED:
                    self.reporter.log_status("Succeeded(%s): %s" % (op.provisioning_state, op.resource_desc))
                    completed -= 1
                else:
                    self.logger.info("To Be Completed(%s): %s:%s", op.provisioning_state, op.resource_type, op.resource_name)
                    self.reporter.log_status("To Be Completed(%s): %s" % (op.provisioning_state, op.resource_desc))

            if (not ops) and (self.empty_operations_policy == EmptyOperationsPolicy.WAIT):
                self.logger.info("%s reports no operations yet; continuing to poll", deployment_ref)
                continue

            if completed == 0:
                self.logger.info("%s succeeded after %d poll(s) (%.1fs)", deployment_ref, polls, elapsed(t0))
                return MonitorResult(deployment_ref, True, polls, MonitorResult.REASON_SUCCEEDED)

def monitor_many(monitor_factory, deployment_refs, max_outstanding=None, logger=None):
    '''
    Monitor several deployments concurrently, one thread per deployment.
    monitor_factory is invoked as monitor_factory(deployment_ref) and returns
    a DeploymentMonitor dedicated to that deployment.
    Returns a dict of {deployment_ref : bool}. A monitor that raises
    counts as False.
    '''
    logger = logger if logger is not None else logging.getLogger(LOGGER_NAME_DEFAULT)
    work = dict()
    for deployment_ref in deployment_refs:
        if deployment_ref in work:
            raise ValueError("duplicate deployment %s" % deployment_ref)
        work[deployment_ref] = functools.partial(monitor_factory(deployment_ref).monitor, deployment_ref)
    if not work:
        return dict()
    parallel = Parallel(work, max_outstanding=max_outstanding, logger=logger)
    parallel.wait()
    ret = dict()
    for cr in parallel.results():
        if cr.exc is not None:
            logger.error("monitoring %s raised %r", cr.name, cr.exc)
            ret[cr.name] = False
        else:
            ret[cr.name] = bool(cr.result)
    return ret
