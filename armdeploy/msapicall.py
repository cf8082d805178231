#
# armdeploy/msapicall.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Provide wrappers for retrying Azure calls.

Only azure-core based (track2) SDK clients are handled here.
Errors are bucketed by Caught; msapicall() retries transient
buckets (throttling, conflicts, connection errors, server errors)
a bounded number of times and re-raises everything else.
'''
import http.client
import logging
import random
import time

import azure.core.exceptions

from armdeploy.exceptions import ApplicationException
from armdeploy.util import (getframe,
                            indent_pformat,
                           )

AZURE_SDK_EXCEPTIONS = (azure.core.exceptions.AzureError,
                       )

class CallPolicy():
    '''
    Call retry policy
    '''
    def __init__(self,
                 max_attempts_other=5,
                 max_attempts_throttle=100,
                 no_retry_classes=None):
        self.max_attempts_other = max_attempts_other
        self.max_attempts_throttle = max_attempts_throttle
        self.no_retry_classes = tuple(no_retry_classes or ())

# Use this policy to make exactly one attempt
CALLPOLICY_NO_RETRY = CallPolicy(max_attempts_other=1, max_attempts_throttle=1)

class Caught():
    '''
    Capture an exception. Called from the exception context.
    '''
    def __init__(self, exc, callpolicy=None):
        self.callpolicy = callpolicy or CallPolicy()
        assert isinstance(self.callpolicy, CallPolicy)
        self.exc = exc
        self.status_code = getattr(self.exc, 'status_code', None)
        try:
            self.status_code_int = int(self.status_code)
        except Exception:
            self.status_code_int = -1
        self.error_code = None
        self.error_target = None

        if hasattr(exc, 'error_code') and exc.error_code:
            self.error_code = str(exc.error_code)
        elif hasattr(exc, 'error') and hasattr(exc.error, 'code') and exc.error.code:
            self.error_code = str(exc.error.code)

        try:
            self.error_target = exc.error.target
        except AttributeError:
            pass

    def __repr__(self):
        return "%s(%r, status_code=%r, error_code=%r)" % (type(self).__name__, self.exc, self.status_code, self.error_code)

    def is_conflict(self):
        '''
        Return whether this is a "conflict" error.
        '''
        return self.status_code_int == http.client.CONFLICT

    def is_missing(self):
        '''
        Return whether this exception is caused by a missing resource
        '''
        if self.status_code_int == http.client.NOT_FOUND:
            return True
        if isinstance(self.exc, azure.core.exceptions.ResourceNotFoundError):
            return True
        return self.any_code_matches('ResourceGroupNotFound', 'DeploymentNotFound', 'ResourceNotFound')

    def is_connection(self):
        '''
        Return whether this exception is a transport-level failure
        (no usable response from the service)
        '''
        return isinstance(self.exc, (azure.core.exceptions.ServiceRequestError,
                                     azure.core.exceptions.ServiceResponseError,
                                    ))

    def is_server_error(self):
        '''
        Return whether the service reported an internal error
        '''
        return self.status_code_int >= 500

    def is_server_rejected_auth(self):
        '''
        Return whether this error is server rejected authentication
        '''
        if isinstance(self.exc, azure.core.exceptions.ClientAuthenticationError):
            return True
        return self.any_code_matches('AuthenticationFailed', 'ExpiredAuthenticationToken', 'InvalidAuthenticationToken')

    def is_throttle(self):
        '''
        Endpoint wants us to throttle
        '''
        return self.status_code_int == http.client.TOO_MANY_REQUESTS

    def any_code_matches(self, *args):
        '''
        Return whether any code in args (strings) matches self.error_code.
        '''
        if not self.error_code:
            return False
        ec = self.error_code.lower()
        return any(ec == code.lower() for code in args)

    _no_retry_classes = (azure.core.exceptions.DecodeError,
                         azure.core.exceptions.ResourceExistsError,
                         azure.core.exceptions.ResourceNotFoundError,
                         azure.core.exceptions.SerializationError,
                         azure.core.exceptions.DeserializationError,
                        )

    _no_retry_codes = ('InvalidDeployment',
                       'InvalidParameter',
                       'InvalidTemplate',
                       'InvalidTemplateDeployment',
                       'InvalidResourceReference',
                       'LinkedInvalidPropertyId',
                       'ResourceGroupNotFound',
                      )

    def retry_time(self):
        '''
        Return None if the operation should not retry
        Return 0.0 if the operations should retry immediately
        Return > 0.0 for an amount of time the operation should sleep before retrying
        '''
        if isinstance(self.exc, self._no_retry_classes + self.callpolicy.no_retry_classes) or self.any_code_matches(*self._no_retry_codes):
            return None
        if isinstance(self.exc, (ApplicationException, KeyboardInterrupt, SystemExit, TypeError)) \
          or self.is_server_rejected_auth() \
          or self.is_missing() \
          :
            return None
        if self.is_connection():
            # typically an Azure network problem of some sort - give it a little extra time to sort out
            return random.uniform(5, 10)
        if self.is_throttle() or self.is_conflict():
            # Do a longer sleep to let things cool down.
            # Jitter the sleep to break up convoys.
            return random.uniform(28, 32)
        if self.is_server_error():
            return random.uniform(1, 3)
        # Other 4xx responses are the caller's problem
        if 400 <= self.status_code_int < 500:
            return None
        return random.uniform(1, 3)

    def reason(self):
        '''
        Bucket failure reasons into a human-readable string.
        '''
        # The ordering here matches the bucketing in retry_time()
        for checker in ('is_server_rejected_auth',
                        'is_missing',
                        'is_connection',
                        'is_throttle',
                        'is_conflict',
                        'is_server_error',
                       ):
            proc = getattr(self, checker)
            if proc():
                return checker
        return None

def msapicall(logger, op, *args, armdeploy_callpolicy=None, armdeploy_sleep=time.sleep, **kwargs):
    '''
    execute op(*args, **kwargs) and return the result.
    Internally, do some amount of retry on errors.
    '''
    callpolicy = armdeploy_callpolicy or CallPolicy()
    last_reason = None
    attempt_all = 0
    attempt_this_reason = 0
    while True:
        try:
            return op(*args, **kwargs)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc, callpolicy=callpolicy)
            sleep_secs = caught.retry_time()
            if sleep_secs is None:
                raise
            reason = caught.reason()
            attempt_all += 1
            if reason == last_reason:
                attempt_this_reason += 1
            else:
                attempt_this_reason = 1
            last_reason = reason
            if caught.is_throttle():
                max_attempts = callpolicy.max_attempts_throttle
            else:
                max_attempts = callpolicy.max_attempts_other
            if attempt_this_reason >= max_attempts:
                raise
            reason_str = reason or 'other'
            if (not reason) and (logger.level <= logging.DEBUG):
                logger.warning("%s op=%r count=%s,%s/%s will retry after %.1f [%s] %r [WILL RETRY]\n%s", getframe(0), op, attempt_all, attempt_this_reason, max_attempts, sleep_secs, reason_str, exc, indent_pformat(vars(exc)))
            else:
                logger.warning("%s op=%r count=%s,%s/%s will retry after %.1f [%s] %r [WILL RETRY]", getframe(0), op, attempt_all, attempt_this_reason, max_attempts, sleep_secs, reason_str, exc)
            armdeploy_sleep(sleep_secs)
