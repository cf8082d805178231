#
# tests/conftest.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Shared fixtures and fakes for armdeploy tests
'''
import threading

import pytest

import armdeploy.base_defaults
from armdeploy.config import cfg
from armdeploy.deployment import (DeploymentRef,
                                  Operation,
                                 )
from armdeploy.reporter import AccumulatingReporter

SUBSCRIPTION_ID = '01234567-89ab-cdef-0123-456789abcdef'

class ScriptedSource():
    '''
    Deployment status source that returns one scripted snapshot per call.
    A snapshot is a list of (name, type, state) tuples or an exception to raise.
    The last snapshot repeats once the script is exhausted.
    '''
    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls = list()
        self._lock = threading.Lock()

    def deployment_operations_list(self, resource_group, deployment_name):
        with self._lock:
            idx = min(len(self.calls), len(self.snapshots) - 1)
            self.calls.append((resource_group, deployment_name))
        snapshot = self.snapshots[idx]
        if isinstance(snapshot, BaseException):
            raise snapshot
        return [Operation(name, rtype, state) for name, rtype, state in snapshot]

class RecordingSleeper():
    '''
    Sleeper that records requested durations and returns at once.
    If on_sleep is given, it is invoked with the sleep count after each sleep.
    '''
    def __init__(self, on_sleep=None):
        self.sleeps = list()
        self.on_sleep = on_sleep

    def __call__(self, secs):
        self.sleeps.append(secs)
        if self.on_sleep:
            self.on_sleep(len(self.sleeps))

@pytest.fixture(autouse=True)
def cfg_reset(monkeypatch):
    '''
    Run every test with no config file and no environment overrides
    '''
    for name in (armdeploy.base_defaults.ENVIRON_CONFIG,
                 armdeploy.base_defaults.ENVIRON_POLL_INTERVAL,
                 armdeploy.base_defaults.ENVIRON_SUBSCRIPTION_ID,
                 'ARMDEPLOY_DEBUG',
                ):
        monkeypatch.delenv(name, raising=False)
    cfg.reset()
    yield
    cfg.reset()

@pytest.fixture
def reporter():
    return AccumulatingReporter()

@pytest.fixture
def sleeper():
    return RecordingSleeper()

@pytest.fixture
def deployment_ref():
    return DeploymentRef('rg1', 'dep1')
