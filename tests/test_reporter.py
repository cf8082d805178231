#
# tests/test_reporter.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Tests for armdeploy.reporter
'''
import logging

import pytest

from armdeploy.reporter import (AccumulatingReporter,
                                LoggerReporter,
                                StatusReporter,
                               )

def test_base_reporter_is_abstract():
    with pytest.raises(NotImplementedError):
        StatusReporter().log_status('x')
    with pytest.raises(NotImplementedError):
        StatusReporter().log_error('x')

def test_logger_reporter(caplog):
    logger = logging.getLogger('armdeploy.test.reporter')
    reporter = LoggerReporter(logger)
    with caplog.at_level(logging.DEBUG, logger='armdeploy.test.reporter'):
        reporter.log_status('To Be Completed(Running): t:n')
        reporter.log_error('Failed(Failed): t:n')
    assert [(r.levelno, r.getMessage()) for r in caplog.records] == [(logging.INFO, 'To Be Completed(Running): t:n'),
                                                                     (logging.ERROR, 'Failed(Failed): t:n'),
                                                                    ]

def test_accumulating_reporter_forwards():
    inner = AccumulatingReporter()
    reporter = AccumulatingReporter(forward=inner)
    reporter.log_status('one')
    reporter.log_error('two %s')
    reporter.log_status('three')
    assert reporter.entries == [('status', 'one'), ('error', 'two %s'), ('status', 'three')]
    assert reporter.status_lines == ['one', 'three']
    assert reporter.error_lines == ['two %s']
    assert inner.entries == reporter.entries
    assert 'thr' in reporter
    assert 'four' not in reporter
