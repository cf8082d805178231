#
# armdeploy/reporter.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Status reporters. The monitor hands every per-resource status
and error line to a reporter. Reporters are fire-and-forget.
'''
import logging
import threading

class StatusReporter():
    '''
    Base class for reporters. Subclasses overload log_status() and log_error().
    '''
    def log_status(self, line):
        '''
        Record a progress line
        '''
        raise NotImplementedError("%s.log_status" % type(self).__name__)

    def log_error(self, line):
        '''
        Record an error line
        '''
        raise NotImplementedError("%s.log_error" % type(self).__name__)

class LoggerReporter(StatusReporter):
    '''
    Report lines through a logging.Logger
    '''
    def __init__(self, logger, status_level=logging.INFO, error_level=logging.ERROR):
        self.logger = logger
        self.status_level = status_level
        self.error_level = error_level

    def log_status(self, line):
        self.logger.log(self.status_level, "%s", line)

    def log_error(self, line):
        self.logger.log(self.error_level, "%s", line)

class AccumulatingReporter(StatusReporter):
    '''
    Keep every reported line in memory, in order.
    entries is a list of (kind, line) where kind is 'status' or 'error'.
    Optionally forward to another reporter.
    '''
    STATUS = 'status'
    ERROR = 'error'

    def __init__(self, forward=None):
        self._lock = threading.Lock()
        self.entries = list()
        self.forward = forward

    def _add(self, kind, line):
        with self._lock:
            self.entries.append((kind, line))

    def log_status(self, line):
        self._add(self.STATUS, line)
        if self.forward is not None:
            self.forward.log_status(line)

    def log_error(self, line):
        self._add(self.ERROR, line)
        if self.forward is not None:
            self.forward.log_error(line)

    @property
    def status_lines(self):
        '''
        Getter: list of status lines
        '''
        with self._lock:
            return [line for kind, line in self.entries if kind == self.STATUS]

    @property
    def error_lines(self):
        '''
        Getter: list of error lines
        '''
        with self._lock:
            return [line for kind, line in self.entries if kind == self.ERROR]

    def __contains__(self, txt):
        with self._lock:
            return any(txt in line for _, line in self.entries)
