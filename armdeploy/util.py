#
# armdeploy/util.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Various utility functions and classes.
'''
import argparse
import collections
import logging
import pprint
import re
import sys
import threading
import time
import traceback
import uuid

from armdeploy.base_defaults import (EXC_VALUE_DEFAULT,
                                     PF,
                                    )
from armdeploy.exceptions import ApplicationExit

def re_abs(txt):
    '''
    Given regexp text, return a string that is that
    same regexp with begin and end applied.
    '''
    return '^' + txt + '$'

# https://docs.microsoft.com/en-us/azure/azure-resource-manager/management/resource-name-rules#microsoftresources
RE_RESOURCE_GROUP_TXT = r'([-\w\._\(\)]{1,90})'
RE_RESOURCE_GROUP_ABS = re.compile(re_abs(RE_RESOURCE_GROUP_TXT))

class ArgumentParser(argparse.ArgumentParser):
    '''
    argparse.ArgumentParser with extended operations
    '''
    def get_argument_group(self, group_name, *args, **kwargs):
        '''
        Return the named argument group, creating it if necessary
        '''
        for ag in self._action_groups:
            if isinstance(ag, argparse._ArgumentGroup) and (ag.title == group_name): # pylint: disable=protected-access
                return ag
        return self.add_argument_group(group_name, *args, **kwargs)

def getframename(idx):
    '''
    Return a string that is the name of the caller
    '''
    f = sys._getframe(idx+1) # pylint: disable=protected-access
    return f.f_code.co_name

def getframe(idx):
    '''
    Return a string of the form caller_name:linenumber.
    idx is the number of frames up the stack, so 1 = immediate caller.
    '''
    f = sys._getframe(idx+1) # pylint: disable=protected-access
    return "%s:%s" % (f.f_code.co_name, f.f_lineno)

def indent_pformat(item, prefix=PF):
    '''
    Like pprint.pformat(item), but prepends prefix to each line.
    '''
    sep = '\n' + prefix
    tmp1 = item if isinstance(item, str) else pprint.pformat(item)
    tmp2 = sep.join(tmp1.splitlines())
    return prefix + tmp2

def indent_simple(item, prefix=PF):
    '''
    Returns each thing in item indented
    '''
    sep = '\n' + prefix
    if isinstance(item, (list, set, tuple)):
        return prefix + sep.join(item)
    return prefix + sep.join([str(x) for x in item])

def indent_exc(prefix=PF):
    '''
    Indented human-readable exception stack.
    '''
    return indent_simple([x.rstrip() for x in traceback.format_exc().splitlines()], prefix=prefix)

def elapsed(ts0, ts1=None):
    '''
    Return the amount of time elapsed since ts0.
    If ts1 is provided, this is the time elapsed from ts0 to ts1.
    If ts1 is not provided, this is the time elapsed from ts0 to now.
    '''
    if ts1 is None:
        ts1 = time.time()
    return max(ts1 - ts0, 0.0)

LOG_LEVEL_NAMES = {'debug' : logging.DEBUG,
                   'info' : logging.INFO,
                   'warning' : logging.WARNING,
                   'error' : logging.ERROR,
                   'critical' : logging.CRITICAL,
                  }

def log_level_normalize(log_level, exc_value=EXC_VALUE_DEFAULT):
    '''
    Given a log level as an int or a name like 'info', return the int value.
    '''
    if isinstance(log_level, bool):
        raise exc_value("invalid log_level %r" % log_level)
    if isinstance(log_level, int):
        return log_level
    if isinstance(log_level, str):
        try:
            return LOG_LEVEL_NAMES[log_level.strip().lower()]
        except KeyError as exc:
            raise exc_value("invalid log_level %r" % log_level) from exc
    raise exc_value("invalid log_level type %s" % type(log_level))

def uuid_normalize(val, key='uuid', exc_value=EXC_VALUE_DEFAULT) -> str:
    '''
    Return a normalized representation of a uuid.
    Normalized is a string as generated by uuid.UUID.__str__
    '''
    err = f'invalid {key}'
    if isinstance(val, str):
        try:
            return str(uuid.UUID(val.strip()))
        except Exception as exc:
            if exc_value:
                raise exc_value(f"{err}: {exc!r}") from exc
            return ''
    if isinstance(val, uuid.UUID):
        return str(val)
    if exc_value:
        raise exc_value("%s: unexpected type %s" % (err, type(val)))
    return ''

class CallResult():
    '''
    Outcome of one call made by Parallel.
    name is the key of the call in the work dict.
    At most one of result, exc is not None.
    '''
    __slots__ = ('name', 'result', 'exc')

    def __init__(self, name, result=None, exc=None):
        self.name = name
        self.result = result
        self.exc = exc

    def __repr__(self):
        return "%s(%r, result=%r, exc=%r)" % (type(self).__name__, self.name, self.result, self.exc)

    @property
    def ok(self):
        '''
        Getter: whether the call returned rather than raised
        '''
        return self.exc is None

class Parallel():
    '''
    Run every call in work on its own thread.
    work is a dict of name:call pairs. name is hashable and
    its str() is the thread name. call is invoked as call();
    bind arguments with functools.partial.
    At most max_outstanding calls run at once (None for no limit);
    the rest start as running calls complete.
    '''
    def __init__(self, work, max_outstanding=None, logger=None):
        if not (isinstance(work, dict) and work):
            raise ValueError("work must be a non-empty dict")
        if max_outstanding is not None:
            if isinstance(max_outstanding, bool) or (not isinstance(max_outstanding, int)) or (max_outstanding < 1):
                raise ValueError("invalid max_outstanding %r" % max_outstanding)
        self.work = work
        self.max_outstanding = max_outstanding
        self.logger = logger if logger is not None else logging.getLogger('armdeploy.parallel')
        self._cond = threading.Condition()
        self._pending = collections.deque(work.items())
        self._running = 0
        self._results = dict()

    def _run_one(self, name, call):
        '''
        Thread body: make one call, record how it went,
        and start the next pending call
        '''
        callresult = CallResult(name)
        try:
            callresult.result = call()
        except Exception as exc:
            if not isinstance(exc, ApplicationExit):
                self.logger.error("%s raised %r\n%s", name, exc, indent_exc())
            callresult.exc = exc
        finally:
            with self._cond:
                self._results[name] = callresult
                self._running -= 1
                self._launch_NL()
                self._cond.notify_all()

    def _launch_NL(self):
        '''
        Start pending calls while there is room.
        Caller holds self._cond.
        '''
        while self._pending and ((self.max_outstanding is None) or (self._running < self.max_outstanding)):
            name, call = self._pending.popleft()
            self._running += 1
            thread = threading.Thread(target=self._run_one, args=(name, call), name=str(name), daemon=True)
            thread.start()

    def _done_NL(self):
        '''
        Caller holds self._cond
        '''
        return len(self._results) >= len(self.work)

    def launch(self):
        '''
        Start as many calls as max_outstanding allows. Does not block.
        '''
        with self._cond:
            self._launch_NL()

    def wait(self, timeout=None):
        '''
        Launch if necessary, then wait for all calls to complete.
        Returns whether they have; False means timeout expired first.
        '''
        with self._cond:
            self._launch_NL()
            return self._cond.wait_for(self._done_NL, timeout=timeout)

    def done(self):
        '''
        Return whether every call has completed
        '''
        with self._cond:
            return self._done_NL()

    def results(self):
        '''
        Return a list of CallResult for the completed calls, in work order
        '''
        with self._cond:
            return [self._results[name] for name in self.work if name in self._results]
