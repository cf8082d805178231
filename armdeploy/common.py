#!/usr/bin/env python3
#
# armdeploy/common.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Application plumbing shared by armdeploy commands:
argument parsing, logger setup, and mapping results to exit codes.
'''
import logging
import os
import sys
import traceback

from armdeploy.base_defaults import EXC_VALUE_DEFAULT
from armdeploy.btypes import LogTo
from armdeploy.config import cfg
from armdeploy.exceptions import ApplicationExit
import armdeploy.util
from armdeploy.util import (ArgumentParser,
                            RE_RESOURCE_GROUP_ABS,
                            getframename,
                            indent_pformat,
                           )

class Application():
    '''
    Base class for anything that runs as a command or is driven by one.

    A subclass takes its own keyword arguments in __init__ and passes
    the rest to super(). To be runnable from the command line it adds
    matching options in main_add_parser_args() and overloads main_execute(),
    which finishes by raising ApplicationExit.
    '''
    def __init__(self,
                 debug=0,
                 exc_value=EXC_VALUE_DEFAULT,
                 log_level=None,
                 log_to=None,
                 log_fmt=None,
                 logger=None,
                 **kwargs):
        '''
        debug: extra-verbosity knob; checked as "self.debug > 0"
        exc_value: exception class raised for bad constructor arguments
        log_level, log_to, log_fmt: used only when logger is None
        '''
        self.debug = debug
        self.exc_value = exc_value
        self._log_to = LogTo(log_to if log_to is not None else self.LOG_TO_DEFAULT)
        self._log_level, self._logger = self._logger_create(log_level, logger, log_to=self._log_to, log_fmt=log_fmt)
        self.kwargs_check(kwargs)

    # Logger name component for this class. Subclasses may set their own;
    # logger_name_get() joins the components along the MRO.
    LOGGER_NAME = 'armdeploy'

    # Format choices for LOG_FORMAT
    LOG_FORMAT_SIMPLE = "%(message)s"
    LOG_FORMAT_TS_LEVEL = "%(asctime)s %(levelname).3s %(message)s"
    LOG_FORMAT_LNAME_LEVEL = "%(name)s %(levelname).3s %(message)s"
    LOG_FORMAT_LOC = "%(asctime)s %(levelname).3s %(name)s:%(module)s:%(funcName)s:%(lineno)s: %(message)s"

    LOG_FORMAT = LOG_FORMAT_TS_LEVEL

    LOG_LEVEL_DEFAULT = 'info'
    LOG_LEVEL_CHOICES = tuple(armdeploy.util.LOG_LEVEL_NAMES.keys())

    LOG_TO_DEFAULT = LogTo.STDOUT.value

    @property
    def logger(self):
        '''
        Getter
        '''
        return self._logger

    @property
    def log_level(self):
        '''
        Getter
        '''
        return self._log_level

    @classmethod
    def logger_name_get(cls):
        '''
        Return a dotted logger name built from LOGGER_NAME of each
        class in the MRO, base first, skipping repeats.
        '''
        names = list()
        for klass in reversed(cls.__mro__):
            name = klass.__dict__.get('LOGGER_NAME', '')
            if name and ((not names) or (names[-1] != name)):
                names.append(name)
        return '.'.join(names)

    @staticmethod
    def _stream_for(log_to):
        '''
        Map a LogTo value to a stream
        '''
        return sys.stderr if LogTo(log_to) == LogTo.STDERR else sys.stdout

    @classmethod
    def _logger_create(cls, log_level, logger, log_to=None, log_fmt=None):
        '''
        Return (log_level, logger). When logger is given it is used as-is.
        With no log_level, fall back to config and then LOG_LEVEL_DEFAULT.
        '''
        logging.basicConfig(format=log_fmt if log_fmt is not None else cls.LOG_FORMAT,
                            stream=cls._stream_for(log_to if log_to is not None else cls.LOG_TO_DEFAULT))
        if log_level is None:
            log_level = cfg.get('log_level', cls.LOG_LEVEL_DEFAULT)
        log_level = armdeploy.util.log_level_normalize(log_level)
        if logger is None:
            logger = logging.getLogger(name=cls.logger_name_get())
            logger.setLevel(log_level)
            cls._logging_quiet_sdk()
        return log_level, logger

    # The Azure SDK logs every HTTP request at INFO
    SDK_LOGGER_LEVELS = (('azure.core.pipeline.policies.http_logging_policy', logging.WARNING),
                         ('azure.identity', logging.WARNING),
                         ('azure.identity._internal.decorators', logging.ERROR),
                        )

    @classmethod
    def _logging_quiet_sdk(cls):
        '''
        Raise the level of chatty SDK loggers
        '''
        for name, level in cls.SDK_LOGGER_LEVELS:
            logging.getLogger(name=name).setLevel(level)

    @classmethod
    def kwargs_check(cls, kwargs):
        '''
        Leftover constructor kwargs are a caller error; raise TypeError
        the way Python does for a plain function.
        '''
        if not kwargs:
            return
        where = "%s.%s.%s" % (cls.__module__, cls.__name__, getframename(1))
        names = sorted(kwargs.keys())
        if len(names) == 1:
            raise TypeError("%s() got an unexpected keyword argument '%s'" % (where, names[0]))
        raise TypeError("%s() got unexpected keyword arguments %s" % (where, ','.join(names)))

    @classmethod
    def mth(cls):
        '''
        "ClassName.caller" for log messages
        '''
        return "%s.%s" % (cls.__name__, getframename(1))

    @staticmethod
    def debug_default():
        '''
        Debug level from ARMDEPLOY_DEBUG, else 0.
        Used while building the argument parser, so a bad value
        is printed and turned into ApplicationExit.
        '''
        env = os.environ.get('ARMDEPLOY_DEBUG', '')
        if not env:
            return 0
        try:
            return int(env)
        except ValueError as exc:
            print("invalid value '%s' for ARMDEPLOY_DEBUG" % env)
            raise ApplicationExit(1) from exc

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        Add options. Subclasses call super() and then add their own.
        '''
        group = ap_parser.get_argument_group('common')
        group.add_argument('--debug', type=int, default=cls.debug_default(),
                           help='debug level')
        group.add_argument('--log_level', type=str, default=None, choices=cls.LOG_LEVEL_CHOICES,
                           help='log level (default from config, else %r)' % cls.LOG_LEVEL_DEFAULT)
        group.add_argument('--log_to', type=str, default=cls.LOG_TO_DEFAULT, choices=LogTo.values(),
                           help='where log output goes')
        group.add_argument('--config', type=str, default='',
                           help='path to YAML config file (default from ARMDEPLOY_CONFIG)')

    @classmethod
    def main_handle_parser_args(cls, ap_args):
        '''
        Post-process parsed options (argparse.Namespace) in place.
        --config is consumed here: it selects the config file and is
        not passed to the constructor.
        '''
        config = getattr(ap_args, 'config', None)
        if config is not None:
            if config:
                cfg.reset(filename=config)
            delattr(ap_args, 'config')

    @classmethod
    def main_app_setup(cls, cmd_args):
        '''
        Parse cmd_args and construct the application.
        Exceptions propagate; main_with_args() handles them.
        Returns (app, debug, logger)
        '''
        ap_parser = ArgumentParser(allow_abbrev=False, description=cls.DESCRIPTION)
        cls.main_add_parser_args(ap_parser)
        ap_args = ap_parser.parse_args(args=cmd_args)
        cls.main_handle_parser_args(ap_args)
        kwargs = dict(vars(ap_args))
        kwargs['exc_value'] = ApplicationExit
        app = cls(**kwargs)
        return (app, app.debug, app.logger)

    DESCRIPTION = None

    def main_execute(self):
        '''
        Do the work. Subclasses overload this and end by raising ApplicationExit.
        '''
        raise ApplicationExit(0)

    @classmethod
    def main(cls, name):
        '''
        Run from the command line when name is '__main__'.
        '''
        if name == '__main__':
            cls.main_with_args(sys.argv[1:])
            raise SystemExit(1)

    @classmethod
    def main_with_args(cls, cmd_args):
        '''
        Command-line entrypoint; cmd_args is typically sys.argv[1:].
        Always raises SystemExit. ApplicationExit with an int or bool code
        exits 0 or 1; with any other code, the code is logged as an error
        and the exit status is 1. Unexpected exceptions exit 1.
        '''
        debug = 1
        logger = None
        try:
            app, debug, logger = cls.main_app_setup(cmd_args)
            app.main_execute()
            app.logger.error("%s.main_execute returned without raising ApplicationExit", type(app).__name__)
            raise ApplicationExit(1)
        except SystemExit:
            raise
        except ApplicationExit as exc:
            if not isinstance(exc.code, (bool, int, type(None))):
                if logger is not None:
                    logger.error("%s", exc.code)
                else:
                    print(str(exc.code), file=cls._stream_for(cls.LOG_TO_DEFAULT))
            if (debug > 0) and (logger is not None):
                logger.info("exit code %r", exc.code)
            raise SystemExit(int(bool(exc.code))) from exc
        except Exception as exc:
            if logger is not None:
                logger.error("%r\n%s\n%s", exc, indent_pformat(getattr(exc, '__dict__', dict())), traceback.format_exc())
            else:
                print("%r\n%s" % (exc, traceback.format_exc()), flush=True)
        raise SystemExit(1)

class ApplicationWithSubscription(Application):
    '''
    Application bound to one Azure subscription
    '''
    def __init__(self, subscription_id='', **kwargs):
        super().__init__(**kwargs)
        subscription_id = subscription_id or cfg.get('subscription_id_default', '')
        if not subscription_id:
            if self.SUBSCRIPTION_ID_REQUIRED:
                raise self.exc_value("'subscription_id' not specified")
            self.subscription_id = ''
        else:
            self.subscription_id = armdeploy.util.uuid_normalize(subscription_id, key='subscription_id', exc_value=self.exc_value)

    SUBSCRIPTION_ID_REQUIRED = True

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See armdeploy.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        group = ap_parser.get_argument_group('subscription')
        group.add_argument('--subscription_id', type=str, default='',
                           help='subscription ID (default from config)')

class ApplicationWithResourceGroup(ApplicationWithSubscription):
    '''
    Application with a default resource group
    '''
    def __init__(self, resource_group='', **kwargs):
        super().__init__(**kwargs)
        self.resource_group = self.resource_group_effective(resource_group or cfg.get('resource_group_default', ''),
                                                            required=self.RESOURCE_GROUP_REQUIRED)

    RESOURCE_GROUP_HELP = 'resource group (default from config)'
    RESOURCE_GROUP_REQUIRED = False

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See armdeploy.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        group = ap_parser.get_argument_group('resource group')
        group.add_argument('--resource_group', type=str, default='',
                           help=cls.RESOURCE_GROUP_HELP)

    def resource_group_effective(self, resource_group, required=True, exc_value=None):
        '''
        Return resource_group, or self.resource_group when resource_group is empty.
        The result is a valid name, or '' when nothing is set and not required.
        Raises exc_value (default self.exc_value) otherwise.
        '''
        exc_value = exc_value or self.exc_value
        resource_group = resource_group or getattr(self, 'resource_group', '')
        if not resource_group:
            if required:
                raise exc_value("'resource_group' not specified")
            return ''
        if not isinstance(resource_group, str):
            raise exc_value("invalid resource_group type %s" % type(resource_group).__name__)
        if not RE_RESOURCE_GROUP_ABS.search(resource_group):
            raise exc_value("invalid resource_group name %r" % resource_group)
        return resource_group
