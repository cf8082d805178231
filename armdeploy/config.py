#
# armdeploy/config.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
"cfg" manages misc settings read from the armdeploy config file.

The config file is YAML with a toplevel 'defaults' dict:
  defaults:
    subscription_id_default: 00000000-0000-0000-0000-000000000000
    resource_group_default: my-rg
    poll_interval_secs: 30
    max_polls: null
    empty_operations_policy: succeed
    log_level: info

The file is located with (first wins):
  cfg.reset(filename=...) (the --config command-line argument)
  ARMDEPLOY_CONFIG environment variable
With no file, only built-in defaults apply.

Environment variables ARMDEPLOY_SUBSCRIPTION_ID and ARMDEPLOY_POLL_INTERVAL
override the corresponding file values.
'''
import os
import threading

import yaml

import armdeploy.base_defaults
from armdeploy.btypes import (EmptyOperationsPolicy,
                              ReadOnlyDict,
                             )
from armdeploy.exceptions import ConfigError
import armdeploy.util

class _Cfg():
    '''
    Manage cfg values
    '''
    def __init__(self):
        self._vlock = threading.RLock()
        self._vfilename = None
        self._vdata = None
        self._filename = ''
        self._data = None

        # Hook for unit testing. Do not use this in production.
        self.test_values = dict()

    def reset(self, filename='', data=None):
        '''
        Discard cached data. Useful for unit testing.
        filename: load from this file instead of the environment default.
        data: use this dict (the contents of a config file) instead of reading a file.
        '''
        with self._vlock:
            self._vfilename = None
            self._vdata = None
            self._filename = filename or ''
            self._data = data
            self.test_values = dict()

    @property
    def filename(self):
        '''
        Getter: the config file path in use, or '' for none
        '''
        with self._vlock:
            if self._filename:
                return self._filename
            return os.environ.get(armdeploy.base_defaults.ENVIRON_CONFIG, '')

    def _file_load(self, filename):
        '''
        Return the dict under 'defaults' in filename
        '''
        try:
            with open(filename, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as exc:
            raise ConfigError("config file %r not found" % filename) from exc
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError("cannot load config file %r: %s" % (filename, exc)) from exc
        return data

    def _load_iff_necessary(self):
        '''
        Load data iff not already loaded
        '''
        with self._vlock:
            if self._vdata is not None:
                return
            filename = self.filename
            if self._data is not None:
                data = self._data
            elif filename:
                data = self._file_load(filename)
            else:
                data = dict()
            if data is None:
                data = dict()
            if not isinstance(data, dict):
                raise ConfigError("%s: expected a dict at toplevel, not %s" % (filename or 'config', type(data).__name__))
            defaults = data.get('defaults', dict())
            if defaults is None:
                defaults = dict()
            if not isinstance(defaults, dict):
                raise ConfigError("%s: 'defaults' must be a dict, not %s" % (filename or 'config', type(defaults).__name__))
            defaults = dict(defaults)
            self._environ_apply(defaults)
            self._vdata = ReadOnlyDict({k : self._value_validate(k, v) for k, v in defaults.items()})
            self._vfilename = filename

    @staticmethod
    def _environ_apply(defaults):
        '''
        Apply environment overrides to defaults (dict)
        '''
        val = os.environ.get(armdeploy.base_defaults.ENVIRON_SUBSCRIPTION_ID, '')
        if val:
            defaults['subscription_id_default'] = val
        val = os.environ.get(armdeploy.base_defaults.ENVIRON_POLL_INTERVAL, '')
        if val:
            defaults['poll_interval_secs'] = val

    def _value_validate(self, key, value):
        '''
        Validate one value from the defaults dict and return it
        in normalized form. Keys without a validator are accepted as-is
        if they are simple types.
        '''
        unamestack = f'defaults[{key}]'
        handler = getattr(self, f'_dh__{key}', None)
        if handler:
            return handler(value, unamestack)
        if isinstance(value, (type(None), bool, int, float, str)):
            return value
        raise ConfigError("%s has unexpected type %s" % (unamestack, type(value).__name__))

    @staticmethod
    def _dh__subscription_id_default(value, unamestack):
        '''
        Validate subscription_id_default as a UUID
        '''
        return armdeploy.util.uuid_normalize(value, key=unamestack, exc_value=ConfigError)

    @staticmethod
    def _dh__resource_group_default(value, unamestack):
        '''
        Validate resource_group_default as a resource group name
        '''
        if not isinstance(value, str) or not armdeploy.util.RE_RESOURCE_GROUP_ABS.search(value):
            raise ConfigError("invalid %s %r" % (unamestack, value))
        return value

    @staticmethod
    def _dh__poll_interval_secs(value, unamestack):
        '''
        Validate poll_interval_secs as a non-negative number
        '''
        if isinstance(value, bool):
            raise ConfigError("invalid %s %r" % (unamestack, value))
        try:
            ret = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError("invalid %s %r" % (unamestack, value)) from exc
        if ret < 0:
            raise ConfigError("invalid %s %r" % (unamestack, value))
        return ret

    @staticmethod
    def _dh__max_polls(value, unamestack):
        '''
        Validate max_polls as a positive int or None
        '''
        if value is None:
            return None
        if isinstance(value, bool) or (not isinstance(value, int)) or (value < 1):
            raise ConfigError("invalid %s %r" % (unamestack, value))
        return value

    @staticmethod
    def _dh__empty_operations_policy(value, unamestack):
        '''
        Validate empty_operations_policy
        '''
        return EmptyOperationsPolicy.coerce(value, exc_value=ConfigError, prefix=unamestack).value

    @staticmethod
    def _dh__log_level(value, unamestack):
        '''
        Validate log_level
        '''
        armdeploy.util.log_level_normalize(value, exc_value=ConfigError)
        return value

    @staticmethod
    def _key_valid(name):
        '''
        Return whether the given name is valid as a config key
        '''
        if not isinstance(name, str):
            return False
        if not name:
            return False
        if name.startswith('_'):
            return False
        return True

    def __getattr__(self, name):
        if not self._key_valid(name):
            raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name))
        with self._vlock:
            if name in self.test_values:
                return self.test_values[name]
            self._load_iff_necessary()
            if name in self._vdata:
                return self._vdata[name]
            raise AttributeError("%r object has no attribute %r; check configuration file %s" % (type(self).__name__, name, self._vfilename or '(none)'))

    def get(self, name, defaultvalue):
        '''
        If name is set in the config, return the corresponding value.
        If name is not set in the config, return defaultvalue.
        If name is not valid, just returns defaultvalue.
        '''
        if not self._key_valid(name):
            return defaultvalue
        with self._vlock:
            try:
                return self.test_values[name]
            except KeyError:
                pass
            self._load_iff_necessary()
            return self._vdata.get(name, defaultvalue)

    def to_dict(self) -> dict:
        '''
        Return cfg contents in dict form
        '''
        with self._vlock:
            self._load_iff_necessary()
            ret = dict(self._vdata)
            ret.update(self.test_values)
            return ret

cfg = _Cfg()
