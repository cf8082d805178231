#
# armdeploy/btypes.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Basic types. No dependencies within the repo but outside this file other than armdeploy.base_defaults.
'''
import enum

from armdeploy.base_defaults import EXC_VALUE_DEFAULT

class EnumMixin():
    '''
    Mixin for enums that extends them with additional operations.
    Use this rather than subclassing the enum classes to avoid
    confusing pylint.
    '''
    @classmethod
    def values(cls, sort=True):
        '''
        Return a list of valid values for this enum.
        Default sort to true for UI elements.
        '''
        ret = [x.value for x in cls]
        if sort:
            ret.sort()
        return ret

    @classmethod
    def coerce(cls, value, exc_value=EXC_VALUE_DEFAULT, prefix=''):
        '''
        Return value coerced to this type.
        Raises exc_value with a human-friendly error on failure.
        '''
        try:
            return cls(value)
        except ValueError as exc:
            if prefix:
                raise exc_value(f"{prefix}: {exc}") from exc
            raise exc_value(str(exc)) from exc

class ReadOnlyDict(dict):
    '''
    dict that does not allow updates
    Set attribute default_value on an instance to give it a default a la DefaultDict
    '''
    ro_error_class = TypeError
    ro_error_str = 'attempt to modify read-only dict'

    def _error_readonly(self, *args, **kwargs):
        '''
        This is used to replace methods of this object
        that would otherwise modify it.
        '''
        raise self.ro_error_class(self.ro_error_str)

    __delitem__ = _error_readonly
    __setitem__ = _error_readonly
    clear = _error_readonly
    pop = _error_readonly
    popitem = _error_readonly
    setdefault = _error_readonly
    update = _error_readonly

    def __missing__(self, key):
        try:
            return self.default_value
        except AttributeError as exc:
            raise KeyError(key) from exc

class LogTo(EnumMixin, enum.Enum):
    '''
    Logging destinations for Application
    '''
    STDERR = 'stderr'
    STDOUT = 'stdout'

class StateBucket(EnumMixin, enum.Enum):
    '''
    What the monitor does with an operation in a given provisioning state
    '''
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    IN_PROGRESS = 'in_progress'

class ProvisioningState(EnumMixin, enum.Enum):
    '''
    Provisioning states reported for deployment operations.
    Values here are the ARM-facing strings. ARM may report
    labels not listed here; those are treated as in-progress.
    '''
    NOT_SPECIFIED = 'NotSpecified'
    ACCEPTED = 'Accepted'
    RUNNING = 'Running'
    READY = 'Ready'
    CREATING = 'Creating'
    CREATED = 'Created'
    DELETING = 'Deleting'
    DELETED = 'Deleted'
    CANCELED = 'Canceled'
    FAILED = 'Failed'
    SUCCEEDED = 'Succeeded'
    UPDATING = 'Updating'

    @classmethod
    def lookup(cls, label):
        '''
        Return the member matching label (case-insensitive) or None.
        A missing label is NOT_SPECIFIED.
        '''
        if not label:
            return cls.NOT_SPECIFIED
        if isinstance(label, cls):
            return label
        return _PROVISIONING_STATE_LOWER.get(str(label).lower(), None)

    @classmethod
    def bucket(cls, label):
        '''
        Classify label (str or ProvisioningState) into a StateBucket
        '''
        state = cls.lookup(label)
        if state in _STATES_FAILED:
            return StateBucket.FAILED
        if state is cls.SUCCEEDED:
            return StateBucket.SUCCEEDED
        return StateBucket.IN_PROGRESS

_PROVISIONING_STATE_LOWER = {x.value.lower() : x for x in ProvisioningState}

_STATES_FAILED = frozenset((ProvisioningState.CANCELED,
                            ProvisioningState.FAILED,
                            ProvisioningState.NOT_SPECIFIED,
                           ))

class EmptyOperationsPolicy(EnumMixin, enum.Enum):
    '''
    How the monitor treats a snapshot with no operations.
    SUCCEED: nothing is left to complete, so the deployment succeeded.
    WAIT: the deployment has not started provisioning yet; keep polling.
    '''
    SUCCEED = 'succeed'
    WAIT = 'wait'

EMPTY_OPERATIONS_POLICY_DEFAULT = EmptyOperationsPolicy.SUCCEED
