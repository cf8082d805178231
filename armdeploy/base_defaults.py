#
# armdeploy/base_defaults.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Default settings that are not loaded from any configuration.
To keep dependencies simple, use only Python built-in types here.
'''
EXC_VALUE_DEFAULT = ValueError

# Prefix for item expansion
PF = '  '

# Seconds to wait before each fetch of deployment operations.
# This is also the only throttling applied against ARM.
POLL_INTERVAL_SECS_DEFAULT = 30.0

# None means poll until the deployment reaches a terminal state.
MAX_POLLS_DEFAULT = None

# Environment variables consulted by armdeploy.config
ENVIRON_CONFIG = 'ARMDEPLOY_CONFIG'
ENVIRON_POLL_INTERVAL = 'ARMDEPLOY_POLL_INTERVAL'
ENVIRON_SUBSCRIPTION_ID = 'ARMDEPLOY_SUBSCRIPTION_ID'
