#
# armdeploy/__init__.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Base armdeploy import
'''
from .config import cfg

__all__ = ['cfg',
           'reset_caches',
          ]

reset_hooks = [cfg.reset,
              ]

def reset_caches():
    '''
    Discard cached content.
    '''
    for reset_hook in reset_hooks:
        reset_hook()
