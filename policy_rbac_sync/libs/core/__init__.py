"""
Core Libraries

Shared functionality and utilities for the Policy RBAC Sync controller.
"""

from .auth import KubeAuth
from .config import ConfigManager
from .exceptions import (
    PolicySyncError, ConfigurationError, AuthenticationError, ObjectStoreError,
    ResourceNotFoundError, SyncError, ReconcileTimeoutError
)
from .store import PolicyStore, EventRecorder
from .utils import setup_logging, disable_ssl_warnings, parse_bool, parse_policy_ref, Deadline

__all__ = [
    'KubeAuth',
    'ConfigManager',
    'PolicySyncError',
    'ConfigurationError',
    'AuthenticationError',
    'ObjectStoreError',
    'ResourceNotFoundError',
    'SyncError',
    'ReconcileTimeoutError',
    'PolicyStore',
    'EventRecorder',
    'setup_logging',
    'disable_ssl_warnings',
    'parse_bool',
    'parse_policy_ref',
    'Deadline'
]
