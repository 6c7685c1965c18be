"""
Policy RBAC Sync

A controller that watches Open Cluster Management Policies, extracts the
RoleBindings embedded in their ConfigurationPolicy templates, resolves the
managed clusters each Policy is placed on, and keeps an OPA access-control
list in sync.
"""

__version__ = "1.0.0"
__author__ = "Policy RBAC Sync Project"

from .libs import PolicyRBACSync, PolicyReconciler, main

__all__ = [
    'PolicyRBACSync',
    'PolicyReconciler',
    'main'
]
