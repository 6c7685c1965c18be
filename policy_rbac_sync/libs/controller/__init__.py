"""
Controller Libraries

Reconciliation of Policy objects and the watch loop that drives it.
"""

from .reconciler import PolicyReconciler, ReconcileResult, ReconcileState, rbac_sync_enabled
from .watcher import PolicyWatcher

__all__ = [
    'PolicyReconciler',
    'ReconcileResult',
    'ReconcileState',
    'rbac_sync_enabled',
    'PolicyWatcher'
]
