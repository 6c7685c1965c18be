"""
Policy RBAC Sync Library

Synchronizes RoleBindings embedded in Open Cluster Management Policies into
an OPA access-control list.
"""

__version__ = "1.0.0"

# Core libraries
from .core import KubeAuth, ConfigManager, PolicyStore, EventRecorder
from .core.exceptions import PolicySyncError, ConfigurationError, ObjectStoreError, ResourceNotFoundError

# Placement and RBAC libraries
from .placement import PlacementResolver
from .rbac import RBACExtractor, AclAggregator, AclEntry, AclRule

# OPA libraries
from .opa import OPAClient, SyncResult

# Controller and main application
from .controller import PolicyReconciler, PolicyWatcher, ReconcileResult, ReconcileState
from .main_app import PolicyRBACSync, main

__all__ = [
    # Core
    'KubeAuth',
    'ConfigManager',
    'PolicyStore',
    'EventRecorder',
    'PolicySyncError',
    'ConfigurationError',
    'ObjectStoreError',
    'ResourceNotFoundError',
    # Placement and RBAC
    'PlacementResolver',
    'RBACExtractor',
    'AclAggregator',
    'AclEntry',
    'AclRule',
    # OPA
    'OPAClient',
    'SyncResult',
    # Controller
    'PolicyReconciler',
    'PolicyWatcher',
    'ReconcileResult',
    'ReconcileState',
    # Main
    'PolicyRBACSync',
    'main'
]
