"""
Exceptions Module

Exception hierarchy for the Policy RBAC Sync controller.
"""


class PolicySyncError(Exception):
    """Base exception for all controller errors"""


class ConfigurationError(PolicySyncError):
    """Raised when configuration is missing or invalid"""


class AuthenticationError(PolicySyncError):
    """Raised when Kubernetes credentials cannot be discovered or used"""


class ObjectStoreError(PolicySyncError):
    """Raised when reading a resource from the Kubernetes API fails"""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class ResourceNotFoundError(ObjectStoreError):
    """Raised when a requested resource does not exist"""

    def __init__(self, message: str):
        super().__init__(message, status=404)


class SyncError(PolicySyncError):
    """Raised when pushing ACL data to the OPA store fails"""


class ReconcileTimeoutError(PolicySyncError):
    """Raised when a reconciliation runs past its deadline"""
