"""
OPA Libraries

HTTP synchronization of ACL entries into the OPA data API.
"""

from .client import OPAClient, SyncResult

__all__ = [
    'OPAClient',
    'SyncResult'
]
