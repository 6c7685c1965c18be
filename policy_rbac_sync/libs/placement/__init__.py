"""
Placement Libraries

Resolves which managed clusters a Policy applies to.
"""

from .resolver import PlacementResolver

__all__ = [
    'PlacementResolver'
]
